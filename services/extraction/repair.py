"""Repair of near-JSON language model output.

Models are told to return a bare JSON object but frequently wrap it in
markdown fences, prefix it with a label, or drop quotes around keys and
string values. The pipeline below applies independent stages in order:

1. ``clean_response``: strip code fences and a leading ``JSON:`` label,
   collapse newlines
2. ``quote_barewords``: quote bareword keys and unquoted string values
3. ``normalise_quotes``: turn Python-dict style output (single-quoted
   strings, True/False/None) into JSON
4. ``parse_lenient``: parse while tolerating trailing commas and
   surrounding prose

Rewrites only touch text outside string literals. A stage that makes
things worse is skipped: ``repair_response`` only keeps a rewrite when
the rewritten text actually parses.
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_LABEL_RE = re.compile(r"^\s*JSON:\s*", re.IGNORECASE)
_NEWLINES_RE = re.compile(r"[\r\n]+")

# Bare key directly after an opening brace or a comma: {vendor: ...} / , total: ...
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
# Value that does not start with a quote, bracket or brace, up to the next delimiter
_BARE_VALUE_RE = re.compile(r"(:\s*)([^\s\"\[{][^,}\]]*?)(\s*)(?=[,}\]])")
_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = frozenset({"true", "false", "null"})

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_DOUBLE_QUOTED = r'"(?:\\.|[^"\\])*"'
_SINGLE_QUOTED = r"'(?:\\.|[^'\\])*'"
_STRING_RE = re.compile(_DOUBLE_QUOTED)
_ANY_STRING_RE = re.compile(f"{_DOUBLE_QUOTED}|{_SINGLE_QUOTED}")
_PYTHON_LITERALS = {"True": "true", "False": "false", "None": "null"}
_PYTHON_LITERAL_RE = re.compile(r"\b(True|False|None)\b")


class ResponseParseError(ValueError):
    """Raised when model output cannot be turned into a JSON object."""


def clean_response(text: str) -> str:
    """Strip markdown fences and a leading label, collapse newlines."""
    cleaned = _FENCE_RE.sub("", text)
    cleaned = _LABEL_RE.sub("", cleaned)
    cleaned = _NEWLINES_RE.sub(" ", cleaned)
    return cleaned.strip()


def _quote_value(match: re.Match[str]) -> str:
    prefix, token, spacing = match.group(1), match.group(2).strip(), match.group(3)
    if token in _LITERALS or _NUMBER_RE.fullmatch(token):
        return match.group(0)
    return f"{prefix}{json.dumps(token)}{spacing}"


def _outside_strings(
    text: str, rewrite: Callable[[str], str], strings: re.Pattern[str] = _STRING_RE
) -> str:
    """Apply ``rewrite`` to the text between string literals, copying literals through."""
    parts = []
    position = 0
    for match in strings.finditer(text):
        parts.append(rewrite(text[position : match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(rewrite(text[position:]))
    return "".join(parts)


def _quote_segment(segment: str) -> str:
    keyed = _BARE_KEY_RE.sub(r'\1"\2"\3', segment)
    return _BARE_VALUE_RE.sub(_quote_value, keyed)


def quote_barewords(text: str) -> str:
    """Quote bareword keys and unquoted string values.

    Numbers and the JSON literals true/false/null are left untouched, and
    so is everything inside double-quoted strings.
    """
    return _outside_strings(text, _quote_segment)


def _to_double_quoted(match: re.Match[str]) -> str:
    literal = match.group(0)
    if literal.startswith('"'):
        return literal
    return json.dumps(literal[1:-1].replace("\\'", "'"))


def normalise_quotes(text: str) -> str:
    """Rewrite Python-dict style output as JSON.

    Single-quoted strings become double-quoted ones, True/False/None
    outside strings become true/false/null, and remaining bare keys and
    values are quoted.
    """
    requoted = _ANY_STRING_RE.sub(_to_double_quoted, text)
    literals = _outside_strings(
        requoted,
        lambda segment: _PYTHON_LITERAL_RE.sub(
            lambda match: _PYTHON_LITERALS[match.group(1)], segment
        ),
    )
    return quote_barewords(literals)


def _loads(text: str) -> Any:
    cleaned = _outside_strings(text, lambda segment: _TRAILING_COMMA_RE.sub(r"\1", segment))
    return json.loads(cleaned, strict=False)


def parse_lenient(text: str) -> dict[str, Any]:
    """Parse a JSON object, tolerating trailing commas and surrounding prose.

    Raises:
        ResponseParseError: If no JSON object can be read from the text
    """
    try:
        value = _loads(text)
    except json.JSONDecodeError as e:
        match = _OBJECT_RE.search(text)
        if match is None:
            raise ResponseParseError(f"JSON parsing failed: {e}") from e
        try:
            value = _loads(match.group(0))
        except json.JSONDecodeError as inner:
            raise ResponseParseError(f"JSON parsing failed: {inner}") from inner

    if not isinstance(value, dict):
        raise ResponseParseError("Model response is not a JSON object")
    return value


def _parses(text: str) -> bool:
    try:
        parse_lenient(text)
    except ResponseParseError:
        return False
    return True


def repair_response(text: str | None) -> dict[str, Any]:
    """Run the full repair pipeline over raw model output.

    Args:
        text: Raw model text

    Returns:
        Parsed JSON object

    Raises:
        ResponseParseError: If the text is empty or irreparable
    """
    if text is None or not text.strip():
        raise ResponseParseError("Model response is empty")

    cleaned = clean_response(text)
    if _parses(cleaned):
        return parse_lenient(cleaned)

    quoted = quote_barewords(cleaned)
    if _parses(quoted):
        logger.info("Repaired unquoted keys or values in model response")
        return parse_lenient(quoted)

    normalised = normalise_quotes(cleaned)
    if _parses(normalised):
        logger.info("Repaired single-quoted model response")
        return parse_lenient(normalised)

    logger.warning("Quote repair did not help, parsing cleaned response as-is")
    return parse_lenient(cleaned)
