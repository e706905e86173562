"""Unit tests for model response repair.

Tests cover:
- Code fence and label stripping
- Bareword key/value quoting
- Lenient parsing (trailing commas, surrounding prose)
- Typed failures for irreparable input
"""

import pytest

from services.extraction.repair import (
    ResponseParseError,
    clean_response,
    normalise_quotes,
    parse_lenient,
    quote_barewords,
    repair_response,
)


class TestCleanResponse:
    """Test fence/label stripping."""

    def test_strips_json_fence(self) -> None:
        """Should remove ```json fences and collapse newlines."""
        text = '```json\n{"vendor": "ACME"}\n```'
        assert clean_response(text) == '{"vendor": "ACME"}'

    def test_strips_leading_label(self) -> None:
        """Should remove a leading 'JSON:' label."""
        assert clean_response('JSON: {"a": 1}') == '{"a": 1}'

    def test_collapses_newlines(self) -> None:
        """Newlines become single spaces."""
        assert clean_response('{\n"a": 1,\r\n"b": 2\n}') == '{ "a": 1, "b": 2 }'


class TestQuoteBarewords:
    """Test heuristic quoting."""

    def test_quotes_bare_keys(self) -> None:
        """Bare keys after braces and commas get quoted."""
        assert quote_barewords("{vendor: null, totalAmount: 5}") == (
            '{"vendor": null, "totalAmount": 5}'
        )

    def test_quotes_bare_string_values(self) -> None:
        """Unquoted string values get quoted; numbers stay numbers."""
        assert quote_barewords('{"vendor": ACME Corp, "totalAmount": 50}') == (
            '{"vendor": "ACME Corp", "totalAmount": 50}'
        )

    def test_leaves_literals_alone(self) -> None:
        """true/false/null are not quoted."""
        text = '{"a": true, "b": false, "c": null}'
        assert quote_barewords(text) == text

    def test_leaves_string_contents_alone(self) -> None:
        """Colons and commas inside quoted values are not rewritten."""
        assert quote_barewords('{vendor: "Acme: Main St, Branch 2", totalAmount: 10}') == (
            '{"vendor": "Acme: Main St, Branch 2", "totalAmount": 10}'
        )


class TestNormaliseQuotes:
    """Test Python-dict style rewriting."""

    def test_single_quotes_become_double(self) -> None:
        assert normalise_quotes("{'vendor': 'O\\'Brien'}") == '{"vendor": "O\'Brien"}'

    def test_python_literals(self) -> None:
        """True/False/None become JSON literals outside strings only."""
        assert normalise_quotes("{'a': True, 'b': None, 'c': 'None'}") == (
            '{"a": true, "b": null, "c": "None"}'
        )


class TestParseLenient:
    """Test the lenient reader."""

    def test_trailing_commas(self) -> None:
        """Trailing commas in objects and arrays are tolerated."""
        assert parse_lenient('{"items": [1, 2,], "a": 1,}') == {"items": [1, 2], "a": 1}

    def test_commas_inside_strings_kept(self) -> None:
        assert parse_lenient('{"vendor": "A, }", "b": [1,],}') == {"vendor": "A, }", "b": [1]}

    def test_surrounding_prose(self) -> None:
        """The outermost object is read out of surrounding text."""
        assert parse_lenient('Here you go: {"vendor": "X"} thanks') == {"vendor": "X"}

    def test_non_object_raises(self) -> None:
        """A top-level array is a typed failure."""
        with pytest.raises(ResponseParseError, match="not a JSON object"):
            parse_lenient("[1, 2, 3]")

    def test_garbage_raises(self) -> None:
        """Text without any object is a typed failure."""
        with pytest.raises(ResponseParseError):
            parse_lenient("no json here")


class TestRepairResponse:
    """Test the whole pipeline."""

    def test_valid_json_passes_through(self) -> None:
        """Well-formed JSON is returned unchanged."""
        assert repair_response('{"vendor": "ACME", "totalAmount": 10.5}') == {
            "vendor": "ACME",
            "totalAmount": 10.5,
        }

    def test_missing_key_quotes_repaired(self) -> None:
        """Near-JSON with unquoted keys yields a parsable object."""
        payload = repair_response(
            '```json\n{invoiceDate: "2024-01-15", totalAmount: 100.5, vendor: "ACME"}\n```'
        )
        assert payload == {"invoiceDate": "2024-01-15", "totalAmount": 100.5, "vendor": "ACME"}

    def test_nested_items_repaired(self) -> None:
        """Bare keys and values inside the items array are repaired too."""
        payload = repair_response("{items: [{name: Widget, quantity: 2}]}")
        assert payload == {"items": [{"name": "Widget", "quantity": 2}]}

    @pytest.mark.parametrize("text", [None, "", "   \n  "])
    def test_empty_response_raises(self, text: str | None) -> None:
        """Empty model output is a typed failure."""
        with pytest.raises(ResponseParseError, match="empty"):
            repair_response(text)

    def test_irreparable_response_raises(self) -> None:
        """Prose without any JSON object is a typed failure, not a crash."""
        with pytest.raises(ResponseParseError):
            repair_response("I could not read this document, sorry.")

    def test_colon_inside_quoted_value_repaired(self) -> None:
        """Missing key quotes are repaired even when a value contains ': ' and ','."""
        payload = repair_response('{vendor: "Acme: Main St, Branch 2", totalAmount: 10}')
        assert payload == {"vendor": "Acme: Main St, Branch 2", "totalAmount": 10}

    def test_single_quoted_response_repaired(self) -> None:
        """Python-dict style output is read like lenient JSON."""
        payload = repair_response(
            "{'invoiceDate': '2024-01-15', 'totalAmount': 150.0, 'vendor': 'Acme', 'items': []}"
        )
        assert payload == {
            "invoiceDate": "2024-01-15",
            "totalAmount": 150.0,
            "vendor": "Acme",
            "items": [],
        }
