#!/usr/bin/env python3
"""Run invoice extraction on a single document and print the result.

Usage:
    python scripts/extract_invoice.py invoice.pdf
    python scripts/extract_invoice.py receipt.jpg --provider ollama

Requirements:
    - APP_GEMINI_API_KEY set for the gemini provider
    - A running Ollama server with a vision model for the ollama provider
"""

import argparse
import logging
import mimetypes
import sys
from pathlib import Path

from services.extraction.factory import ProviderRegistry, create_extraction_service
from services.extraction.schema import DocumentPayload
from services.shared.config import Settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract structured data from an invoice document")
    parser.add_argument("file", type=Path, help="Invoice document (PDF or image)")
    parser.add_argument(
        "--provider",
        choices=ProviderRegistry.list_providers(),
        default=None,
        help="Extraction provider (defaults to APP_EXTRACTION_PROVIDER)",
    )
    parser.add_argument(
        "--content-type",
        default=None,
        help="Declared MIME type (guessed from the file name when omitted)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(
        f"{settings.service_name} {settings.service_version} ({settings.environment}) - "
        f"extracting {args.file.name}"
    )

    if not args.file.is_file():
        logger.error(f"File not found: {args.file}")
        return 1

    content_type = args.content_type or mimetypes.guess_type(args.file.name)[0]
    document = DocumentPayload(
        data=args.file.read_bytes(), filename=args.file.name, content_type=content_type
    )

    provider = create_extraction_service(settings, name=args.provider)
    result = provider.extract(document)

    print(result.model_dump_json(indent=2, exclude={"raw_response"}))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
