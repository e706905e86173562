"""Upload validation for invoice documents."""

import logging
from pathlib import PurePath

from services.invoices.errors import InvalidRequestError
from services.invoices.models import UploadedFile
from services.shared.config import Settings

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "application/pdf"})
ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".pdf"})


class UploadValidator:
    """Checks size, content type and extension of an uploaded document."""

    def __init__(self, settings: Settings) -> None:
        self.max_bytes = settings.upload_max_bytes

    def validate(self, upload: UploadedFile | None) -> None:
        """Validate an upload.

        Args:
            upload: Uploaded document

        Raises:
            InvalidRequestError: If the upload is missing, empty, too large,
                of an unsupported type or has a disallowed extension
        """
        if upload is None or upload.is_empty:
            raise InvalidRequestError("File is empty")

        if upload.size > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise InvalidRequestError(f"File size exceeds maximum limit of {limit_mb}MB")

        if upload.content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidRequestError(
                f"Invalid file type: {upload.content_type}. Allowed types: JPEG, PNG, GIF, PDF"
            )

        if not upload.filename:
            raise InvalidRequestError("File name is required")

        extension = PurePath(upload.filename).suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise InvalidRequestError(
                f"Invalid file extension: {extension or '(none)'}. "
                f"Allowed extensions: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )

        logger.debug(f"Upload validated: {upload.filename} ({upload.size} bytes)")
