"""File-kind dispatch for uploaded documents.

Handlers are tried in order; the first whose predicate accepts the
content type stores the bytes and reports the detected kind.
"""

import logging
from collections.abc import Callable

from pydantic import BaseModel

from services.invoices.models import FileKind, UploadedFile
from services.storage.service import FileStorage, StorageError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = frozenset({"application/pdf"})
IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif"})


class FileProcessingResult(BaseModel):
    """Result of storing an upload.

    Attributes:
        success: Whether the file was stored
        stored_file_name: Generated storage key
        original_file_name: Name the file was uploaded under
        file_size: Size in bytes
        file_kind: Detected kind
        error: Error message if processing failed
    """

    success: bool
    stored_file_name: str | None = None
    original_file_name: str | None = None
    file_size: int | None = None
    file_kind: FileKind | None = None
    error: str | None = None


Predicate = Callable[[str], bool]


class FileProcessor:
    """Stores uploads through the storage collaborator, dispatching on content type."""

    def __init__(self, storage: FileStorage) -> None:
        self.storage = storage
        self.handlers: list[tuple[Predicate, FileKind]] = [
            (lambda content_type: content_type in PDF_CONTENT_TYPES, FileKind.PDF),
            (lambda content_type: content_type in IMAGE_CONTENT_TYPES, FileKind.IMAGE),
        ]

    def process(self, upload: UploadedFile) -> FileProcessingResult:
        content_type = (upload.content_type or "").lower()
        for accepts, kind in self.handlers:
            if accepts(content_type):
                return self._store(upload, kind)

        logger.warning(f"No processor found for content type: {upload.content_type}")
        return FileProcessingResult(
            success=False, error=f"Unsupported file type: {upload.content_type}"
        )

    def _store(self, upload: UploadedFile, kind: FileKind) -> FileProcessingResult:
        try:
            stored_name = self.storage.store(upload.data, upload.filename)
        except StorageError as e:
            logger.error(f"Failed to store {kind.value} file {upload.filename}: {e}")
            return FileProcessingResult(success=False, error=str(e))

        logger.info(f"{kind.value} file stored: {upload.filename} -> {stored_name}")
        return FileProcessingResult(
            success=True,
            stored_file_name=stored_name,
            original_file_name=upload.filename,
            file_size=upload.size,
            file_kind=kind,
        )
