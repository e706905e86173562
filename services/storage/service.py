"""File storage for uploaded invoice documents.

Two interchangeable backends behind the ``FileStorage`` protocol:
- ``LocalFileStorage`` keeps files under a directory on disk
- ``MinioFileStorage`` keeps files in an S3-compatible bucket

Stored names are always generated (uuid4 hex plus the original
extension); the user-supplied filename is never used as a storage key.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
import mimetypes
import uuid
from pathlib import Path, PurePath
from typing import Protocol

from minio import Minio
from minio.error import S3Error
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.shared.config import Settings

logger = logging.getLogger(__name__)

_CONTENT_TYPE_BY_KIND = {
    "PDF": "application/pdf",
    "IMAGE": "image/jpeg",
}


class StorageError(Exception):
    """Raised when a storage backend cannot complete an operation."""


class FileStorage(Protocol):
    """Storage collaborator used by invoice creation and download."""

    def store(self, data: bytes, original_name: str | None) -> str: ...

    def load(self, stored_name: str) -> bytes: ...

    def delete(self, stored_name: str) -> None: ...


def generate_stored_name(original_name: str | None) -> str:
    """Build an opaque storage key keeping only the original extension."""
    suffix = PurePath(original_name).suffix.lower() if original_name else ""
    return f"{uuid.uuid4().hex}{suffix}"


def content_type_for(kind: str | None) -> str:
    """Map a stored file kind (PDF, IMAGE) to the content type served on download."""
    if kind is None:
        return "application/octet-stream"
    return _CONTENT_TYPE_BY_KIND.get(str(kind).upper(), "application/octet-stream")


class LocalFileStorage:
    """Disk-backed storage rooted at a single directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path_for(self, stored_name: str) -> Path:
        root = self.root.resolve()
        path = (root / stored_name).resolve()
        if path.parent != root:
            raise StorageError(f"Invalid stored file name: {stored_name}")
        return path

    def store(self, data: bytes, original_name: str | None) -> str:
        stored_name = generate_stored_name(original_name)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path_for(stored_name).write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to store {original_name}: {e}")
            raise StorageError(f"Failed to store file: {e}") from e

        logger.info(f"Stored {original_name} as {stored_name} ({len(data)} bytes)")
        return stored_name

    def load(self, stored_name: str) -> bytes:
        path = self._path_for(stored_name)
        if not path.is_file():
            raise StorageError(f"File not found: {stored_name}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read file: {e}") from e

    def delete(self, stored_name: str) -> None:
        path = self._path_for(stored_name)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete file: {e}") from e
        logger.info(f"Deleted stored file {stored_name}")


class MinioFileStorage:
    """S3-compatible object storage.

    Provides document storage with data sovereignty support
    through on-premises MinIO deployment.
    """

    def __init__(self, settings: Settings, client: Minio | None = None) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
            client: Optional preconfigured MinIO client (tests)
        """
        self.settings = settings
        self._client = client
        self._bucket_ready = False

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Returns:
            Configured Minio client instance

        Raises:
            StorageError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise StorageError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise StorageError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def _ensure_bucket(self) -> None:
        """Ensure the configured bucket exists, create if missing."""
        if self._bucket_ready:
            return

        client = self._get_client()
        bucket = self.settings.storage_bucket
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_ready = True

    @staticmethod
    def _detect_content_type(filename: str) -> str:
        content_type, _ = mimetypes.guess_type(filename)
        return content_type or "application/octet-stream"

    def store(self, data: bytes, original_name: str | None) -> str:
        stored_name = generate_stored_name(original_name)
        try:
            self._put(stored_name, data)
        except S3Error as e:
            logger.error(f"S3 error uploading {stored_name}: {e}")
            raise StorageError(f"S3 error: {e.code} - {e.message}") from e

        logger.info(
            f"Uploaded {original_name} to {self.settings.storage_bucket} "
            f"as {stored_name} ({len(data)} bytes)"
        )
        return stored_name

    def load(self, stored_name: str) -> bytes:
        try:
            return self._get(stored_name)
        except S3Error as e:
            logger.error(f"S3 error downloading {stored_name}: {e}")
            raise StorageError(f"S3 error: {e.code} - {e.message}") from e

    def delete(self, stored_name: str) -> None:
        try:
            self._remove(stored_name)
        except S3Error as e:
            logger.error(f"S3 error deleting {stored_name}: {e}")
            raise StorageError(f"S3 error: {e.code} - {e.message}") from e
        logger.info(f"Deleted {stored_name} from {self.settings.storage_bucket}")

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _put(self, stored_name: str, data: bytes) -> None:
        client = self._get_client()
        self._ensure_bucket()
        client.put_object(
            bucket_name=self.settings.storage_bucket,
            object_name=stored_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=self._detect_content_type(stored_name),
        )

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _get(self, stored_name: str) -> bytes:
        response = self._get_client().get_object(
            bucket_name=self.settings.storage_bucket, object_name=stored_name
        )
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _remove(self, stored_name: str) -> None:
        self._get_client().remove_object(
            bucket_name=self.settings.storage_bucket, object_name=stored_name
        )


def create_file_storage(settings: Settings) -> FileStorage:
    """Create the storage backend selected by settings.storage_backend."""
    if settings.storage_backend == "minio":
        logger.info(f"Using MinIO storage bucket: {settings.storage_bucket}")
        return MinioFileStorage(settings)

    logger.info(f"Using local storage directory: {settings.upload_dir}")
    return LocalFileStorage(settings.upload_dir)
