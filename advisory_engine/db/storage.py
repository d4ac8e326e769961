"""Raw upload blobs in Supabase Storage."""

import time

from supabase import Client

from advisory_engine.core.errors import StorageError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)


def build_storage_path(owner_id: str, filename: str, timestamp_ms: int | None = None) -> str:
    """Storage key ``<owner>/<epoch ms>-<filename>``; path separators are dropped from the name."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_name = filename.replace("/", "_").replace("\\", "_") or "document"
    return f"{owner_id}/{timestamp_ms}-{safe_name}"


class DocumentStorage:
    """Uploads and downloads raw files. Blob lifecycle beyond that is not managed here."""

    def __init__(self, client: Client, bucket: str = "documents"):
        self.client = client
        self.bucket = bucket

    def upload(self, owner_id: str, filename: str, data: bytes, content_type: str) -> str:
        """
        Store an uploaded file.

        Returns:
            Storage path of the new blob

        Raises:
            StorageError: If the upload fails
        """
        path = build_storage_path(owner_id, filename)
        try:
            self.client.storage.from_(self.bucket).upload(
                path=path,
                file=data,
                file_options={"content-type": content_type or "application/octet-stream"},
            )
        except Exception as e:
            raise StorageError(f"Failed to upload {filename}: {e}") from e

        logger.info(f"Uploaded {filename} ({len(data)} bytes) to {self.bucket}/{path}")
        return path

    def download(self, path: str) -> bytes:
        """
        Fetch a stored file.

        Raises:
            StorageError: If the download fails or returns nothing
        """
        try:
            data = self.client.storage.from_(self.bucket).download(path)
        except Exception as e:
            raise StorageError(f"Failed to download {path}: {e}") from e
        if not data:
            raise StorageError(f"Empty download for {path}")
        return data
