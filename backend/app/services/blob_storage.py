"""
Blob storage for generated artifacts.

Statements are written under a root directory and served back through
``GET /v1/blobs/{path}``. The interface mirrors a hosted object store:
``put`` returns the public URL of the stored object.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from backend.app.core.config import settings
from backend.app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class StoredBlob:
    path: str
    url: str
    size: int


class LocalBlobStorage:
    """Filesystem-backed blob store."""

    def __init__(self, root_dir: str, base_url: str):
        self.root = Path(root_dir).resolve()
        self.base_url = base_url.rstrip("/")

    def resolve(self, path: str) -> Path:
        """
        Absolute filesystem location of a blob path.

        Raises:
            ValidationError: path is absolute or escapes the storage root
        """
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValidationError("Invalid blob path", details={"path": path})
        return self.root.joinpath(*relative.parts)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def put(self, path: str, data: bytes, content_type: str = XLSX_CONTENT_TYPE) -> StoredBlob:
        """Store (or overwrite) a blob and return its public reference."""
        target = self.resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(target)

        await asyncio.to_thread(_write)
        logger.info("Stored blob %s (%s bytes, %s)", path, len(data), content_type)
        return StoredBlob(path=path, url=self.url_for(path), size=len(data))

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).is_file)


_storage = LocalBlobStorage(settings.blob_storage_dir, settings.blob_base_url)


def get_blob_storage() -> LocalBlobStorage:
    """FastAPI dependency for the configured blob store."""
    return _storage
