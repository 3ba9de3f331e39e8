"""
Document bucket

Filesystem-backed object bucket for encrypted identity documents. Object
names are flat; anything resembling a path is rejected.
"""

import logging
import os
from typing import List, Optional

from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import DocumentNotFoundError, EncryptionError

# Set up logging
logger = logging.getLogger(__name__)


class DocumentStore:
    def __init__(self, bucket_path: Optional[str] = None, public_base_url: Optional[str] = None):
        """Initialize the bucket, creating its directory if needed"""
        self.bucket_path = bucket_path or settings.DOCUMENT_BUCKET_PATH
        self.public_base_url = (public_base_url or settings.DOCUMENT_PUBLIC_BASE_URL).rstrip("/")
        os.makedirs(self.bucket_path, exist_ok=True)

    def _object_path(self, name: str) -> str:
        if not name or name != os.path.basename(name) or name in (".", ".."):
            raise DocumentNotFoundError(f"Invalid object name: {name}")
        return os.path.join(self.bucket_path, name)

    async def upload(self, name: str, data: bytes) -> str:
        """Write an object, replacing any existing one, and return its public URL"""
        path = self._object_path(name)
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Failed to upload {name}: {e}")
            raise EncryptionError(f"Failed to store encrypted document: {e.strerror}")
        logger.info(f"Stored object {name} ({len(data)} bytes)")
        return self.public_url(name)

    async def download(self, name: str) -> bytes:
        path = self._object_path(name)
        if not os.path.isfile(path):
            raise DocumentNotFoundError(f"Document {name} not found")
        with open(path, "rb") as f:
            return f.read()

    async def exists(self, name: str) -> bool:
        return os.path.isfile(self._object_path(name))

    async def list_prefix(self, prefix: str) -> List[str]:
        """Object names starting with ``prefix``, sorted"""
        return sorted(
            entry for entry in os.listdir(self.bucket_path)
            if entry.startswith(prefix) and os.path.isfile(os.path.join(self.bucket_path, entry))
        )

    async def remove(self, names: List[str]) -> None:
        for name in names:
            path = self._object_path(name)
            if os.path.exists(path):
                os.remove(path)
                logger.info(f"Removed object {name}")

    def public_url(self, name: str) -> str:
        return f"{self.public_base_url}/{name}"
