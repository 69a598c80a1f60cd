"""Blob storage for uploaded files."""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cuid2 import cuid_wrapper

from codechat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredBlob:
    """A stored file and where it can be fetched from."""

    url: str
    pathname: str
    content_type: str
    size: int


class BlobStore(ABC):
    """Storage backend for uploaded files."""

    @abstractmethod
    async def put(self, filename: str, data: bytes, content_type: str) -> StoredBlob:
        """Store ``data`` and return its public location."""

    @abstractmethod
    async def fetch(self, pathname: str) -> tuple[bytes, str] | None:
        """Return ``(data, content_type)`` or None when absent."""


class InMemoryBlobStore(BlobStore):
    """Keeps uploads in process memory and serves them under ``/files``."""

    def __init__(self, public_base_url: str = ""):
        self.public_base_url = public_base_url.rstrip("/")
        self._blobs: dict[str, tuple[bytes, str]] = {}
        self._lock = asyncio.Lock()

    async def put(self, filename: str, data: bytes, content_type: str) -> StoredBlob:
        pathname = f"{cuid()}-{_safe_name(filename)}"
        async with self._lock:
            self._blobs[pathname] = (data, content_type)

        logger.info(f"Stored upload {pathname} ({len(data)} bytes, {content_type})")
        return StoredBlob(
            url=f"{self.public_base_url}/files/{pathname}",
            pathname=pathname,
            content_type=content_type,
            size=len(data),
        )

    async def fetch(self, pathname: str) -> tuple[bytes, str] | None:
        async with self._lock:
            return self._blobs.get(pathname)

    def get_blob_count(self) -> int:
        return len(self._blobs)


def _safe_name(filename: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", filename).strip("-.")
    return cleaned or "upload"
