"""Blob storage for uploaded and generated files."""

import asyncio
import re
import uuid
from pathlib import Path
from typing import Protocol

import structlog

from app.schemas.file_schema import StoredBlob

logger = structlog.get_logger()

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class BlobStorage(Protocol):
    """Store bytes, return a public URL."""

    async def put(self, pathname: str, data: bytes, content_type: str) -> StoredBlob: ...


class LocalBlobStorage:
    """Blob storage on the local filesystem, served by the app under ``/blob``.

    Stored names get a random prefix so uploads never overwrite each other.
    """

    def __init__(self, root: Path, public_base_url: str) -> None:
        self._root = root
        self._public_base_url = public_base_url.rstrip("/")

    async def put(self, pathname: str, data: bytes, content_type: str) -> StoredBlob:
        safe_name = UNSAFE_FILENAME_CHARS.sub("_", Path(pathname).name) or "file"
        stored_name = f"{uuid.uuid4().hex[:12]}-{safe_name}"
        target = self._root / stored_name

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, target, data)

        logger.info("Blob stored", pathname=stored_name, size=len(data))
        return StoredBlob(
            url=f"{self._public_base_url}/{stored_name}",
            pathname=stored_name,
            content_type=content_type,
            size=len(data),
        )

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
