"""
Blob storage for chat attachments.

The relay hands decoded attachment bytes to a BlobStore under a generated
file name. Writes are best-effort: the caller decides whether to await them.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol

from shared.config.logging import get_logger

logger = get_logger(__name__)


class BlobStore(Protocol):
    """Protocol for attachment storage backends."""

    async def write(self, name: str, data: bytes) -> None: ...


class LocalBlobStore:
    """
    Stores attachments as files in a local directory.

    The directory is created lazily on first write. Names must be plain
    file names; anything that could escape the root is rejected.

    Usage:
        store = LocalBlobStore("./uploads")
        await store.write("1709129717000.png", data)
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        """Directory attachments are written to."""
        return self._root

    def path_for(self, name: str) -> Path:
        """
        Resolve the on-disk path for a stored name.

        Raises:
            ValueError: If the name contains path separators or is a dot entry.
        """
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ValueError(f"Invalid blob name: {name!r}")
        return self._root / name

    async def write(self, name: str, data: bytes) -> None:
        """Write bytes under the given name without blocking the event loop."""
        path = self.path_for(name)
        await asyncio.to_thread(self._write_sync, path, data)
        logger.info("Attachment saved", path=str(path), size=len(data))

    def _write_sync(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
