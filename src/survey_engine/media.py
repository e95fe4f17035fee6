"""Local filesystem MediaStore.

Files are written as ``<epoch_ms>_<phone>.<ext>`` under the upload
directory and referenced as ``/uploads/<file>``, the path the server
mounts for the dashboard.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from pathlib import Path

from survey_engine.interfaces import MediaStore
from survey_engine.models.message import MediaPayload

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class LocalMediaStore(MediaStore):
    """Stores media bytes in a local directory.

    Args:
        root: target directory (created on first save)
        url_prefix: prefix of the returned locator
    """

    def __init__(self, root: str | Path, *, url_prefix: str = "/uploads") -> None:
        self._root = Path(root)
        self._url_prefix = url_prefix.rstrip("/")

    async def save(self, user_id: str, media: MediaPayload) -> str:
        phone = _UNSAFE.sub("_", user_id.split("@", 1)[0])
        ext = _UNSAFE.sub("", media.extension) or "bin"
        filename = f"{int(time.time() * 1000)}_{phone}.{ext}"
        path = self._root / filename
        await asyncio.to_thread(self._write, path, media.data)
        logger.debug("Saved %d bytes to %s", len(media.data), path)
        return f"{self._url_prefix}/{filename}"

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
