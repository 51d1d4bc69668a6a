"""Filesystem-backed storage for uploaded receipt images."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Optional

from sipcoin.config import get_settings

logger = logging.getLogger(__name__)


class LocalImageStore:
    """Store receipt images under a root directory keyed by opaque relative paths."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = (root or get_settings().image_store_path).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"Invalid image path {path!r}")
        return self._root.joinpath(*relative.parts)

    def upload(self, path: str, data: bytes) -> str:
        """Write ``data`` at ``path`` and return a URL for the stored object."""

        target = self._resolve(path)
        if target.exists():
            raise FileExistsError(f"Image {path} already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Stored receipt image path=%s size=%s", path, len(data))
        return target.as_uri()

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Image {path} not found")
        return target.read_bytes()

    def remove(self, path: str) -> None:
        target = self._resolve(path)
        if target.exists():
            target.unlink()


__all__ = ["LocalImageStore"]
