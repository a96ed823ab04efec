"""
Object storage for uploaded files.

The pipeline only needs put/get/delete by key. LocalObjectStore keeps objects
on the local filesystem, with the content type in a sidecar file.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Key-value store for binary objects."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Store an object under a key, replacing any existing one."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return an object's bytes. Raises KeyError if it does not exist."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove an object; missing keys are ignored."""


class LocalObjectStore(ObjectStore):
    """ObjectStore backed by a directory tree."""

    CONTENT_TYPE_SUFFIX = ".content-type"

    def __init__(self, root: str = "server_storage"):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise KeyError(f"Invalid object key: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
        if content_type:
            path.with_name(path.name + self.CONTENT_TYPE_SUFFIX).write_text(content_type, encoding="utf-8")
        logger.debug(f"Stored {key} ({len(data)} bytes)")

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise KeyError(key)
        return path.read_bytes()

    def content_type(self, key: str) -> Optional[str]:
        sidecar = self._path(key).with_name(self._path(key).name + self.CONTENT_TYPE_SUFFIX)
        return sidecar.read_text(encoding="utf-8") if sidecar.exists() else None

    def delete(self, key: str) -> None:
        path = self._path(key)
        for target in (path, path.with_name(path.name + self.CONTENT_TYPE_SUFFIX)):
            if target.exists():
                target.unlink()
