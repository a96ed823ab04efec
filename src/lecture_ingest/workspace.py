"""
Per-job temporary workspace.

Each job run owns one directory for intermediate files (normalized audio,
chunks, rasterized pages). The workspace is a context manager, so it is
removed on every exit path, including errors and cancellation.
"""

import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Optional

from .errors import WorkspaceError

logger = logging.getLogger(__name__)


class Workspace:
    """A temporary directory with a create/cleanup lifecycle."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._cleaned = False

    @classmethod
    def create(cls, prefix: str = "lecture-", base_dir: Optional[str] = None) -> "Workspace":
        """
        Create a fresh workspace directory.

        Raises:
            WorkspaceError: If the directory cannot be created
        """
        try:
            root = tempfile.mkdtemp(prefix=f"{prefix}{uuid.uuid4().hex[:8]}-", dir=base_dir)
        except OSError as e:
            raise WorkspaceError(f"Could not create temporary workspace: {e}") from e
        logger.debug(f"Created workspace {root}")
        return cls(Path(root))

    def path(self, *parts: str) -> Path:
        """Path inside the workspace (parent directories are created)."""
        target = self.root.joinpath(*parts)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"Could not prepare workspace path {target}: {e}") from e
        return target

    def subdir(self, *parts: str) -> Path:
        """Directory inside the workspace, created if missing."""
        target = self.root.joinpath(*parts)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"Could not create workspace directory {target}: {e}") from e
        return target

    def write_bytes(self, name: str, data: bytes) -> Path:
        target = self.path(name)
        try:
            target.write_bytes(data)
        except OSError as e:
            raise WorkspaceError(f"Could not write {name} to workspace: {e}") from e
        return target

    @property
    def exists(self) -> bool:
        return self.root.exists()

    def cleanup(self) -> None:
        """Remove the workspace directory. Safe to call more than once."""
        if self._cleaned:
            return
        shutil.rmtree(self.root, ignore_errors=True)
        self._cleaned = True
        logger.debug(f"Removed workspace {self.root}")

    def __enter__(self) -> "Workspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
