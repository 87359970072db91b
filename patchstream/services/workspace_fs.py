"""
Local filesystem provider rooted at a project directory
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import WorkspaceViolation

logger = logging.getLogger(__name__)


class LocalFileSystem:
    """Workspace-relative file access that refuses to leave the project root"""

    def __init__(self, root: str | Path, max_bytes: int = 5_000_000):
        root_path = Path(root).expanduser()
        try:
            root_path = root_path.resolve()
        except OSError:
            root_path = root_path.absolute()
        self.root = root_path
        self.max_bytes = max_bytes

    def resolve(self, path: str) -> Path:
        """Resolve a relative path inside the workspace"""
        rel = Path(path)
        if rel.is_absolute():
            raise WorkspaceViolation(f"Absolute paths are not allowed: {path}")
        candidate = (self.root / rel).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as e:
            raise WorkspaceViolation(f"Path escapes workspace: {path}") from e
        if candidate == self.root:
            raise WorkspaceViolation(f"Path does not name a file: {path!r}")
        return candidate

    def read(self, path: str) -> str:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(path)
        data = target.read_bytes()
        if len(data) > self.max_bytes:
            raise ValueError(f"Refusing to read more than {self.max_bytes} bytes from {path}")
        return data.decode("utf-8")

    def write(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the content byte-for-byte, no platform translation
        with open(target, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        logger.debug("Wrote %s (%d chars)", path, len(content))

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()
