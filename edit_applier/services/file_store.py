"""
File Store - Read and atomically replace target files under a workspace root
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from edit_applier.utils.logger import setup_logger

from .errors import StorageError

logger = setup_logger(__name__)


class FileStore:
    """Workspace-rooted file access for edit targets"""

    def __init__(self, root: str | os.PathLike = "."):
        self.root = Path(root).expanduser().resolve()

    def resolve(self, target: str) -> Path:
        """Absolute path for a target; paths escaping the root are rejected"""
        if not target or not target.strip():
            raise StorageError("Target file path is empty")
        path = (self.root / target.strip()).resolve()
        try:
            path.relative_to(self.root)
        except ValueError:
            raise StorageError(f"Target '{target}' is outside the workspace root")
        return path

    def read(self, target: str) -> tuple[str, bool]:
        """Current content of the target straight from disk: (content, exists)"""
        path = self.resolve(target)
        if not path.exists():
            return "", False
        if not path.is_file():
            raise StorageError(f"Target '{target}' is not a regular file")
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read(), True
        except UnicodeDecodeError:
            raise StorageError(f"Target '{target}' is not valid UTF-8 text")
        except OSError as e:
            raise StorageError(f"Could not read '{target}': {e.strerror or e}")

    def write(self, target: str, content: str) -> None:
        """Replace the target in one step so readers see either the old or the new file"""
        path = self.resolve(target)
        tmp_path = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.tmp.")
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            if path.exists():
                os.chmod(tmp_path, path.stat().st_mode & 0o7777)
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            raise StorageError(f"Could not write '{target}': {e.strerror or e}")
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.info("Wrote %s (%d chars)", path.relative_to(self.root), len(content))
