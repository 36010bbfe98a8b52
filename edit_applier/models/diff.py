"""Diff-related data models"""

from __future__ import annotations

from pydantic import BaseModel


class DiffHunk(BaseModel):
    """A single change hunk between pre-edit and merged content"""

    start_line: int  # 1-indexed in the original
    end_line: int
    new_start_line: int  # 1-indexed in the merged content
    new_end_line: int
    original_content: str
    new_content: str
    change_type: str  # "add", "modify", "delete"
    requested: bool = True  # new lines all come from the update snippet


class DiffResult(BaseModel):
    """What an applied edit changed in a file"""

    file_path: str
    hunks: list[DiffHunk]
    unified_diff: str
    lines_added: int = 0
    lines_removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.hunks)

    @property
    def unrequested_hunks(self) -> list[DiffHunk]:
        return [hunk for hunk in self.hunks if not hunk.requested]
