"""Diff models attached to applied file edits"""

from __future__ import annotations

from pydantic import BaseModel


class DiffHunk(BaseModel):
    """One changed region of an applied edit"""

    start_line: int  # 1-indexed, in the content before the edit
    end_line: int
    original_content: str
    new_content: str
    change_type: str  # "add", "modify", "delete"


class DiffResult(BaseModel):
    """Before/after summary of one file write"""

    file_path: str
    hunks: list[DiffHunk]
    unified_diff: str
    lines_added: int = 0
    lines_removed: int = 0
