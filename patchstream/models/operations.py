"""Edit operations, failures and per-block outcomes"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel

from .blocks import EditKind, FileBlock
from .diff import DiffResult


class FileEditOperation(BaseModel):
    """Normalized instruction derived from a complete file block"""

    path: str
    edit_kind: EditKind
    content: str | None = None
    search: str | None = None
    replace: str | None = None

    @classmethod
    def from_block(cls, block: FileBlock) -> "FileEditOperation":
        if block.edit_kind is None:
            raise ValueError(f"File block for {block.path!r} has no edit kind")
        return cls(
            path=block.path,
            edit_kind=block.edit_kind,
            content=block.content,
            search=block.search,
            replace=block.replace,
        )


class MismatchReason(str, Enum):
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    MISSING_FILE = "missing_file"


class PatchMismatch(BaseModel):
    """A patch whose search text does not occur exactly once"""

    path: str
    search: str
    current_content: str
    occurrences: int = 0
    reason: MismatchReason = MismatchReason.NOT_FOUND

    def describe(self) -> str:
        if self.reason == MismatchReason.MISSING_FILE:
            return f"Cannot patch {self.path}: the file does not exist"
        if self.reason == MismatchReason.AMBIGUOUS:
            return (
                f"Search block is ambiguous in {self.path}: "
                f"found {self.occurrences} occurrences, expected exactly 1"
            )
        return f"Search block not found in {self.path}"


class RepairRequest(BaseModel):
    """Payload used to build the next prompt after a failed patch"""

    path: str
    error: str
    current_content: str
    attempt: int = 1


class PromptKind(str, Enum):
    YES_NO = "yes_no"
    CHOICE = "choice"
    TEXT = "text"
    PASSWORD = "password"


class InteractivePrompt(BaseModel):
    """A prompt detected in command output"""

    kind: PromptKind
    question_text: str
    options: list[str] | None = None
    chosen_response: str | None = None


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    PATCH_MISMATCH = "patch_mismatch"
    INVALID = "invalid"
    SHELL_ERROR = "shell_error"
    PROMPT_TIMEOUT = "prompt_timeout"
    REPAIR_EXHAUSTED = "repair_exhausted"
    CANCELLED = "cancelled"
    ERROR = "error"


class FileOutcome(BaseModel):
    """Result of applying one file block"""

    kind: Literal["file"] = "file"
    block_id: int
    path: str
    status: OutcomeStatus
    edit_kind: EditKind | None = None
    error: str | None = None
    mismatch: PatchMismatch | None = None
    diff: DiffResult | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class ShellOutcome(BaseModel):
    """Result of running one shell block"""

    kind: Literal["shell"] = "shell"
    block_id: int
    command: str
    status: OutcomeStatus
    exit_code: int | None = None
    output: str = ""
    interactive: bool = False
    prompts: list[InteractivePrompt] = []
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


BlockOutcome = Union[FileOutcome, ShellOutcome]
