"""Models module - Pydantic data models"""

from .blocks import (
    Block,
    BlockType,
    EditKind,
    ExplanationBlock,
    FileBlock,
    ShellBlock,
    ThinkingBlock,
)
from .diff import DiffHunk, DiffResult
from .operations import (
    BlockOutcome,
    FileEditOperation,
    FileOutcome,
    InteractivePrompt,
    MismatchReason,
    OutcomeStatus,
    PatchMismatch,
    PromptKind,
    RepairRequest,
    ShellOutcome,
)
from .session import (
    ApplyResponseRequest,
    ApplyResponseResult,
    CreateSessionRequest,
    CreateSessionResponse,
    RunRequest,
    StatusSnapshot,
    StreamEvent,
    StreamStatus,
)
from .settings import EngineSettings

__all__ = [
    # Block models
    "Block",
    "BlockType",
    "EditKind",
    "ExplanationBlock",
    "FileBlock",
    "ShellBlock",
    "ThinkingBlock",
    # Diff models
    "DiffHunk",
    "DiffResult",
    # Operation models
    "BlockOutcome",
    "FileEditOperation",
    "FileOutcome",
    "InteractivePrompt",
    "MismatchReason",
    "OutcomeStatus",
    "PatchMismatch",
    "PromptKind",
    "RepairRequest",
    "ShellOutcome",
    # Session models
    "ApplyResponseRequest",
    "ApplyResponseResult",
    "CreateSessionRequest",
    "CreateSessionResponse",
    "RunRequest",
    "StatusSnapshot",
    "StreamEvent",
    "StreamStatus",
    # Settings
    "EngineSettings",
]
