"""Session API and status projection models"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from .blocks import Block
from .operations import BlockOutcome, RepairRequest


class StreamStatus(str, Enum):
    """What the response is doing right now, for progress display"""

    IDLE = "idle"
    THINKING = "thinking"
    SHELL = "shell"
    WRITING = "writing"
    EXPLAINING = "explaining"
    COMPLETE = "complete"


class StatusSnapshot(BaseModel):
    """Partial state of the response currently streaming"""

    status: StreamStatus = StreamStatus.IDLE
    thinking: str | None = None
    shell_command: str | None = None  # command still being streamed
    running_command: str | None = None  # command the guard is executing
    current_file: str | None = None
    open_blocks: list[Block] = []


class CreateSessionRequest(BaseModel):
    """Request to open a workspace session"""

    workspace_root: str | None = None


class CreateSessionResponse(BaseModel):
    session_id: str
    workspace_root: str


class RunRequest(BaseModel):
    """User request to send to the model"""

    prompt: str


class ApplyResponseRequest(BaseModel):
    """A complete model response to apply without calling the model"""

    text: str


class ApplyResponseResult(BaseModel):
    session_id: str
    blocks: list[Block]
    outcomes: list[BlockOutcome]
    pending_repairs: list[RepairRequest] = []


class StreamEvent(BaseModel):
    """SSE stream event"""

    type: str  # "progress", "outcome", "repair", "done", "error"
    snapshot: StatusSnapshot | None = None
    outcome: BlockOutcome | None = None
    repair: RepairRequest | None = None
    metadata: dict | None = None
    done: bool = False
    error: str | None = None
