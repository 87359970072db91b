"""Block data models parsed from a streamed model response"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class BlockType(str, Enum):
    """Top-level tags of the response protocol"""

    THINKING = "thinking"
    SHELL = "shell"
    FILE = "file"
    EXPLANATION = "explanation"


class EditKind(str, Enum):
    """How a file block changes its target"""

    CREATE = "create"
    PATCH = "patch"


class _BlockBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    block_id: int
    is_complete: bool = False


class ThinkingBlock(_BlockBase):
    """Model reasoning, shown to the user but never executed"""

    type: Literal["thinking"] = "thinking"
    text: str = ""


class ShellBlock(_BlockBase):
    """A shell command to run inside the workspace"""

    type: Literal["shell"] = "shell"
    command: str = ""


class FileBlock(_BlockBase):
    """A file edit: full content for create, search/replace for patch"""

    type: Literal["file"] = "file"
    path: str = ""
    edit_kind: EditKind | None = None  # None when the type attribute is unknown
    raw_type: str = ""
    content: str | None = None
    search: str | None = None
    replace: str | None = None


class ExplanationBlock(_BlockBase):
    """Closing summary of what the response changed"""

    type: Literal["explanation"] = "explanation"
    text: str = ""


Block = Annotated[
    Union[ThinkingBlock, ShellBlock, FileBlock, ExplanationBlock],
    Field(discriminator="type"),
]
