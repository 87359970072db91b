"""
Stream parser - StreamBuffer plus tokenizer and accumulator for one response
"""

from __future__ import annotations

from dataclasses import dataclass, field

from patchstream.models.blocks import (
    Block,
    ExplanationBlock,
    FileBlock,
    ShellBlock,
    ThinkingBlock,
)
from patchstream.models.session import StatusSnapshot, StreamStatus
from patchstream.models.settings import DEFAULT_MAX_TAG_LENGTH
from .accumulator import BlockAccumulator
from .tokenizer import BlockTokenizer


@dataclass
class StreamUpdate:
    """What one chunk made available"""

    completed: list[Block] = field(default_factory=list)
    changed: list[Block] = field(default_factory=list)
    status: StatusSnapshot = field(default_factory=StatusSnapshot)


class BlockStreamParser:
    """Session-scoped parser for a streamed response"""

    def __init__(self, max_tag_length: int = DEFAULT_MAX_TAG_LENGTH):
        self._tokenizer = BlockTokenizer(max_tag_length=max_tag_length)
        self._accumulator = BlockAccumulator()
        self._chunks: list[str] = []
        self._finished = False

    @property
    def buffer(self) -> str:
        """Everything received for the current response"""
        return "".join(self._chunks)

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, chunk: str) -> StreamUpdate:
        if not chunk:
            return StreamUpdate(status=self.status())
        self._chunks.append(chunk)
        self._finished = False
        update = self._accumulator.feed(self._tokenizer.consume(chunk))
        return StreamUpdate(completed=update.completed, changed=update.changed, status=self.status())

    def finish(self) -> StreamUpdate:
        """End of stream: flush held-back text; unclosed blocks stay open"""
        update = self._accumulator.feed(self._tokenizer.finish())
        self._finished = True
        return StreamUpdate(completed=update.completed, changed=update.changed, status=self.status())

    def reset(self) -> None:
        self._tokenizer.reset()
        self._accumulator.reset()
        self._chunks = []
        self._finished = False

    def blocks(self) -> list[Block]:
        return self._accumulator.snapshot()

    def open_blocks(self) -> list[Block]:
        return self._accumulator.open_blocks()

    def has_incomplete_blocks(self) -> bool:
        return bool(self._accumulator.open_blocks())

    # ========== Partial state for progress display ==========

    def incomplete_thinking(self) -> str | None:
        for block in self._accumulator.open_blocks():
            if isinstance(block, ThinkingBlock):
                return block.text
        return None

    def incomplete_shell(self) -> str | None:
        for block in self._accumulator.open_blocks():
            if isinstance(block, ShellBlock):
                return block.command
        return None

    def incomplete_file(self) -> FileBlock | None:
        for block in self._accumulator.open_blocks():
            if isinstance(block, FileBlock):
                return block
        return None

    def status(self) -> StatusSnapshot:
        open_blocks = self._accumulator.open_blocks()
        if not open_blocks:
            finished = self._finished and bool(self._chunks)
            return StatusSnapshot(status=StreamStatus.COMPLETE if finished else StreamStatus.IDLE)

        latest = open_blocks[-1]
        snapshot = StatusSnapshot(open_blocks=open_blocks)
        if isinstance(latest, ThinkingBlock):
            snapshot.status = StreamStatus.THINKING
            snapshot.thinking = latest.text
        elif isinstance(latest, ShellBlock):
            snapshot.status = StreamStatus.SHELL
            snapshot.shell_command = latest.command
        elif isinstance(latest, FileBlock):
            snapshot.status = StreamStatus.WRITING
            snapshot.current_file = latest.path
        elif isinstance(latest, ExplanationBlock):
            snapshot.status = StreamStatus.EXPLAINING
        return snapshot


def parse_response(text: str, max_tag_length: int = DEFAULT_MAX_TAG_LENGTH) -> list[Block]:
    """Parse a complete response in one go"""
    parser = BlockStreamParser(max_tag_length=max_tag_length)
    parser.feed(text)
    parser.finish()
    return parser.blocks()
