"""
Edit Dispatcher - routes complete blocks to the patch resolver or the shell guard

Work for the same file path (and all shell commands) is chained so it runs
strictly in arrival order; independent paths proceed concurrently with each
other and with parsing of the rest of the response.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import posixpath
from typing import Awaitable, Callable

from patchstream.models.blocks import Block, EditKind, FileBlock, ShellBlock
from patchstream.models.operations import (
    BlockOutcome,
    FileEditOperation,
    FileOutcome,
    OutcomeStatus,
    PatchMismatch,
    ShellOutcome,
)
from .collaborators import FileSystemProvider, NullProjector, StatusProjector
from .command_guard import InteractiveCommandGuard
from .diff_generator import DiffGenerator
from .errors import EngineError, StructuralValidationError
from .patch_resolver import PatchResolver
from .validation import validate_file_block

logger = logging.getLogger(__name__)

_SHELL_QUEUE = "shell"


def path_key(path: str) -> str:
    return "file:" + posixpath.normpath(path.replace("\\", "/"))


class EditDispatcher:
    """Applies complete blocks and reports one outcome per block"""

    def __init__(
        self,
        fs: FileSystemProvider,
        guard: InteractiveCommandGuard,
        resolver: PatchResolver | None = None,
        diff_generator: DiffGenerator | None = None,
        projector: StatusProjector | None = None,
    ):
        self.fs = fs
        self.guard = guard
        self.resolver = resolver or PatchResolver()
        self.diff_generator = diff_generator or DiffGenerator()
        self.projector = projector or NullProjector()
        self.running_command: str | None = None
        self._entries: list[tuple[Block, asyncio.Task]] = []
        self._tails: dict[str, asyncio.Task] = {}

    @property
    def pending(self) -> int:
        return sum(1 for _, task in self._entries if not task.done())

    def submit(self, block: Block, rejection: StructuralValidationError | None = None) -> asyncio.Task | None:
        """Schedule a complete block; thinking and explanation blocks are not dispatched"""
        if not block.is_complete:
            raise ValueError(f"Block {block.block_id} is not complete and cannot be dispatched")

        if isinstance(block, ShellBlock):
            key = _SHELL_QUEUE
            work = functools.partial(self._run_shell, block)
        elif isinstance(block, FileBlock):
            key = path_key(block.path)
            work = functools.partial(self._apply_file, block)
        else:
            return None

        if rejection is not None:
            work = functools.partial(self._reject, block, rejection)

        previous = self._tails.get(key)
        task = asyncio.create_task(self._after(previous, work))
        self._tails[key] = task
        self._entries.append((block, task))
        return task

    async def drain(self) -> list[BlockOutcome]:
        """Wait for everything submitted so far; outcomes come back in submission order"""
        entries, self._entries = self._entries, []
        if entries:
            await asyncio.gather(*(task for _, task in entries), return_exceptions=True)

        outcomes: list[BlockOutcome] = []
        for block, task in entries:
            if task.cancelled():
                outcomes.append(_failed(block, OutcomeStatus.CANCELLED, "Cancelled"))
            elif task.exception() is not None:
                error = task.exception()
                logger.error("Block %s failed unexpectedly", block.block_id, exc_info=error)
                outcomes.append(_failed(block, OutcomeStatus.ERROR, str(error)))
            else:
                outcomes.append(task.result())
        return outcomes

    async def cancel(self) -> None:
        """Stop all pending work, including running shell commands"""
        tasks = [task for _, task in self._entries if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def reset(self) -> None:
        await self.cancel()
        self._entries = []
        self._tails = {}
        self.running_command = None

    # ========== Work items ==========

    async def _after(
        self,
        previous: asyncio.Task | None,
        work: Callable[[], Awaitable[BlockOutcome]],
    ) -> BlockOutcome:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        outcome = await work()
        self.projector.on_outcome(outcome)
        return outcome

    async def _reject(self, block: Block, error: StructuralValidationError) -> BlockOutcome:
        logger.warning("Rejected block %s: %s", block.block_id, error)
        return _failed(block, OutcomeStatus.INVALID, str(error))

    async def _run_shell(self, block: ShellBlock) -> ShellOutcome:
        self.running_command = block.command
        try:
            return await self.guard.run(block.command, block_id=block.block_id)
        except (OSError, RuntimeError) as e:
            logger.warning("Could not run %r: %s", block.command, e)
            return ShellOutcome(
                block_id=block.block_id,
                command=block.command,
                status=OutcomeStatus.ERROR,
                error=str(e),
            )
        finally:
            self.running_command = None

    async def _apply_file(self, block: FileBlock) -> FileOutcome:
        try:
            validate_file_block(block)
        except StructuralValidationError as e:
            return await self._reject(block, e)

        op = FileEditOperation.from_block(block)
        try:
            # read at apply time so earlier edits to this path are visible
            current = self._read_current(op)
            result = self.resolver.apply(op, current)
            if isinstance(result, PatchMismatch):
                return FileOutcome(
                    block_id=block.block_id,
                    path=op.path,
                    edit_kind=op.edit_kind,
                    status=OutcomeStatus.PATCH_MISMATCH,
                    error=result.describe(),
                    mismatch=result,
                )
            self.fs.write(op.path, result)
        except (OSError, ValueError, EngineError) as e:
            logger.warning("Could not apply edit to %s: %s", op.path, e)
            return FileOutcome(
                block_id=block.block_id,
                path=op.path,
                edit_kind=op.edit_kind,
                status=OutcomeStatus.ERROR,
                error=str(e),
            )

        logger.info("Applied %s to %s", op.edit_kind.value, op.path)
        return FileOutcome(
            block_id=block.block_id,
            path=op.path,
            edit_kind=op.edit_kind,
            status=OutcomeStatus.SUCCESS,
            diff=self.diff_generator.generate_diff(current, result, op.path),
        )

    def _read_current(self, op: FileEditOperation) -> str | None:
        try:
            return self.fs.read(op.path)
        except FileNotFoundError:
            return None
        except EngineError:
            raise
        except (OSError, ValueError) as e:
            if op.edit_kind != EditKind.CREATE:
                raise
            # a create replaces whatever is there, readable or not
            logger.info("Overwriting unreadable %s: %s", op.path, e)
            return None


def _failed(block: Block, status: OutcomeStatus, error: str) -> BlockOutcome:
    if isinstance(block, ShellBlock):
        return ShellOutcome(block_id=block.block_id, command=block.command, status=status, error=error)
    if isinstance(block, FileBlock):
        return FileOutcome(
            block_id=block.block_id,
            path=block.path,
            edit_kind=block.edit_kind,
            status=status,
            error=error,
        )
    raise TypeError(f"Block {block.block_id} of type {block.type} is not dispatched")
