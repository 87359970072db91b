"""
Workspace sessions - one parser, dispatcher and repair loop per conversation

Nothing here is shared between sessions; resetting a session discards its
stream buffer, emitted-block registry, per-path queues and repair counters.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, AsyncIterator, Callable

from patchstream.models.operations import BlockOutcome, RepairRequest
from patchstream.models.session import StatusSnapshot, StreamEvent
from patchstream.models.settings import EngineSettings
from .collaborators import (
    CompletionProvider,
    FileSystemProvider,
    NullProjector,
    ShellRunner,
    StatusProjector,
)
from .command_guard import InteractiveCommandGuard
from .dispatcher import EditDispatcher
from .errors import StructuralValidationError
from .llm_service import LLMService
from .repair_loop import RepairLoopController, RunResult, is_mismatch
from .shell_runner import LocalShellRunner
from .stream_parser import BlockStreamParser, StreamUpdate
from .validation import ResponseValidator
from .workspace_fs import LocalFileSystem

logger = logging.getLogger(__name__)


async def _single_chunk(text: str) -> AsyncIterator[str]:
    yield text


class QueueProjector:
    """Projects progress and outcomes into an asyncio.Queue of StreamEvents"""

    def __init__(self, queue: asyncio.Queue | None = None):
        self.queue: asyncio.Queue = queue or asyncio.Queue()
        self._last_snapshot: StatusSnapshot | None = None

    def on_progress(self, snapshot: StatusSnapshot) -> None:
        if snapshot == self._last_snapshot:
            return
        self._last_snapshot = snapshot
        self.queue.put_nowait(StreamEvent(type="progress", snapshot=snapshot))

    def on_outcome(self, outcome: BlockOutcome) -> None:
        self.queue.put_nowait(StreamEvent(type="outcome", outcome=outcome))

    def on_repair(self, request: RepairRequest) -> None:
        self.queue.put_nowait(StreamEvent(type="repair", repair=request))


class WorkspaceSession:
    """Turns streamed model responses into applied changes for one project"""

    def __init__(
        self,
        session_id: str,
        fs: FileSystemProvider,
        runner: ShellRunner,
        completion: CompletionProvider,
        settings: EngineSettings | None = None,
        projector: StatusProjector | None = None,
    ):
        self.session_id = session_id
        self.fs = fs
        self.settings = settings or EngineSettings()
        self.projector: StatusProjector = projector or NullProjector()
        self.parser = BlockStreamParser(max_tag_length=self.settings.max_tag_length)
        self.validator = ResponseValidator(require_thinking=self.settings.require_thinking)
        self.guard = InteractiveCommandGuard(runner, timeout_seconds=self.settings.shell_timeout_seconds)
        self.dispatcher = EditDispatcher(fs, self.guard, projector=self.projector)
        self.repair_loop = RepairLoopController(
            completion,
            self.apply_stream,
            max_attempts=self.settings.max_repair_attempts,
            on_repair=self._on_repair,
        )
        self._run_lock = asyncio.Lock()
        self._current_run: asyncio.Task | None = None

    def set_projector(self, projector: StatusProjector | None) -> None:
        self.projector = projector or NullProjector()
        self.dispatcher.projector = self.projector

    # ========== Pipeline ==========

    async def apply_stream(self, chunks: AsyncIterator[str]) -> list[BlockOutcome]:
        """Parse one streamed response and apply its blocks as they complete"""
        self.parser.reset()
        self.validator.reset()
        try:
            async for chunk in chunks:
                self._handle(self.parser.feed(chunk))
            self._handle(self.parser.finish())
        except asyncio.CancelledError:
            await self.dispatcher.cancel()
            raise
        except Exception:
            # keep already-dispatched work consistent before reporting the stream failure
            await self.dispatcher.drain()
            raise

        gaps = self.parser.open_blocks()
        if gaps:
            logger.info(
                "Response ended with %d unclosed block(s): %s",
                len(gaps),
                ", ".join(f"{block.type}#{block.block_id}" for block in gaps),
            )
        return await self.dispatcher.drain()

    async def apply_text(self, text: str) -> list[BlockOutcome]:
        """Apply a complete response without involving the model"""
        async with self._run_lock:
            return await self.apply_stream(_single_chunk(text))

    async def run(self, prompt: str) -> RunResult:
        """Send a request to the model and apply the answer, repairing mismatches"""
        async with self._run_lock:
            self._current_run = asyncio.current_task()
            try:
                return await self.repair_loop.run(prompt)
            finally:
                self._current_run = None

    def pending_repairs(self, outcomes: list[BlockOutcome]) -> list[RepairRequest]:
        """Repair payloads for mismatches a caller wants to resolve itself"""
        requests = []
        for outcome in outcomes:
            if is_mismatch(outcome) and outcome.mismatch is not None:
                requests.append(
                    RepairRequest(
                        path=outcome.path,
                        error=outcome.error or outcome.mismatch.describe(),
                        current_content=outcome.mismatch.current_content,
                    )
                )
        return requests

    def _handle(self, update: StreamUpdate) -> None:
        for block in update.completed:
            rejection = None
            try:
                self.validator.check(block)
            except StructuralValidationError as e:
                rejection = e
            self.dispatcher.submit(block, rejection)
        self.projector.on_progress(self.status(update.status))

    def status(self, snapshot: StatusSnapshot | None = None) -> StatusSnapshot:
        snapshot = snapshot or self.parser.status()
        return snapshot.model_copy(update={"running_command": self.dispatcher.running_command})

    def _on_repair(self, request: RepairRequest) -> None:
        on_repair = getattr(self.projector, "on_repair", None)
        if on_repair is not None:
            on_repair(request)

    # ========== Lifecycle ==========

    async def cancel(self) -> None:
        """Abort the running request, its shell commands and pending edits"""
        task = self._current_run
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self.dispatcher.cancel()

    async def reset(self) -> None:
        await self.cancel()
        await self.dispatcher.reset()
        self.parser.reset()
        self.validator.reset()
        self.repair_loop.reset()
        logger.info("Session %s reset", self.session_id)


SessionFactory = Callable[[str, Path, EngineSettings], WorkspaceSession]


def build_local_session(
    session_id: str,
    workspace_root: Path,
    settings: EngineSettings,
    config: dict[str, Any],
) -> WorkspaceSession:
    """Session backed by the local filesystem, a local shell and the configured model"""
    return WorkspaceSession(
        session_id,
        fs=LocalFileSystem(workspace_root),
        runner=LocalShellRunner(workspace_root),
        completion=LLMService(config),
        settings=settings,
    )


class SessionRegistry:
    """Live sessions of one application instance"""

    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._sessions: dict[str, WorkspaceSession] = {}

    def create(self, workspace_root: str | Path, settings: EngineSettings) -> WorkspaceSession:
        session_id = str(uuid.uuid4())
        root = Path(workspace_root).expanduser().resolve()
        session = self._factory(session_id, root, settings)
        self._sessions[session_id] = session
        logger.info("Created session %s for %s", session_id, root)
        return session

    def get(self, session_id: str) -> WorkspaceSession:
        return self._sessions[session_id]

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def remove(self, session_id: str) -> None:
        session = self._sessions.pop(session_id)
        await session.reset()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.remove(session_id)
