"""
Repair Loop Controller - bounded recovery from patches that do not apply

A patch mismatch becomes a corrective prompt carrying the real file content.
The model's answer is parsed and applied like any other response. Each file
path gets at most ``max_attempts`` repairs per run; after that the mismatch is
reported to the caller as a terminal failure.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from patchstream.models.operations import (
    BlockOutcome,
    FileOutcome,
    OutcomeStatus,
    RepairRequest,
)
from patchstream.models.settings import DEFAULT_MAX_REPAIR_ATTEMPTS
from .collaborators import CompletionProvider
from .dispatcher import path_key
from .errors import RepairLimitExceeded
from .prompts import build_repair_prompt, build_task_prompt, with_system_prompt

logger = logging.getLogger(__name__)

ApplyStream = Callable[[AsyncIterator[str]], Awaitable[list[BlockOutcome]]]


class RepairState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    APPLYING = "applying"
    BUILDING_REPAIR_PROMPT = "building_repair_prompt"


@dataclass
class RunResult:
    """Final outcomes of one request, repairs included"""

    outcomes: list[BlockOutcome] = field(default_factory=list)
    repairs: list[RepairRequest] = field(default_factory=list)
    responses: int = 0

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)


def is_mismatch(outcome: BlockOutcome) -> bool:
    return isinstance(outcome, FileOutcome) and outcome.status == OutcomeStatus.PATCH_MISMATCH


class RepairLoopController:
    """Drives request -> apply -> repair cycles through the completion provider"""

    def __init__(
        self,
        completion: CompletionProvider,
        apply_stream: ApplyStream,
        max_attempts: int = DEFAULT_MAX_REPAIR_ATTEMPTS,
        on_repair: Callable[[RepairRequest], None] | None = None,
    ):
        self.completion = completion
        self.apply_stream = apply_stream
        self.max_attempts = max_attempts
        self.on_repair = on_repair
        self.state = RepairState.IDLE
        self._attempts: dict[str, int] = {}

    def attempts(self, path: str) -> int:
        return self._attempts.get(path_key(path), 0)

    def reset(self) -> None:
        self.state = RepairState.IDLE
        self._attempts = {}

    def next_request(self, outcome: FileOutcome) -> RepairRequest | None:
        """Repair request for a mismatch, or None once the path is out of attempts"""
        attempts = self.attempts(outcome.path)
        if attempts >= self.max_attempts:
            return None
        self._attempts[path_key(outcome.path)] = attempts + 1
        mismatch = outcome.mismatch
        return RepairRequest(
            path=outcome.path,
            error=outcome.error or (mismatch.describe() if mismatch else "Patch failed to apply"),
            current_content=mismatch.current_content if mismatch else "",
            attempt=attempts + 1,
        )

    def exhausted(self, outcome: FileOutcome) -> FileOutcome:
        error = RepairLimitExceeded(outcome.path, self.attempts(outcome.path), outcome.error or "")
        logger.warning("%s", error)
        return outcome.model_copy(update={"status": OutcomeStatus.REPAIR_EXHAUSTED, "error": str(error)})

    async def run(self, request: str) -> RunResult:
        """Send ``request`` to the model and apply the answer, repairing mismatches"""
        self._attempts = {}
        result = RunResult()
        try:
            queue = deque(await self._respond(build_task_prompt(request), result))
            while queue:
                outcome = queue.popleft()
                if not is_mismatch(outcome):
                    result.outcomes.append(outcome)
                    continue

                self.state = RepairState.BUILDING_REPAIR_PROMPT
                repair = self.next_request(outcome)
                if repair is None:
                    result.outcomes.append(self.exhausted(outcome))
                    continue

                logger.info("Requesting repair %d/%d for %s", repair.attempt, self.max_attempts, repair.path)
                result.repairs.append(repair)
                if self.on_repair is not None:
                    self.on_repair(repair)

                answers = await self._respond(with_system_prompt(build_repair_prompt(repair)), result)
                key = path_key(outcome.path)
                if not any(isinstance(o, FileOutcome) and path_key(o.path) == key for o in answers):
                    # the answer left the file alone; the mismatch still stands
                    queue.append(outcome)
                queue.extend(answers)
            return result
        finally:
            self.state = RepairState.IDLE

    async def _respond(self, prompt: str, result: RunResult) -> list[BlockOutcome]:
        self.state = RepairState.AWAITING_RESPONSE
        result.responses += 1
        return await self.apply_stream(self._track(self.completion.complete(prompt)))

    async def _track(self, chunks: AsyncIterator[str]) -> AsyncIterator[str]:
        async for chunk in chunks:
            self.state = RepairState.APPLYING
            yield chunk
