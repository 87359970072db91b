from __future__ import annotations

import asyncio

import pytest

from patchstream.models.settings import EngineSettings
from patchstream.services.session import WorkspaceSession

HANG = None  # scripted output marker: block until cancelled


class MemoryFileSystem:
    """In-memory FileSystemProvider"""

    def __init__(self, files: dict[str, str] | None = None):
        self.files = dict(files or {})
        self.writes: list[str] = []

    def read(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write(self, path: str, content: str) -> None:
        self.files[path] = content
        self.writes.append(path)


class ScriptedShellRunner:
    """ShellRunner that replays canned output per command"""

    def __init__(self, scripts: dict[str, tuple[list, int]] | None = None):
        self.scripts = dict(scripts or {})
        self.commands: list[tuple[str, bool]] = []
        self.inputs: list[str] = []
        self.cancelled = 0
        self._exit_code = 0

    async def run(self, command: str, *, interactive: bool = True):
        self.commands.append((command, interactive))
        fragments, self._exit_code = self.scripts.get(command, ([], 0))
        for fragment in fragments:
            await asyncio.sleep(0)
            if fragment is HANG:
                await asyncio.Event().wait()
            yield fragment

    async def send_input(self, text: str) -> None:
        self.inputs.append(text)

    async def cancel(self) -> None:
        self.cancelled += 1

    async def wait(self) -> int:
        return self._exit_code


class ScriptedCompletion:
    """CompletionProvider returning one canned response per call"""

    def __init__(self, responses: list[list[str] | str] | None = None):
        self.responses = list(responses or [])
        self.prompts: list[str] = []

    async def complete(self, prompt: str):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, str):
            response = [response]
        for chunk in response:
            await asyncio.sleep(0)
            yield chunk


class RecordingProjector:
    def __init__(self):
        self.progress = []
        self.outcomes = []
        self.repairs = []

    def on_progress(self, snapshot):
        self.progress.append(snapshot)

    def on_outcome(self, outcome):
        self.outcomes.append(outcome)

    def on_repair(self, request):
        self.repairs.append(request)


@pytest.fixture
def fs():
    return MemoryFileSystem()


@pytest.fixture
def runner():
    return ScriptedShellRunner()


@pytest.fixture
def completion():
    return ScriptedCompletion()


@pytest.fixture
def make_session(fs, runner, completion):
    def factory(**settings) -> WorkspaceSession:
        return WorkspaceSession(
            "test-session",
            fs=fs,
            runner=runner,
            completion=completion,
            settings=EngineSettings(**settings),
            projector=RecordingProjector(),
        )

    return factory
