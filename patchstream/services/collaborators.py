"""
Collaborator interfaces consumed and exposed by the edit engine
"""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from patchstream.models.operations import BlockOutcome
from patchstream.models.session import StatusSnapshot


class FileSystemProvider(Protocol):
    """Reads and writes project files by workspace-relative path"""

    def read(self, path: str) -> str:
        """Return the file content; raise FileNotFoundError if it does not exist"""
        ...

    def write(self, path: str, content: str) -> None:
        ...


class ShellRunner(Protocol):
    """Runs one command at a time and exposes its output as it arrives"""

    def run(self, command: str, *, interactive: bool = True) -> AsyncIterator[str]:
        """Start ``command`` and yield output fragments until it exits"""
        ...

    async def send_input(self, text: str) -> None:
        ...

    async def cancel(self) -> None:
        ...

    async def wait(self) -> int:
        """Exit code of the last command"""
        ...


class CompletionProvider(Protocol):
    """Model-completion transport"""

    def complete(self, prompt: str) -> AsyncIterator[str]:
        ...


class StatusProjector(Protocol):
    """Receives live progress and per-block outcomes for display"""

    def on_progress(self, snapshot: StatusSnapshot) -> None:
        ...

    def on_outcome(self, outcome: BlockOutcome) -> None:
        ...


class NullProjector:
    """Projector that discards everything"""

    def on_progress(self, snapshot: StatusSnapshot) -> None:
        pass

    def on_outcome(self, outcome: BlockOutcome) -> None:
        pass
