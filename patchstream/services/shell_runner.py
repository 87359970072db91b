"""
Local shell runner - asyncio subprocess implementation of the ShellRunner collaborator
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
from pathlib import Path
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class LocalShellRunner:
    """Runs one shell command at a time inside the workspace directory"""

    def __init__(self, cwd: str | Path, env: dict[str, str] | None = None, read_size: int = 4096):
        self.cwd = str(cwd)
        self.env = env or {}
        self.read_size = read_size
        self._process: asyncio.subprocess.Process | None = None

    async def run(self, command: str, *, interactive: bool = True) -> AsyncIterator[str]:
        """Start ``command`` and yield its combined output as it arrives

        Output is yielded as soon as it is readable, so a prompt that is not
        newline-terminated still reaches the caller.
        """
        env = {**os.environ, **self.env}
        if not interactive:
            env.setdefault("CI", "1")
        self._process = await asyncio.create_subprocess_shell(
            command,
            cwd=self.cwd,
            env=env,
            stdin=asyncio.subprocess.PIPE if interactive else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=hasattr(os, "killpg"),
        )
        logger.debug("Started pid %s: %s", self._process.pid, command)

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        stdout = self._process.stdout
        if stdout is None:
            raise RuntimeError(f"No output pipe for pid {self._process.pid}")
        while True:
            data = await stdout.read(self.read_size)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    async def send_input(self, text: str) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise RuntimeError("No interactive command is running")
        process.stdin.write(text.encode("utf-8"))
        await process.stdin.drain()

    async def cancel(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            # the whole process group, so children of the shell do not keep the pipe open
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            return
        await process.wait()
        logger.info("Cancelled pid %s", process.pid)

    async def wait(self) -> int:
        if self._process is None:
            raise RuntimeError("No command has been started")
        return await self._process.wait()
