"""
Interactive Command Guard - keeps shell commands from hanging on prompts

Commands that look interactive run with an open stdin; their output is
scanned line by line and every detected prompt gets exactly one default
answer. Prompts without a safe default (passwords) fail the command instead
of leaving it waiting.
"""

from __future__ import annotations

import asyncio
import logging
import re

from patchstream.models.operations import (
    InteractivePrompt,
    OutcomeStatus,
    PromptKind,
    ShellOutcome,
)
from .collaborators import ShellRunner
from .errors import InteractivePromptTimeout, ShellExecutionError

logger = logging.getLogger(__name__)

MAX_CAPTURED_OUTPUT = 100_000

INTERACTIVE_COMMAND_PATTERNS = [
    re.compile(r"\b(npm|pnpm|yarn)\s+(install|i|add|init|create|config|audit\s+fix)\b", re.I),
    re.compile(r"\bnpx\s+(--yes\s+)?create-", re.I),
    re.compile(r"\b(pip3?|python3?\s+-m\s+pip)\s+(install|uninstall)\b", re.I),
    re.compile(r"\bgit\s+(init|config)\b", re.I),
    re.compile(r"\bdocker\s+(build|run)\b", re.I),
    re.compile(r"\b(apt|apt-get)\s+(install|upgrade|remove)\b", re.I),
    re.compile(r"(^|[\s;&|(])(sudo|su|doas)\b", re.I),
    re.compile(r"\b(ssh|scp|sftp|telnet)\b", re.I),
    re.compile(r"\b(read|select|choose)\b", re.I),
]

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")

_YES_NO_RE = re.compile(r"[(\[]\s*y(?:es)?\s*/\s*n(?:o)?\s*[)\]]", re.I)
_YES_NO_QUESTION_RE = re.compile(r"\b(send anonymous usage data|allow telemetry)\?", re.I)
_OPTION_LIST_RE = re.compile(r"[(\[]([^()\[\]]*[,/][^()\[\]]*)[)\]]")
_CHOICE_CUE_RE = re.compile(r"\?|\b(select|choose|pick)\b", re.I)
_OPTION_SPLIT_RE = re.compile(r"\s*[,/]\s*")
_PASSWORD_RE = re.compile(r"\b(password|passphrase|passcode)\b[^:]*:\s*$", re.I)
_TEXT_RE = re.compile(r"\b(enter|input|provide|specify)\b[^:]*:\s*$", re.I)


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def classify(command: str) -> bool:
    """Whether ``command`` is likely to ask for input"""
    return any(pattern.search(command) for pattern in INTERACTIVE_COMMAND_PATTERNS)


def default_response(prompt: InteractivePrompt) -> str | None:
    """Answer to send for a prompt, or None when there is no safe default"""
    if prompt.kind == PromptKind.YES_NO:
        return "Y"
    if prompt.kind == PromptKind.CHOICE:
        return prompt.options[0] if prompt.options else None
    if prompt.kind == PromptKind.TEXT:
        return ""
    return None


def _match_yes_no(line: str) -> InteractivePrompt | None:
    if _YES_NO_RE.search(line) or _YES_NO_QUESTION_RE.search(line):
        return InteractivePrompt(kind=PromptKind.YES_NO, question_text=line.strip())
    return None


def _match_choice(line: str) -> InteractivePrompt | None:
    if not _CHOICE_CUE_RE.search(line):
        return None
    match = _OPTION_LIST_RE.search(line)
    if not match:
        return None
    options = [option.strip() for option in _OPTION_SPLIT_RE.split(match.group(1)) if option.strip()]
    if len(options) < 2:
        return None
    return InteractivePrompt(kind=PromptKind.CHOICE, question_text=line.strip(), options=options)


def _match_password(line: str) -> InteractivePrompt | None:
    if _PASSWORD_RE.search(line):
        return InteractivePrompt(kind=PromptKind.PASSWORD, question_text=line.strip())
    return None


def _match_text(line: str) -> InteractivePrompt | None:
    if _TEXT_RE.search(line):
        return InteractivePrompt(kind=PromptKind.TEXT, question_text=line.strip())
    return None


# checked in this order across all lines
_PROMPT_MATCHERS = (_match_yes_no, _match_choice, _match_password, _match_text)


def scan_for_prompt(output: str) -> InteractivePrompt | None:
    """Find an interactive prompt in command output, with its default answer filled in"""
    lines = [line for line in _LINE_BREAK_RE.split(strip_ansi(output)) if line.strip()]
    for matcher in _PROMPT_MATCHERS:
        for line in lines:
            prompt = matcher(line)
            if prompt is not None:
                prompt.chosen_response = default_response(prompt)
                return prompt
    return None


class InteractiveCommandGuard:
    """Runs shell commands through a ShellRunner and answers their prompts"""

    def __init__(self, runner: ShellRunner, timeout_seconds: float | None = None):
        self.runner = runner
        self.timeout_seconds = timeout_seconds

    async def run(self, command: str, block_id: int = 0) -> ShellOutcome:
        interactive = classify(command)
        if interactive:
            logger.info("Running likely-interactive command with prompt guard: %s", command)

        captured: list[str] = []
        prompts: list[InteractivePrompt] = []

        def outcome(status: OutcomeStatus, **kwargs) -> ShellOutcome:
            output = "".join(captured)[-MAX_CAPTURED_OUTPUT:]
            return ShellOutcome(
                block_id=block_id,
                command=command,
                status=status,
                output=output,
                interactive=interactive,
                prompts=prompts,
                **kwargs,
            )

        try:
            drive = self._drive(command, interactive, captured, prompts)
            if self.timeout_seconds:
                await asyncio.wait_for(drive, self.timeout_seconds)
            else:
                await drive
        except asyncio.TimeoutError:
            await self.runner.cancel()
            logger.warning("Command timed out after %ss: %s", self.timeout_seconds, command)
            return outcome(
                OutcomeStatus.SHELL_ERROR,
                error=f"Command timed out after {self.timeout_seconds}s: {command}",
            )
        except InteractivePromptTimeout as e:
            await self.runner.cancel()
            logger.warning("%s", e)
            return outcome(OutcomeStatus.PROMPT_TIMEOUT, error=str(e))
        except asyncio.CancelledError:
            await self.runner.cancel()
            raise

        exit_code = await self.runner.wait()
        if exit_code != 0:
            error = ShellExecutionError(command, exit_code)
            logger.warning("%s", error)
            return outcome(OutcomeStatus.SHELL_ERROR, exit_code=exit_code, error=str(error))
        return outcome(OutcomeStatus.SUCCESS, exit_code=exit_code)

    async def _drive(
        self,
        command: str,
        interactive: bool,
        captured: list[str],
        prompts: list[InteractivePrompt],
    ) -> None:
        lines = [""]
        answered: set[int] = set()

        async for fragment in self.runner.run(command, interactive=interactive):
            captured.append(fragment)
            first_changed = len(lines) - 1
            parts = _LINE_BREAK_RE.split(strip_ansi(fragment))
            lines[-1] += parts[0]
            lines.extend(parts[1:])

            for index in range(first_changed, len(lines)):
                if index in answered or not lines[index].strip():
                    continue
                prompt = scan_for_prompt(lines[index])
                if prompt is None:
                    continue
                answered.add(index)
                prompts.append(prompt)
                await self._answer(command, prompt, interactive)

    async def _answer(self, command: str, prompt: InteractivePrompt, interactive: bool) -> None:
        if not interactive:
            # stdin is closed, the command reads EOF instead of waiting
            logger.info("Prompt in non-interactive command %r: %s", command, prompt.question_text)
            return
        if prompt.chosen_response is None:
            raise InteractivePromptTimeout(command, prompt.question_text)
        logger.info("Auto-responding %r to prompt: %s", prompt.chosen_response, prompt.question_text)
        await self.runner.send_input(prompt.chosen_response + "\n")
