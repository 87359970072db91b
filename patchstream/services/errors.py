"""
Engine error taxonomy

Patch mismatches are values (see ``models.operations.PatchMismatch``), not
exceptions: they are routed to the repair loop instead of being raised.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the edit engine"""


class StructuralValidationError(EngineError):
    """A response or block is missing required structure and must not be applied"""

    def __init__(self, message: str, block_id: int | None = None):
        super().__init__(message)
        self.block_id = block_id


class ShellExecutionError(EngineError):
    """A shell command exited with a non-zero status"""

    def __init__(self, command: str, exit_code: int, output: str = ""):
        super().__init__(f"Command failed with exit code {exit_code}: {command}")
        self.command = command
        self.exit_code = exit_code
        self.output = output


class InteractivePromptTimeout(EngineError):
    """A prompt was detected that has no safe default answer"""

    def __init__(self, command: str, question: str):
        super().__init__(f"No default response for prompt {question!r} in: {command}")
        self.command = command
        self.question = question


class RepairLimitExceeded(EngineError):
    """A patch kept failing after the maximum number of repair attempts"""

    def __init__(self, path: str, attempts: int, last_error: str):
        super().__init__(
            f"Patch for {path} still failed after {attempts} repair attempt(s): {last_error}"
        )
        self.path = path
        self.attempts = attempts
        self.last_error = last_error


class WorkspaceViolation(EngineError, ValueError):
    """A path points outside the workspace root"""
