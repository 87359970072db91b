"""Engine settings read from the ``engine`` config section"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

DEFAULT_MAX_REPAIR_ATTEMPTS = 3
DEFAULT_SHELL_TIMEOUT_SECONDS = 600.0
DEFAULT_MAX_TAG_LENGTH = 1024


class EngineSettings(BaseModel):
    """Knobs for parsing, applying and repairing a response"""

    workspace_root: str = "."
    max_repair_attempts: int = Field(default=DEFAULT_MAX_REPAIR_ATTEMPTS, ge=0)
    require_thinking: bool = True
    shell_timeout_seconds: float | None = DEFAULT_SHELL_TIMEOUT_SECONDS
    max_tag_length: int = Field(default=DEFAULT_MAX_TAG_LENGTH, ge=16)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "EngineSettings":
        """Build settings from the camelCase ``engine`` section of the config file"""
        cfg = config.get("engine", {}) or {}
        values: dict[str, Any] = {}
        mapping = {
            "workspaceRoot": "workspace_root",
            "maxRepairAttempts": "max_repair_attempts",
            "requireThinking": "require_thinking",
            "shellTimeoutSeconds": "shell_timeout_seconds",
            "maxTagLength": "max_tag_length",
        }
        for key, field in mapping.items():
            if key in cfg:
                values[field] = cfg[key]
        return cls(**values)
