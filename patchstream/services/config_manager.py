"""
Configuration Manager - persist provider, server and engine settings
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from patchstream.models.settings import (
    DEFAULT_MAX_REPAIR_ATTEMPTS,
    DEFAULT_MAX_TAG_LENGTH,
    DEFAULT_SHELL_TIMEOUT_SECONDS,
    EngineSettings,
)

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "PATCHSTREAM_CONFIG_DIR"


class ConfigManager:
    """Manage configuration persistence"""

    _instance = None

    def __init__(self, config_dir: str | Path | None = None):
        self._config_file = self._resolve_config_file(config_dir)
        self._config = self._load_config()

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = ConfigManager()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    @property
    def config_file(self) -> Path:
        return self._config_file

    def _resolve_config_file(self, config_dir: str | Path | None) -> Path:
        # explicit argument, then environment, then ~/.patchstream
        candidates = [config_dir, os.environ.get(CONFIG_DIR_ENV), "~/.patchstream"]
        for candidate in candidates:
            if not candidate:
                continue
            config_path = Path(candidate).expanduser()
            try:
                config_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Cannot write to %s: %s", config_path, e)
                continue
            return config_path / "config.json"

        tmp_dir = Path(tempfile.gettempdir()) / "patchstream"
        tmp_dir.mkdir(parents=True, exist_ok=True)
        logger.warning("Using temporary config path: %s", tmp_dir / "config.json")
        return tmp_dir / "config.json"

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file, filling in defaults"""
        config = self._default_config()
        if not self._config_file.exists():
            return config

        try:
            with open(self._config_file) as f:
                stored = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error loading config %s: %s", self._config_file, e)
            return config

        for key, value in stored.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value
        return config

    def _default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "provider": "gemini",
            "gemini": {"apiKey": "", "model": "gemini-2.5-flash"},
            "vllm": {
                "endpoint": "http://localhost:8000",
                "apiKey": "",
                "model": "meta-llama/Llama-3.1-8B-Instruct",
            },
            "openai": {"apiKey": "", "model": "gpt-4o"},
            "server": {"host": "127.0.0.1", "port": 8000, "logFile": ""},
            "engine": {
                "workspaceRoot": ".",
                "maxRepairAttempts": DEFAULT_MAX_REPAIR_ATTEMPTS,
                "requireThinking": True,
                "shellTimeoutSeconds": DEFAULT_SHELL_TIMEOUT_SECONDS,
                "maxTagLength": DEFAULT_MAX_TAG_LENGTH,
            },
        }

    def get_config(self) -> dict[str, Any]:
        """Get current configuration"""
        # Reload config from file to ensure we have the latest
        self._config = self._load_config()
        return copy.deepcopy(self._config)

    def get_engine_settings(self) -> EngineSettings:
        return EngineSettings.from_config(self.get_config())

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        self._config.update(config)
        self._config_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(self._config_file, "w") as f:
                json.dump(self._config, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save config: {e}") from e

    def get(self, key: str, default=None):
        """Get specific config value"""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set specific config value"""
        self._config[key] = value
        self.save_config(self._config)
