"""
Configuration Manager - Handle backend settings persistence
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from edit_applier.utils.logger import setup_logger

logger = setup_logger(__name__)

API_KEY_ENV = "APPLY_API_KEY"


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base, one level of nested sections deep"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manage configuration persistence"""

    _instance = None
    _config_file = None

    def __init__(self, config_dir: str | None = None):
        # 1: explicit argument / environment variable
        config_dir = config_dir or os.environ.get("EDIT_APPLIER_CONFIG_DIR")

        # 2: ~/.edit_applier
        if not config_dir:
            config_dir = os.path.expanduser("~/.edit_applier")

        config_path = Path(config_dir)
        try:
            config_path.mkdir(parents=True, exist_ok=True)
            self._config_file = config_path / "config.json"
        except OSError as e:
            logger.warning("Cannot write to %s: %s", config_dir, e)
            self._config_file = None

        # 3: temp dir when the preferred location is not writable
        if not self._config_file:
            tmp_dir = Path(tempfile.gettempdir()) / "edit_applier"
            tmp_dir.mkdir(parents=True, exist_ok=True)
            self._config_file = tmp_dir / "config.json"
            logger.info("Using temporary config path: %s", self._config_file)

        self._config = self._load_config()

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = ConfigManager()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Drop the singleton so the next get_instance() re-reads the environment"""
        cls._instance = None

    @property
    def config_file(self) -> Path:
        return self._config_file

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file, filling in defaults"""
        if not self._config_file.exists():
            return self._default_config()

        try:
            with open(self._config_file) as f:
                return _merge(self._default_config(), json.load(f))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error loading config %s: %s", self._config_file, e)
            return self._default_config()

    def _default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "apply": {
                "apiKey": "",
                "baseUrl": "https://api.morphllm.com/v1",
                "model": "morph-v3-fast",
                "reapplyModel": "morph-v3-large",
                "embeddingModel": "morph-embedding-v2",
                "rerankModel": "morph-rerank-v2",
                "endpoint": "chat",  # "chat" or "completions"
                "mode": "blocking",  # "blocking" or "streaming"
                "timeoutSeconds": 60,
                "streamTimeoutSeconds": 120,
            },
            "retry": {"maxAttempts": 3, "baseDelaySeconds": 2.0},
            "reapply": {"maxAttempts": 3, "maxSessions": 100, "sessionTtlSeconds": 3600},
            "workspace": {"root": "."},
            "server": {"host": "127.0.0.1", "port": 8000},
        }

    def get_config(self) -> dict[str, Any]:
        """Get current configuration; APPLY_API_KEY overrides the stored key"""
        # Reload config from file to ensure we have the latest
        self._config = self._load_config()
        config = copy.deepcopy(self._config)
        env_key = os.environ.get(API_KEY_ENV)
        if env_key:
            config["apply"]["apiKey"] = env_key
        return config

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        self._config = _merge(self._config, config)

        self._config_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(self._config_file, "w") as f:
                json.dump(self._config, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save config: {e}")

    def get(self, key: str, default=None):
        """Get specific config value"""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set specific config value"""
        self.save_config({key: value})
