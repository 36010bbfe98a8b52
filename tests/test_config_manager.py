"""Configuration persistence and environment overrides."""

from __future__ import annotations

import json
from pathlib import Path

from edit_applier.services.config_manager import ConfigManager


def test_defaults_when_no_file(tmp_path: Path) -> None:
    config = ConfigManager(config_dir=str(tmp_path / "cfg")).get_config()
    assert config["apply"]["baseUrl"] == "https://api.morphllm.com/v1"
    assert config["apply"]["model"] == "morph-v3-fast"
    assert config["apply"]["reapplyModel"] == "morph-v3-large"
    assert config["retry"]["maxAttempts"] == 3
    assert config["reapply"]["maxAttempts"] == 3


def test_saved_sections_merge_with_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("APPLY_API_KEY", raising=False)
    manager = ConfigManager(config_dir=str(tmp_path))
    manager.save_config({"apply": {"apiKey": "sk-abc"}})

    reloaded = ConfigManager(config_dir=str(tmp_path)).get_config()
    assert reloaded["apply"]["apiKey"] == "sk-abc"
    assert reloaded["apply"]["model"] == "morph-v3-fast"
    assert json.loads((tmp_path / "config.json").read_text())["apply"]["apiKey"] == "sk-abc"


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("{not json")
    config = ConfigManager(config_dir=str(tmp_path)).get_config()
    assert config["apply"]["endpoint"] == "chat"


def test_env_api_key_overrides_file(tmp_path: Path, monkeypatch) -> None:
    manager = ConfigManager(config_dir=str(tmp_path))
    manager.save_config({"apply": {"apiKey": "from-file"}})
    monkeypatch.setenv("APPLY_API_KEY", "from-env")

    assert manager.get_config()["apply"]["apiKey"] == "from-env"
    # The override is not persisted
    assert json.loads((tmp_path / "config.json").read_text())["apply"]["apiKey"] == "from-file"


def test_singleton_uses_env_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("EDIT_APPLIER_CONFIG_DIR", str(tmp_path / "env-dir"))
    ConfigManager.reset_instance()
    try:
        manager = ConfigManager.get_instance()
        assert manager is ConfigManager.get_instance()
        assert manager.config_file == tmp_path / "env-dir" / "config.json"
    finally:
        ConfigManager.reset_instance()
