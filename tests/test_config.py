from __future__ import annotations

from pathlib import Path

import allure
import pytest

from dedup_queue.config import ExecutionSettings, QueueLayout, Settings

pytestmark = [
    allure.epic("Dedup Queue"),
    allure.feature("Configuration"),
]


def test_from_env_reads_root_and_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DEDUP_QUEUE_ROOT", str(tmp_path / "work"))
    monkeypatch.setenv("DEDUP_QUEUE_HASH_ALGORITHMS", " SHA1, md5 ,sha1")
    monkeypatch.setenv("DEDUP_QUEUE_SHELL", "/bin/bash")
    monkeypatch.setenv("DEDUP_QUEUE_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.root == tmp_path / "work"
    assert settings.hash_algorithms == ("sha1", "md5")
    assert settings.execution.shell == "/bin/bash"
    assert settings.log_level == "DEBUG"


def test_explicit_root_wins_over_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DEDUP_QUEUE_ROOT", str(tmp_path / "from-env"))

    settings = Settings.from_env(root=tmp_path / "explicit")

    assert settings.root == tmp_path / "explicit"


def test_default_root_is_per_user(monkeypatch) -> None:
    monkeypatch.delenv("DEDUP_QUEUE_ROOT")

    settings = Settings.from_env()

    assert settings.root == Path.home() / ".dedup_queue"
    assert settings.hash_algorithms == ("sha256", "sha1", "md5")


def test_layout_paths(tmp_path: Path) -> None:
    layout = QueueLayout(root=tmp_path)
    layout.ensure()

    assert layout.queue_dir == tmp_path / "queue"
    assert layout.processed_dir == tmp_path / "processed"
    assert layout.logs_dir == tmp_path / "command_logs"
    assert layout.lock_dir == tmp_path / "lock.dir"
    assert layout.queue_dir.is_dir()
    assert not layout.lock_dir.exists()


def test_validate_rejects_empty_hash_preferences() -> None:
    with pytest.raises(ValueError, match="HASH_ALGORITHMS"):
        Settings(hash_algorithms=()).validate()


def test_validate_rejects_empty_shell() -> None:
    with pytest.raises(ValueError, match="DEDUP_QUEUE_SHELL"):
        Settings(execution=ExecutionSettings(shell="")).validate()


def test_validate_rejects_unknown_log_level() -> None:
    with pytest.raises(ValueError, match="DEDUP_QUEUE_LOG_LEVEL"):
        Settings(log_level="CHATTY").validate()
