"""Tests for configuration loading."""

import stepgraph.persistence as persistence
from stepgraph.config import load_config
from stepgraph.persistence import SQLiteWorkflowRepository, get_repository


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
engine:
  max_auto_advance: 50
scheduler:
  poll_interval: 5
log_level: INFO
"""
    )
    monkeypatch.setenv("STEPGRAPH_CONFIG", str(config_path))
    monkeypatch.delenv("STEPGRAPH_LOG_LEVEL", raising=False)

    config = load_config()
    assert config.engine.max_auto_advance == 50
    assert config.scheduler.poll_interval == 5
    assert config.log_level == "INFO"


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("STEPGRAPH_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("STEPGRAPH_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("STEPGRAPH_LOG_LEVEL", raising=False)

    config = load_config()
    assert config.engine.max_auto_advance is None
    assert config.database_url is None
    assert config.log_level == "WARNING"


def test_env_overrides_config_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("STEPGRAPH_CONFIG", str(config_path))
    monkeypatch.setenv("STEPGRAPH_DATABASE_URL", "sqlite:///from-env.db")

    config = load_config()
    assert config.database_url == "sqlite:///from-env.db"


def test_get_repository_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "wf.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{db_path}\n")
    monkeypatch.setenv("STEPGRAPH_CONFIG", str(config_path))
    monkeypatch.delenv("STEPGRAPH_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository(config=load_config())
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(db_path)
