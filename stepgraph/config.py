from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_CONFIG_PATH, DEFAULT_POLL_INTERVAL


class EngineConfig(BaseModel):
    """Settings for driving workflows."""

    # None disables the guard.
    max_auto_advance: Optional[int] = Field(default=None, ge=1)


class SchedulerConfig(BaseModel):
    """Settings for the polling scheduler."""

    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)


class StepgraphConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    database_url: Optional[str] = None
    log_level: str = "WARNING"


def load_config(path: Optional[str] = None) -> StepgraphConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPGRAPH_CONFIG env
            variable or 'stepgraph.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPGRAPH_CONFIG", DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepgraphConfig(**data)
    else:
        config = StepgraphConfig()

    env_db_url = os.getenv("STEPGRAPH_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("STEPGRAPH_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level
    return config
