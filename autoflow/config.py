from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_EXECUTION_RETENTION_SECONDS,
    DEFAULT_EXECUTION_TIMEOUT_MS,
    DEFAULT_MAX_CONCURRENT_EXECUTIONS,
    DEFAULT_MAX_STEP_TRANSITIONS,
    DEFAULT_MAX_STEPS_PER_WORKFLOW,
    DEFAULT_MAX_WORKFLOWS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_SCHEDULE_TRIGGER_TYPES,
)


class StoreConfig(BaseModel):
    """Limits applied when validating workflow definitions."""

    max_workflows: int = DEFAULT_MAX_WORKFLOWS
    max_steps_per_workflow: int = DEFAULT_MAX_STEPS_PER_WORKFLOW


class RetryConfig(BaseModel):
    """Retry policy for failed executions."""

    max_attempts: int = Field(
        default=DEFAULT_RETRY_ATTEMPTS,
        ge=1,
        description="Total attempts per execution, including the first one",
    )
    base_delay: float = Field(
        default=DEFAULT_RETRY_DELAY_SECONDS,
        ge=0,
        description="Seconds multiplied by the attempt number before re-queueing",
    )


class SchedulerConfig(BaseModel):
    """Execution scheduler settings."""

    max_concurrent_executions: int = Field(
        default=DEFAULT_MAX_CONCURRENT_EXECUTIONS, ge=1
    )
    default_timeout_ms: Optional[int] = DEFAULT_EXECUTION_TIMEOUT_MS
    max_step_transitions: int = Field(default=DEFAULT_MAX_STEP_TRANSITIONS, ge=1)
    execution_retention_seconds: Optional[float] = DEFAULT_EXECUTION_RETENTION_SECONDS
    retry: RetryConfig = Field(default_factory=RetryConfig)


class TriggerConfig(BaseModel):
    """Trigger manager settings."""

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    schedule_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SCHEDULE_TRIGGER_TYPES)
    )


class EngineConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    triggers: TriggerConfig = Field(default_factory=TriggerConfig)
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> EngineConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AUTOFLOW_CONFIG env
            variable or 'autoflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("AUTOFLOW_CONFIG", "autoflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = EngineConfig(**data)
    else:
        config = EngineConfig()

    env_concurrency = os.getenv("AUTOFLOW_MAX_CONCURRENT_EXECUTIONS")
    if env_concurrency:
        config.scheduler.max_concurrent_executions = int(env_concurrency)
    env_log_level = os.getenv("AUTOFLOW_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config
