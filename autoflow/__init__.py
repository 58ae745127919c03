"""Autoflow: workflow execution engine for trigger-driven automations."""

from .components import BaseAction, BaseCondition, BaseTrigger, FailureNotifier
from .config import EngineConfig, load_config
from .contracts import Execution, ExecutionStatus, StepKind, Workflow
from .engine import WorkflowEngine
from .errors import (
    AutoflowError,
    ComponentNotFound,
    DisabledError,
    NotFoundError,
    RetryExhausted,
    StepExecutionError,
    StepLimitExceeded,
    StepTimeoutError,
    ValidationError,
)
from .registry import ComponentRegistry

__version__ = "0.1.0"
__all__ = [
    "AutoflowError",
    "BaseAction",
    "BaseCondition",
    "BaseTrigger",
    "ComponentNotFound",
    "ComponentRegistry",
    "DisabledError",
    "EngineConfig",
    "Execution",
    "ExecutionStatus",
    "FailureNotifier",
    "NotFoundError",
    "RetryExhausted",
    "StepExecutionError",
    "StepKind",
    "StepLimitExceeded",
    "StepTimeoutError",
    "ValidationError",
    "Workflow",
    "WorkflowEngine",
    "load_config",
]
