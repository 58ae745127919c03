"""Pluggable workflow components and the generic built-ins."""

from .base import (
    BaseAction,
    BaseCondition,
    BaseTrigger,
    FailureNotifier,
    LoggingFailureNotifier,
)
from .builtin import EventTrigger, register_builtins

__all__ = [
    "BaseAction",
    "BaseCondition",
    "BaseTrigger",
    "EventTrigger",
    "FailureNotifier",
    "LoggingFailureNotifier",
    "register_builtins",
]
