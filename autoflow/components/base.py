"""Base interfaces for pluggable workflow components."""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

if TYPE_CHECKING:
    from ..contracts import Execution, Workflow

logger = logging.getLogger(__name__)

FireCallback = Callable[[Optional[Dict[str, Any]]], Optional[str]]


class BaseTrigger(metaclass=abc.ABCMeta):
    """Event source that starts new executions of a workflow."""

    @abc.abstractmethod
    def setup(self, parameters: Dict[str, Any], on_fire: FireCallback) -> None:
        """Start calling ``on_fire(context)`` whenever the event happens."""
        raise NotImplementedError

    def cleanup(self, parameters: Dict[str, Any]) -> None:
        """Stop firing for ``parameters`` (no-op by default)."""
        pass


class BaseAction(metaclass=abc.ABCMeta):
    """Side-effecting operation invoked by an action step."""

    @abc.abstractmethod
    async def execute(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> Any:
        """Run the action; the return value becomes the step result."""
        raise NotImplementedError


class BaseCondition(metaclass=abc.ABCMeta):
    """Boolean predicate used by condition steps and pre-conditions."""

    @abc.abstractmethod
    async def evaluate(
        self, parameters: Dict[str, Any], context: Dict[str, Any]
    ) -> bool:
        raise NotImplementedError


class FailureNotifier(metaclass=abc.ABCMeta):
    """Receives executions that failed for good."""

    @abc.abstractmethod
    async def notify(self, workflow: "Workflow", execution: "Execution") -> None:
        raise NotImplementedError


class LoggingFailureNotifier(FailureNotifier):
    """Default notifier: writes the failure to the log."""

    async def notify(self, workflow: "Workflow", execution: "Execution") -> None:
        logger.error(
            f"Workflow failure notification: {workflow.name} "
            f"(workflow_id={workflow.id}, execution_id={execution.id}): "
            f"{execution.error}"
        )
