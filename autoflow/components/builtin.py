"""Generic triggers, actions and conditions installed on every engine."""

from __future__ import annotations

import asyncio
import logging
import operator
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..registry import ComponentRegistry
from ..resolver import get_value_by_path
from .base import BaseAction, BaseCondition, BaseTrigger, FireCallback

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Triggers
# ----------------------------------------------------------------------
class ManualTrigger(BaseTrigger):
    """Workflows started only through ``execute_workflow``."""

    def setup(self, parameters: Dict[str, Any], on_fire: FireCallback) -> None:
        pass


class TimeBasedTrigger(BaseTrigger):
    """Placeholder for schedule triggers; the trigger manager's poller fires them."""

    def setup(self, parameters: Dict[str, Any], on_fire: FireCallback) -> None:
        pass


class EventTrigger(BaseTrigger):
    """In-process named events.

    ``parameters["event"]`` names the event a workflow listens to; hosts call
    :meth:`emit` to start every workflow bound to it.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Tuple[Dict[str, Any], FireCallback]]] = (
            defaultdict(list)
        )

    def setup(self, parameters: Dict[str, Any], on_fire: FireCallback) -> None:
        event = parameters.get("event")
        if not event:
            raise ValueError("event trigger requires an 'event' parameter")
        self._subscribers[event].append((parameters, on_fire))

    def cleanup(self, parameters: Dict[str, Any]) -> None:
        event = parameters.get("event")
        self._subscribers[event] = [
            (params, callback)
            for params, callback in self._subscribers.get(event, [])
            if params is not parameters
        ]

    def emit(self, event: str, payload: Optional[Dict[str, Any]] = None) -> List[str]:
        """Fire ``event``; returns the ids of the executions that were queued."""
        queued = []
        for _, callback in list(self._subscribers.get(event, [])):
            execution_id = callback({"event": event, **(payload or {})})
            if execution_id is not None:
                queued.append(execution_id)
        logger.debug(f"Event {event} queued {len(queued)} executions")
        return queued


# ----------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------
class DelayAction(BaseAction):
    async def execute(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> Any:
        delay_ms = parameters.get("delay_ms", 1000)
        await asyncio.sleep(delay_ms / 1000)
        return {"delayed": True, "duration_ms": delay_ms}


class LogAction(BaseAction):
    async def execute(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> Any:
        message = parameters.get("message", "")
        level = str(parameters.get("level", "info")).upper()
        logger.log(getattr(logging, level, logging.INFO), f"Workflow log: {message}")
        return {"logged": True, "message": message}


class SetVariableAction(BaseAction):
    """Return ``parameters["value"]``; pair with ``output_variable`` to store it."""

    async def execute(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> Any:
        return parameters.get("value")


# ----------------------------------------------------------------------
# Conditions
# ----------------------------------------------------------------------
_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}


class CompareCondition(BaseCondition):
    """Compare the context value at ``path`` with ``expected``."""

    async def evaluate(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> bool:
        value = get_value_by_path(context, parameters.get("path", ""))
        if value is None:
            return False
        compare = _OPERATORS.get(parameters.get("operator", "=="))
        if compare is None:
            return False
        try:
            return bool(compare(value, parameters.get("expected")))
        except TypeError:
            return False


class EqualsCondition(BaseCondition):
    async def evaluate(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> bool:
        return get_value_by_path(context, parameters.get("path", "")) == parameters.get(
            "value"
        )


class TimeRangeCondition(BaseCondition):
    """True while the current hour is in ``[start_hour, end_hour)``."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock

    async def evaluate(self, parameters: Dict[str, Any], context: Dict[str, Any]) -> bool:
        hour = self._clock().hour
        return parameters.get("start_hour", 0) <= hour < parameters.get("end_hour", 24)


def register_builtins(registry: ComponentRegistry) -> None:
    """Install the generic components on ``registry``."""
    registry.register_trigger("manual", ManualTrigger())
    registry.register_trigger("time_based", TimeBasedTrigger())
    registry.register_trigger("event", EventTrigger())

    registry.register_action("delay", DelayAction())
    registry.register_action("log", LogAction())
    registry.register_action("set_variable", SetVariableAction())

    registry.register_condition("compare", CompareCondition())
    registry.register_condition("equals", EqualsCondition())
    registry.register_condition("time_range", TimeRangeCondition())
