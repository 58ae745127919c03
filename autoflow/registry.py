"""Component registry mapping type names to triggers, actions and conditions.

Each :class:`~autoflow.engine.WorkflowEngine` owns its own registry, so
several engines can live in one process with different components.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from .errors import ComponentNotFound

logger = logging.getLogger(__name__)


class ComponentRegistry:
    """Holds pluggable components keyed by type name."""

    def __init__(self) -> None:
        self._triggers: Dict[str, Any] = {}
        self._actions: Dict[str, Any] = {}
        self._conditions: Dict[str, Any] = {}

    def _register(self, table: Dict[str, Any], kind: str, name: str, impl: Any) -> None:
        if not name:
            raise ValueError(f"{kind} type must be a non-empty string")
        if name in table:
            logger.debug(f"Replacing registered {kind} '{name}'")
        table[name] = impl

    def register_trigger(self, trigger_type: str, trigger: Any) -> None:
        self._register(self._triggers, "trigger", trigger_type, trigger)

    def register_action(self, action_type: str, action: Any) -> None:
        self._register(self._actions, "action", action_type, action)

    def register_condition(self, condition_type: str, condition: Any) -> None:
        self._register(self._conditions, "condition", condition_type, condition)

    def get_trigger(self, trigger_type: str) -> Any:
        """Return the trigger for ``trigger_type``.

        Raises:
            ComponentNotFound: If nothing is registered under that name.
        """
        try:
            return self._triggers[trigger_type]
        except KeyError:
            raise ComponentNotFound("trigger", trigger_type) from None

    def get_action(self, action_type: str) -> Any:
        try:
            return self._actions[action_type]
        except KeyError:
            raise ComponentNotFound("action", action_type) from None

    def get_condition(self, condition_type: str) -> Any:
        try:
            return self._conditions[condition_type]
        except KeyError:
            raise ComponentNotFound("condition", condition_type) from None

    def has_trigger(self, trigger_type: str) -> bool:
        return trigger_type in self._triggers

    def trigger_types(self) -> List[str]:
        return sorted(self._triggers)

    def action_types(self) -> List[str]:
        return sorted(self._actions)

    def condition_types(self) -> List[str]:
        return sorted(self._conditions)
