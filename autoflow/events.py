"""Lifecycle events published by the engine."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .contracts import utcnow

logger = logging.getLogger(__name__)

WORKFLOW_CREATED = "workflow.created"
WORKFLOW_UPDATED = "workflow.updated"
WORKFLOW_DELETED = "workflow.deleted"
WORKFLOW_TOGGLED = "workflow.toggled"
EXECUTION_QUEUED = "execution.queued"
EXECUTION_STARTED = "execution.started"
EXECUTION_COMPLETED = "execution.completed"
EXECUTION_FAILED = "execution.failed"
EXECUTION_RETRYING = "execution.retrying"
EXECUTION_CANCELLED = "execution.cancelled"


class EngineEvent(BaseModel):
    """Notification about a workflow or execution state change."""

    name: str
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


EventListener = Callable[[EngineEvent], Any]


class EventEmitter:
    """Fan events out to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, name: str, **fields: Any) -> EngineEvent:
        event = EngineEvent(name=name, **fields)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed for {name}: {e}")
        return event
