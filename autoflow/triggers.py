"""Bind workflow triggers to the scheduler and poll time-based schedules."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from .config import TriggerConfig
from .contracts import Workflow, utcnow
from .errors import ComponentNotFound, DisabledError, NotFoundError, ValidationError
from .registry import ComponentRegistry
from .scheduler import ExecutionScheduler
from .store import WorkflowStore

logger = logging.getLogger(__name__)


class TriggerManager:
    """Connects each enabled workflow's trigger to the execution queue."""

    def __init__(
        self,
        registry: ComponentRegistry,
        scheduler: ExecutionScheduler,
        store: WorkflowStore,
        config: Optional[TriggerConfig] = None,
    ) -> None:
        self._registry = registry
        self._scheduler = scheduler
        self._store = store
        self._config = config or TriggerConfig()
        self._bindings: Dict[str, Tuple[Any, Dict[str, Any]]] = {}
        self._last_fired: Dict[str, datetime] = {}
        self._poll_task: Optional[asyncio.Task] = None

    def is_bound(self, workflow_id: str) -> bool:
        return workflow_id in self._bindings

    def _make_callback(self, workflow_id: str):
        def on_fire(context: Optional[Dict[str, Any]] = None) -> Optional[str]:
            return self.fire(workflow_id, context)

        return on_fire

    def fire(
        self, workflow_id: str, context: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Enqueue an execution for a trigger event.

        Never raises into the trigger source: fires for unbound, missing or
        disabled workflows are logged and dropped.
        """
        if workflow_id not in self._bindings:
            logger.debug(f"Ignoring trigger fire for unbound workflow {workflow_id}")
            return None
        try:
            return self._scheduler.enqueue(workflow_id, context)
        except (NotFoundError, DisabledError) as e:
            logger.warning(f"Trigger fire dropped for workflow {workflow_id}: {e}")
            return None

    def bind(self, workflow: Workflow) -> bool:
        """Call the trigger's ``setup`` with a callback that enqueues executions.

        Returns ``False`` when the trigger type is not registered.

        Raises:
            ValidationError: If the trigger rejects the workflow's trigger
                parameters; the workflow is left unbound.
        """
        if workflow.id in self._bindings:
            self.unbind(workflow)
        try:
            trigger = self._registry.get_trigger(workflow.trigger.type)
        except ComponentNotFound:
            logger.warning(f"Trigger not found: {workflow.trigger.type}")
            return False

        parameters = dict(workflow.trigger.parameters)
        try:
            trigger.setup(parameters, self._make_callback(workflow.id))
        except Exception as e:
            logger.warning(f"Trigger setup failed for workflow {workflow.id}: {e}")
            raise ValidationError(
                [f"Trigger setup failed for {workflow.trigger.type}: {e}"]
            ) from e
        self._bindings[workflow.id] = (trigger, parameters)
        logger.debug(f"Bound {workflow.trigger.type} trigger for workflow {workflow.id}")
        return True

    def unbind(self, workflow: Workflow) -> None:
        """Call the trigger's ``cleanup`` (if any) and stop accepting fires."""
        binding = self._bindings.pop(workflow.id, None)
        if binding is None:
            return
        trigger, parameters = binding
        cleanup = getattr(trigger, "cleanup", None)
        if callable(cleanup):
            cleanup(parameters)
        schedule = parameters.get("schedule") or {}
        self._last_fired.pop(schedule.get("id", workflow.id), None)
        logger.debug(f"Unbound trigger for workflow {workflow.id}")

    # ------------------------------------------------------------------
    # Schedule poller
    # ------------------------------------------------------------------
    def _is_due(self, schedule_id: str, schedule: Dict[str, Any], now: datetime) -> bool:
        if schedule.get("type", "interval") != "interval":
            return False
        interval = timedelta(minutes=float(schedule.get("interval_minutes", 0)))
        last = self._last_fired.get(schedule_id)
        if last is None or now - last >= interval:
            self._last_fired[schedule_id] = now
            return True
        return False

    def poll(self, now: Optional[datetime] = None) -> list[str]:
        """Fire every enabled schedule-type workflow whose interval elapsed.

        Returns:
            Ids of the executions that were queued.
        """
        now = now or utcnow()
        queued = []
        for workflow in self._store.list():
            if not workflow.settings.enabled:
                continue
            if workflow.trigger.type not in self._config.schedule_types:
                continue
            schedule = workflow.trigger.parameters.get("schedule")
            if not isinstance(schedule, dict):
                continue
            schedule_id = schedule.get("id", workflow.id)
            if self._is_due(schedule_id, schedule, now):
                execution_id = self.fire(workflow.id, {"scheduled_at": now.isoformat()})
                if execution_id is not None:
                    queued.append(execution_id)
        return queued

    async def _poll_loop(self) -> None:
        while True:
            try:
                self.poll()
            except Exception as e:
                logger.error(f"Schedule poll failed: {e}")
            await asyncio.sleep(self._config.poll_interval_seconds)

    async def start(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None
