"""Workflow engine facade: management surface over store, scheduler and triggers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .components.builtin import register_builtins
from .config import EngineConfig
from .contracts import Execution, Workflow, utcnow
from .errors import ValidationError
from .events import (
    WORKFLOW_CREATED,
    WORKFLOW_DELETED,
    WORKFLOW_TOGGLED,
    WORKFLOW_UPDATED,
    EventEmitter,
    EventListener,
)
from .execute import StepExecutor
from .persistence import ExecutionRepository
from .registry import ComponentRegistry
from .scheduler import ExecutionScheduler
from .store import WorkflowStore
from .triggers import TriggerManager

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Owns one registry, store, scheduler and trigger manager.

    Example:
        engine = WorkflowEngine()
        engine.register_action("send_email", SendEmailAction())
        workflow = engine.create_workflow({...})
        await engine.start()
        execution_id = engine.execute_workflow(workflow.id, {"user": "a@b.c"})
        execution = await engine.wait_for_execution(execution_id)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        registry: Optional[ComponentRegistry] = None,
        notifier: Any = None,
        repository: Optional[ExecutionRepository] = None,
        register_builtin_components: bool = True,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry or ComponentRegistry()
        if register_builtin_components:
            register_builtins(self.registry)
        self.events = EventEmitter()
        self.store = WorkflowStore(
            self.config.store,
            self.registry,
            default_timeout_ms=self.config.scheduler.default_timeout_ms,
        )
        self.executor = StepExecutor(self.registry)
        self.scheduler = ExecutionScheduler(
            self.store,
            self.executor,
            self.config.scheduler,
            repository=repository,
            notifier=notifier,
            events=self.events,
        )
        self.triggers = TriggerManager(
            self.registry, self.scheduler, self.store, self.config.triggers
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Start the scheduler drain loop and the schedule poller."""
        logger.info("Initializing workflow engine...")
        await self.scheduler.start()
        await self.triggers.start()
        logger.info("Workflow engine initialized")

    async def stop(self) -> None:
        await self.triggers.stop()
        await self.scheduler.stop()
        logger.info("Workflow engine stopped")

    async def __aenter__(self) -> "WorkflowEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------
    def register_trigger(self, trigger_type: str, trigger: Any) -> None:
        self.registry.register_trigger(trigger_type, trigger)

    def register_action(self, action_type: str, action: Any) -> None:
        self.registry.register_action(action_type, action)

    def register_condition(self, condition_type: str, condition: Any) -> None:
        self.registry.register_condition(condition_type, condition)

    def subscribe(self, listener: EventListener):
        """Receive :class:`~autoflow.events.EngineEvent` notifications."""
        return self.events.subscribe(listener)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------
    def create_workflow(self, definition: Union[Workflow, Mapping[str, Any]]) -> Workflow:
        """Validate and store a workflow, binding its trigger if enabled.

        Raises:
            ValidationError: If the definition breaks a workflow invariant or
                the trigger rejects its parameters; nothing is stored.
        """
        workflow = self.store.create(definition)
        if workflow.settings.enabled:
            try:
                self.triggers.bind(workflow)
            except ValidationError:
                self.store.delete(workflow.id)
                raise
        self.events.emit(WORKFLOW_CREATED, workflow_id=workflow.id)
        return workflow

    def update_workflow(self, workflow_id: str, patch: Mapping[str, Any]) -> Workflow:
        """Apply ``patch`` as a new version and re-bind the trigger.

        Raises:
            NotFoundError: If the workflow does not exist.
            ValidationError: If the merged definition is invalid or the
                trigger rejects its parameters; the stored workflow and its
                binding are left unchanged.
        """
        previous = self.store.get(workflow_id).model_copy(deep=True)
        workflow = self.store.update(workflow_id, patch)
        self.triggers.unbind(workflow)
        if workflow.settings.enabled:
            try:
                self.triggers.bind(workflow)
            except ValidationError:
                self._restore(workflow, previous)
                raise
        self.events.emit(
            WORKFLOW_UPDATED,
            workflow_id=workflow_id,
            data={"version": workflow.metadata.version},
        )
        return workflow

    def _restore(self, workflow: Workflow, previous: Workflow) -> None:
        for field in Workflow.model_fields:
            if field in ("id", "metrics"):
                continue
            setattr(workflow, field, getattr(previous, field))
        if workflow.settings.enabled:
            self.triggers.bind(workflow)
        logger.warning(
            f"Rolled back workflow {workflow.id} to version {workflow.metadata.version}"
        )

    def delete_workflow(self, workflow_id: str) -> None:
        """Unbind the trigger, cancel unfinished executions and drop the workflow.

        Raises:
            NotFoundError: If the workflow does not exist.
        """
        workflow = self.store.get(workflow_id)
        self.triggers.unbind(workflow)
        self.scheduler.cancel_executions_for(workflow_id)
        self.store.delete(workflow_id)
        self.events.emit(WORKFLOW_DELETED, workflow_id=workflow_id)

    def toggle_workflow(self, workflow_id: str, enabled: bool) -> Workflow:
        """Enable or disable a workflow without creating a new version.

        Raises:
            ValidationError: If enabling fails because the trigger rejects its
                parameters; the workflow stays disabled.
        """
        workflow = self.store.get(workflow_id)
        was_enabled = workflow.settings.enabled
        if enabled and not was_enabled:
            self.triggers.bind(workflow)
        workflow.settings.enabled = enabled
        workflow.metadata.updated_at = utcnow()
        if was_enabled and not enabled:
            self.triggers.unbind(workflow)
        self.events.emit(
            WORKFLOW_TOGGLED, workflow_id=workflow_id, data={"enabled": enabled}
        )
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        return self.store.get(workflow_id)

    def list_workflows(self) -> List[Workflow]:
        return self.store.list()

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------
    def execute_workflow(
        self, workflow_id: str, context: Optional[Dict[str, Any]] = None
    ) -> str:
        """Manually queue an execution and return its id."""
        return self.scheduler.enqueue(workflow_id, context)

    def get_execution(self, execution_id: str) -> Execution:
        return self.scheduler.get(execution_id)

    def list_executions(self, workflow_id: Optional[str] = None) -> List[Execution]:
        return self.scheduler.list(workflow_id)

    def cancel_execution(self, execution_id: str) -> bool:
        return self.scheduler.cancel(execution_id)

    async def wait_for_execution(
        self, execution_id: str, timeout: Optional[float] = None
    ) -> Execution:
        return await self.scheduler.wait_for(execution_id, timeout)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self.scheduler.metrics.model_dump(),
            "active_workflows": sum(
                1 for w in self.store.list() if w.settings.enabled
            ),
            "total_workflows": len(self.store),
            "running_executions": self.scheduler.running_count(),
            "queued_executions": self.scheduler.queued_count(),
        }
