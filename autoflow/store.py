"""In-memory table of workflow definitions with validation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import pydantic

from .config import StoreConfig
from .contracts import ConditionStep, Workflow, iter_steps, utcnow
from .errors import NotFoundError, ValidationError
from .registry import ComponentRegistry

logger = logging.getLogger(__name__)

_MERGED_SECTIONS = ("settings", "metadata")


def _format_pydantic_errors(exc: pydantic.ValidationError) -> List[str]:
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        errors.append(f"{location}: {error['msg']}" if location else error["msg"])
    return errors


class WorkflowStore:
    """Holds workflow definitions keyed by id.

    Triggers and running executions are not touched here; the
    :class:`~autoflow.engine.WorkflowEngine` binds, unbinds and cancels
    around the store operations.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        registry: Optional[ComponentRegistry] = None,
        default_timeout_ms: Optional[int] = None,
    ) -> None:
        self._config = config or StoreConfig()
        self._registry = registry
        self._default_timeout_ms = default_timeout_ms
        self._workflows: Dict[str, Workflow] = {}

    # ------------------------------------------------------------------
    def _parse(self, data: Mapping[str, Any]) -> Workflow:
        try:
            return Workflow.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(_format_pydantic_errors(exc)) from exc

    def validate(self, workflow: Workflow) -> List[str]:
        """Return the list of invariant violations for ``workflow``."""
        errors: List[str] = []
        max_steps = self._config.max_steps_per_workflow

        if not workflow.name or len(workflow.name) < 3:
            errors.append("Workflow name must be at least 3 characters")
        if not workflow.trigger.type:
            errors.append("Workflow must have a trigger")
        if not workflow.steps:
            errors.append("Workflow must have at least one step")
        if len(workflow.steps) > max_steps:
            errors.append(f"Workflow cannot have more than {max_steps} steps")

        seen = set()
        for step in iter_steps(workflow.steps):
            if step.id in seen:
                errors.append(f"Duplicate step id: {step.id}")
            seen.add(step.id)

        top_level_ids = {step.id for step in workflow.steps}
        for step in workflow.steps:
            if not isinstance(step, ConditionStep):
                continue
            for target in (step.true_step, step.false_step):
                if target is not None and target not in top_level_ids:
                    errors.append(
                        f"Condition step {step.id} jumps to unknown step: {target}"
                    )

        if (
            workflow.trigger.type
            and self._registry is not None
            and not self._registry.has_trigger(workflow.trigger.type)
        ):
            logger.warning(
                f"Workflow '{workflow.name}' uses unregistered trigger type "
                f"'{workflow.trigger.type}'"
            )
        return errors

    def _check(self, workflow: Workflow) -> None:
        errors = self.validate(workflow)
        if errors:
            raise ValidationError(errors)

    # ------------------------------------------------------------------
    def create(self, definition: Union[Workflow, Mapping[str, Any]]) -> Workflow:
        """Validate ``definition`` and store it as version 1."""
        if isinstance(definition, Workflow):
            definition = definition.model_dump()
        data = dict(definition)
        data.pop("metrics", None)
        metadata = dict(data.get("metadata") or {})
        metadata["version"] = 1
        now = utcnow()
        metadata["created_at"] = now
        metadata["updated_at"] = now
        data["metadata"] = metadata

        workflow = self._parse(data)
        if workflow.settings.timeout_ms is None:
            workflow.settings.timeout_ms = self._default_timeout_ms

        if workflow.id in self._workflows:
            raise ValidationError([f"Workflow id already exists: {workflow.id}"])
        if len(self._workflows) >= self._config.max_workflows:
            raise ValidationError(
                [f"Cannot store more than {self._config.max_workflows} workflows"]
            )
        self._check(workflow)

        self._workflows[workflow.id] = workflow
        logger.info(f"Workflow created: {workflow.name} ({workflow.id})")
        return workflow

    def update(self, workflow_id: str, patch: Mapping[str, Any]) -> Workflow:
        """Merge ``patch`` into the stored workflow as a new version.

        The stored workflow is only modified once the merged result has
        passed validation.
        """
        existing = self.get(workflow_id)
        data = existing.model_dump()
        for key, value in patch.items():
            if key in ("id", "metrics"):
                continue
            if key in _MERGED_SECTIONS and isinstance(value, Mapping):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        data["metadata"]["version"] = existing.metadata.version + 1
        data["metadata"]["created_at"] = existing.metadata.created_at
        data["metadata"]["updated_at"] = utcnow()

        candidate = self._parse(data)
        self._check(candidate)

        for field in Workflow.model_fields:
            if field in ("id", "metrics"):
                continue
            setattr(existing, field, getattr(candidate, field))
        logger.info(
            f"Workflow updated: {existing.name} ({workflow_id}) "
            f"version={existing.metadata.version}"
        )
        return existing

    def delete(self, workflow_id: str) -> Workflow:
        workflow = self.get(workflow_id)
        del self._workflows[workflow_id]
        logger.info(f"Workflow deleted: {workflow.name} ({workflow_id})")
        return workflow

    def get(self, workflow_id: str) -> Workflow:
        """Return the workflow or raise :class:`NotFoundError`."""
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow not found: {workflow_id}")
        return workflow

    def find(self, workflow_id: str) -> Optional[Workflow]:
        return self._workflows.get(workflow_id)

    def list(self) -> List[Workflow]:
        return list(self._workflows.values())

    def __len__(self) -> int:
        return len(self._workflows)
