"""Exception hierarchy for the autoflow engine."""

from __future__ import annotations

from typing import List, Optional


class AutoflowError(Exception):
    """Base class for all engine errors."""


class ValidationError(AutoflowError):
    """A workflow or step definition is invalid."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Workflow validation failed: {', '.join(self.errors)}")


class NotFoundError(AutoflowError):
    """Unknown workflow, execution or component type."""


class DisabledError(AutoflowError):
    """Execution requested against a disabled workflow."""


class ComponentNotFound(NotFoundError):
    """Registry miss for a trigger, action or condition type."""

    def __init__(self, kind: str, component_type: str) -> None:
        self.kind = kind
        self.component_type = component_type
        super().__init__(f"{kind.capitalize()} not found: {component_type}")


class StepExecutionError(AutoflowError):
    """A step failed while running an action or condition."""

    def __init__(self, step_id: Optional[str], message: str) -> None:
        self.step_id = step_id
        self.message = message
        if step_id:
            super().__init__(f"Step failed: {step_id} - {message}")
        else:
            super().__init__(message)


class StepTimeoutError(StepExecutionError):
    """The workflow's timeout expired while a component was running."""


class StepLimitExceeded(AutoflowError):
    """An execution performed more step transitions than allowed."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(
            f"Execution exceeded {limit} step transitions; "
            "check condition steps for a jump cycle"
        )


class RetryExhausted(AutoflowError):
    """Terminal failure after all configured attempts were used."""

    def __init__(self, attempts: int, last_error: Optional[str]) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Retry attempts exhausted after {attempts} attempts: {last_error}"
        )
