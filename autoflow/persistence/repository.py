"""Repository abstraction for the execution table."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..contracts import Execution


class ExecutionRepository(Protocol):
    """Protocol for execution table backends."""

    def add(self, execution: Execution) -> None:
        """Store a newly created execution."""

    def get(self, execution_id: str) -> Execution | None:
        """Retrieve an execution by id."""

    def list(self, workflow_id: str | None = None) -> list[Execution]:
        """Return executions, optionally only those of ``workflow_id``."""

    def prune(self, finished_before: datetime) -> int:
        """Evict terminal executions that ended before ``finished_before``."""
