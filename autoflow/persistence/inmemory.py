"""In-memory implementation of the execution repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from ..contracts import Execution
from .repository import ExecutionRepository


class InMemoryExecutionRepository(ExecutionRepository):
    """Store executions in local memory.

    Executions are kept in insertion order and are not persisted across
    process restarts.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, Execution] = {}

    # ------------------------------------------------------------------
    def add(self, execution: Execution) -> None:
        self._executions[execution.id] = execution

    def get(self, execution_id: str) -> Execution | None:
        return self._executions.get(execution_id)

    def list(self, workflow_id: str | None = None) -> list[Execution]:
        executions = list(self._executions.values())
        if workflow_id is not None:
            return [e for e in executions if e.workflow_id == workflow_id]
        return executions

    def prune(self, finished_before: datetime) -> int:
        expired = [
            execution_id
            for execution_id, execution in self._executions.items()
            if execution.is_terminal
            and execution.end_time is not None
            and execution.end_time < finished_before
        ]
        for execution_id in expired:
            del self._executions[execution_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._executions)
