"""Core data contracts for autoflow workflows and executions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class StepKind(str, Enum):
    """The four kinds of step the executor knows how to run."""

    ACTION = "action"
    CONDITION = "condition"
    LOOP = "loop"
    PARALLEL = "parallel"


class ConditionRef(BaseModel):
    """Reference to a registered condition plus its parameter template."""

    model_config = ConfigDict(frozen=True)

    type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class BaseStep(BaseModel):
    """Fields shared by every step kind."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    pre_conditions: List[ConditionRef] = Field(default_factory=list)
    continue_on_failure: bool = False
    output_variable: Optional[str] = None

    @property
    def kind(self) -> StepKind:
        return StepKind(self.type)  # type: ignore[attr-defined]


class ActionStep(BaseStep):
    """Invoke a registered action with resolved parameters."""

    type: Literal["action"] = "action"
    action_type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ConditionStep(BaseStep):
    """Evaluate a condition and jump to ``true_step`` or ``false_step``."""

    type: Literal["condition"] = "condition"
    condition_type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    true_step: Optional[str] = None
    false_step: Optional[str] = None


class LoopStep(BaseStep):
    """Run nested steps ``iterations`` times in sequence."""

    type: Literal["loop"] = "loop"
    iterations: int = Field(default=1, ge=0)
    steps: List[Step] = Field(default_factory=list)


class ParallelStep(BaseStep):
    """Run each branch concurrently; steps inside a branch run in order."""

    type: Literal["parallel"] = "parallel"
    branches: List[List[Step]] = Field(default_factory=list)


Step = Annotated[
    Union[ActionStep, ConditionStep, LoopStep, ParallelStep],
    Field(discriminator="type"),
]

LoopStep.model_rebuild()
ParallelStep.model_rebuild()


def iter_steps(steps: List[Step]) -> Iterator[Step]:
    """Yield ``steps`` and every step nested inside loops and branches."""
    for step in steps:
        yield step
        if isinstance(step, LoopStep):
            yield from iter_steps(step.steps)
        elif isinstance(step, ParallelStep):
            for branch in step.branches:
                yield from iter_steps(branch)


class TriggerSpec(BaseModel):
    """Which registered trigger starts the workflow, and how."""

    type: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class WorkflowSettings(BaseModel):
    enabled: bool = True
    # Stored but not consulted: executions of one workflow may overlap.
    concurrent: bool = False
    timeout_ms: Optional[int] = None
    retry_on_failure: bool = True
    notify_on_failure: bool = False


class WorkflowMetadata(BaseModel):
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = None
    version: int = 1
    tags: List[str] = Field(default_factory=list)


def _rolling_average(previous: float, count: int, sample: float) -> float:
    return (previous * (count - 1) + sample) / count


class WorkflowMetrics(BaseModel):
    """Rolling per-workflow run statistics."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    average_run_time_ms: float = 0.0
    last_run: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    def record(self, run_time_ms: float, success: bool, finished_at: datetime) -> None:
        """Fold one terminal outcome into the statistics."""
        self.total_runs += 1
        self.last_run = finished_at
        if success:
            self.successful_runs += 1
            self.last_success = finished_at
        else:
            self.failed_runs += 1
            self.last_failure = finished_at
        self.average_run_time_ms = _rolling_average(
            self.average_run_time_ms, self.total_runs, run_time_ms
        )


class EngineMetrics(BaseModel):
    """Aggregate statistics across every workflow of one engine."""

    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_execution_time_ms: float = 0.0

    def record(self, run_time_ms: float, success: bool) -> None:
        self.total_executions += 1
        if success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1
        self.average_execution_time_ms = _rolling_average(
            self.average_execution_time_ms, self.total_executions, run_time_ms
        )


class Workflow(BaseModel):
    """A named automation definition: trigger, ordered steps and settings."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    description: str = ""
    trigger: TriggerSpec = Field(default_factory=TriggerSpec)
    steps: List[Step] = Field(default_factory=list)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)
    metrics: WorkflowMetrics = Field(default_factory=WorkflowMetrics)


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)


class StepRecord(BaseModel):
    """Record of one step run inside an execution attempt."""

    step_index: int
    step_id: str
    step_type: StepKind
    status: Literal["completed", "failed"]
    start_time: datetime
    end_time: datetime
    result: Any = None
    error: Optional[str] = None
    attempt: int = 0


class StepResult(BaseModel):
    """Outcome of running a single step.

    ``next_step`` is only set by condition steps and names the step the
    scheduler should jump to.
    """

    success: bool
    result: Any = None
    error: Optional[str] = None
    start_time: datetime
    end_time: datetime
    next_step: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return isinstance(self.result, dict) and self.result.get("skipped") is True


class Execution(BaseModel):
    """One run instance of a workflow."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    context: Dict[str, Any] = Field(default_factory=dict)
    initial_context: Dict[str, Any] = Field(default_factory=dict)
    steps: List[StepRecord] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    retry_attempt: int = 0
    history: List[ExecutionStatus] = Field(
        default_factory=lambda: [ExecutionStatus.PENDING]
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: ExecutionStatus) -> None:
        """Move to ``status`` and remember it in ``history``."""
        self.status = status
        self.history.append(status)
        if status in TERMINAL_STATUSES:
            self.end_time = utcnow()

    @property
    def run_time_ms(self) -> float:
        end = self.end_time or utcnow()
        return (end - self.start_time).total_seconds() * 1000
