"""Execution scheduler: FIFO queue, concurrency budget and retry policy."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from datetime import timedelta
from typing import Any, Deque, Dict, List, Optional, Set

from .components.base import LoggingFailureNotifier
from .config import SchedulerConfig
from .contracts import (
    EngineMetrics,
    Execution,
    ExecutionStatus,
    Step,
    StepRecord,
    Workflow,
    utcnow,
)
from .errors import (
    AutoflowError,
    DisabledError,
    NotFoundError,
    RetryExhausted,
    StepExecutionError,
    StepLimitExceeded,
)
from .events import (
    EXECUTION_CANCELLED,
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_QUEUED,
    EXECUTION_RETRYING,
    EXECUTION_STARTED,
    EventEmitter,
)
from .execute import StepExecutor
from .persistence import ExecutionRepository, InMemoryExecutionRepository
from .store import WorkflowStore
from .utils.retry import compute_backoff, schedule_retry

logger = logging.getLogger(__name__)

_CANCELLABLE = (
    ExecutionStatus.PENDING,
    ExecutionStatus.RUNNING,
    ExecutionStatus.RETRYING,
)


class ExecutionScheduler:
    """Admits queued executions under a global concurrency budget.

    The scheduler is the single consumer of its queue. Each admitted
    execution is driven on its own task so that up to
    ``max_concurrent_executions`` of them can be ``running`` at once.
    Step failures are absorbed into execution state; nothing raised by a
    step escapes :meth:`process_next` or the drive tasks.
    """

    def __init__(
        self,
        store: WorkflowStore,
        executor: StepExecutor,
        config: Optional[SchedulerConfig] = None,
        repository: Optional[ExecutionRepository] = None,
        notifier: Any = None,
        events: Optional[EventEmitter] = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._config = config or SchedulerConfig()
        self._repository = repository or InMemoryExecutionRepository()
        self._notifier = notifier or LoggingFailureNotifier()
        self._events = events or EventEmitter()
        self._queue: Deque[Execution] = deque()
        self._wakeup = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()
        self._done: Dict[str, asyncio.Event] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self.metrics = EngineMetrics()

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------
    def enqueue(self, workflow_id: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Create a ``pending`` execution of ``workflow_id`` and queue it.

        Raises:
            NotFoundError: If the workflow does not exist.
            DisabledError: If the workflow is disabled.
        """
        workflow = self._store.get(workflow_id)
        if not workflow.settings.enabled:
            raise DisabledError(f"Workflow is disabled: {workflow_id}")

        initial_context = dict(context or {})
        execution = Execution(
            workflow_id=workflow_id,
            context=dict(initial_context),
            initial_context=initial_context,
        )
        self._repository.add(execution)
        self._done[execution.id] = asyncio.Event()
        self._push(execution)

        logger.info(f"Workflow execution queued: {workflow.name} ({execution.id})")
        self._events.emit(
            EXECUTION_QUEUED, workflow_id=workflow_id, execution_id=execution.id
        )
        return execution.id

    def _push(self, execution: Execution) -> None:
        self._queue.append(execution)
        self._wakeup.set()

    def running_count(self) -> int:
        return sum(
            1
            for execution in self._repository.list()
            if execution.status is ExecutionStatus.RUNNING
        )

    def queued_count(self) -> int:
        return sum(
            1
            for execution in self._queue
            if execution.status is ExecutionStatus.PENDING
        )

    def _can_admit(self) -> bool:
        return (
            bool(self._queue)
            and self.running_count() < self._config.max_concurrent_executions
        )

    async def process_next(self) -> str:
        """Admit the next queued execution and start driving it.

        Waits while the queue is empty or the concurrency budget is used up.
        Entries cancelled while they were queued are dropped.

        Returns:
            Id of the execution that was admitted.
        """
        while True:
            while not self._can_admit():
                self._wakeup.clear()
                await self._wakeup.wait()

            execution = self._queue.popleft()
            if execution.status is not ExecutionStatus.PENDING:
                logger.debug(
                    f"Dropping queued execution {execution.id} ({execution.status.value})"
                )
                continue

            self._prune()
            execution.transition(ExecutionStatus.RUNNING)
            self._track(asyncio.create_task(self._drive(execution)))
            return execution.id

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Start the background drain loop."""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._drain_loop())
        logger.info("Execution scheduler started")

    async def _drain_loop(self) -> None:
        while True:
            await self.process_next()

    async def stop(self) -> None:
        """Stop draining and abandon in-flight executions and retry timers."""
        tasks = list(self._tasks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None

        for execution in self._repository.list():
            if execution.status in (ExecutionStatus.RUNNING, ExecutionStatus.RETRYING):
                self._cancel(execution)
        logger.info("Execution scheduler stopped")

    # ------------------------------------------------------------------
    # Driving executions
    # ------------------------------------------------------------------
    async def _drive(self, execution: Execution) -> None:
        try:
            workflow = self._store.find(execution.workflow_id)
            if workflow is None:
                execution.error = "Workflow not found"
                execution.transition(ExecutionStatus.FAILED)
                logger.error(
                    f"Execution {execution.id} failed: workflow "
                    f"{execution.workflow_id} not found"
                )
                return

            logger.info(f"Executing workflow: {workflow.name} ({execution.id})")
            self._events.emit(
                EXECUTION_STARTED,
                workflow_id=workflow.id,
                execution_id=execution.id,
                data={"attempt": execution.retry_attempt},
            )
            try:
                finished = await self._run_steps(execution, workflow)
            except AutoflowError as e:
                await self._handle_failure(execution, workflow, e)
                return

            if finished:
                self._complete(execution, workflow)
            else:
                logger.info(f"Execution cancelled: {workflow.name} ({execution.id})")
        except Exception as e:
            logger.exception(f"Execution processing error for {execution.id}: {e}")
            if not execution.is_terminal:
                execution.error = str(e)
                execution.transition(ExecutionStatus.FAILED)
        finally:
            self._wakeup.set()
            if execution.is_terminal:
                self._mark_done(execution)

    async def _run_steps(self, execution: Execution, workflow: Workflow) -> bool:
        """Walk the workflow's steps with a jumpable cursor.

        Returns ``False`` when the execution was cancelled part way through.

        Raises:
            StepExecutionError: If a step fails without ``continue_on_failure``.
            StepLimitExceeded: If condition jumps keep the cursor going for
                more than ``max_step_transitions`` steps.
        """
        steps: List[Step] = workflow.steps
        timeout_ms = workflow.settings.timeout_ms
        deadline = (
            asyncio.get_running_loop().time() + timeout_ms / 1000
            if timeout_ms
            else None
        )
        limit = self._config.max_step_transitions
        transitions = 0
        index = 0

        while index < len(steps):
            if execution.status is not ExecutionStatus.RUNNING:
                return False
            transitions += 1
            if transitions > limit:
                raise StepLimitExceeded(limit)

            step = steps[index]
            result = await self._executor.execute_step(
                step, execution, workflow, deadline
            )
            execution.steps.append(
                StepRecord(
                    step_index=index,
                    step_id=step.id,
                    step_type=step.kind,
                    status="completed" if result.success else "failed",
                    start_time=result.start_time,
                    end_time=result.end_time,
                    result=result.result,
                    error=result.error,
                    attempt=execution.retry_attempt,
                )
            )
            if execution.status is not ExecutionStatus.RUNNING:
                return False

            if not result.success:
                if step.continue_on_failure:
                    logger.warning(f"Step failed but continuing: {step.id}")
                    index += 1
                    continue
                raise StepExecutionError(step.id, result.error or "failed")

            if result.next_step is not None:
                target = next(
                    (i for i, s in enumerate(steps) if s.id == result.next_step), -1
                )
                if target < 0:
                    raise StepExecutionError(
                        step.id, f"Unknown next step: {result.next_step}"
                    )
                index = target
            else:
                index += 1
        return True

    def _complete(self, execution: Execution, workflow: Workflow) -> None:
        execution.error = None
        execution.transition(ExecutionStatus.COMPLETED)
        self._record_metrics(workflow, execution, success=True)
        logger.info(f"Workflow completed: {workflow.name} ({execution.id})")
        self._events.emit(
            EXECUTION_COMPLETED,
            workflow_id=workflow.id,
            execution_id=execution.id,
            data={"run_time_ms": execution.run_time_ms},
        )

    async def _handle_failure(
        self, execution: Execution, workflow: Workflow, error: Exception
    ) -> None:
        execution.error = str(error)
        retry = self._config.retry

        if (
            workflow.settings.retry_on_failure
            and execution.retry_attempt + 1 < retry.max_attempts
        ):
            execution.retry_attempt += 1
            execution.transition(ExecutionStatus.RETRYING)
            delay = compute_backoff(execution.retry_attempt, retry.base_delay)
            logger.info(
                f"Retrying workflow: {workflow.name} "
                f"(attempt {execution.retry_attempt}) in {delay}s"
            )
            self._events.emit(
                EXECUTION_RETRYING,
                workflow_id=workflow.id,
                execution_id=execution.id,
                data={"attempt": execution.retry_attempt, "error": execution.error},
            )
            self._track(asyncio.create_task(self._requeue_later(execution)))
            return

        if workflow.settings.retry_on_failure and execution.retry_attempt > 0:
            execution.error = str(
                RetryExhausted(execution.retry_attempt + 1, execution.error)
            )
        execution.transition(ExecutionStatus.FAILED)
        self._record_metrics(workflow, execution, success=False)
        logger.error(
            f"Workflow failed: {workflow.name} ({execution.id}): {execution.error}"
        )
        self._events.emit(
            EXECUTION_FAILED,
            workflow_id=workflow.id,
            execution_id=execution.id,
            data={"error": execution.error},
        )

        if workflow.settings.notify_on_failure:
            try:
                outcome = self._notifier.notify(workflow, execution)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Failure notification for {execution.id} failed: {e}")

    async def _requeue_later(self, execution: Execution) -> None:
        await schedule_retry(execution.retry_attempt, self._config.retry.base_delay)
        if execution.status is not ExecutionStatus.RETRYING:
            return
        execution.context = dict(execution.initial_context)
        execution.transition(ExecutionStatus.PENDING)
        self._push(execution)

    def _record_metrics(
        self, workflow: Workflow, execution: Execution, success: bool
    ) -> None:
        run_time_ms = execution.run_time_ms
        workflow.metrics.record(run_time_ms, success, execution.end_time or utcnow())
        self.metrics.record(run_time_ms, success)

    # ------------------------------------------------------------------
    # Cancellation, lookup and retention
    # ------------------------------------------------------------------
    def _cancel(self, execution: Execution) -> None:
        execution.transition(ExecutionStatus.CANCELLED)
        self._mark_done(execution)
        self._events.emit(
            EXECUTION_CANCELLED,
            workflow_id=execution.workflow_id,
            execution_id=execution.id,
        )

    def cancel(self, execution_id: str) -> bool:
        """Cancel one execution; returns ``False`` if it already finished."""
        execution = self.get(execution_id)
        if execution.status not in _CANCELLABLE:
            return False
        self._cancel(execution)
        self._wakeup.set()
        return True

    def cancel_executions_for(self, workflow_id: str) -> int:
        """Cancel every unfinished execution of ``workflow_id``.

        Running executions stop before their next step; an action already in
        flight is not interrupted.
        """
        cancelled = 0
        for execution in self._repository.list(workflow_id):
            if execution.status in _CANCELLABLE:
                self._cancel(execution)
                cancelled += 1
        if cancelled:
            logger.info(f"Cancelled {cancelled} executions of workflow {workflow_id}")
            self._wakeup.set()
        return cancelled

    def _mark_done(self, execution: Execution) -> None:
        event = self._done.get(execution.id)
        if event is not None:
            event.set()

    def get(self, execution_id: str) -> Execution:
        execution = self._repository.get(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution not found: {execution_id}")
        return execution

    def list(self, workflow_id: Optional[str] = None) -> List[Execution]:
        return self._repository.list(workflow_id)

    async def wait_for(
        self, execution_id: str, timeout: Optional[float] = None
    ) -> Execution:
        """Wait until the execution is completed, failed or cancelled.

        Raises:
            NotFoundError: If the execution is unknown.
            asyncio.TimeoutError: If ``timeout`` seconds pass first.
        """
        execution = self.get(execution_id)
        event = self._done.get(execution_id)
        if event is not None and not execution.is_terminal:
            await asyncio.wait_for(event.wait(), timeout)
        return execution

    def _prune(self) -> None:
        retention = self._config.execution_retention_seconds
        if retention is None:
            return
        cutoff = utcnow() - timedelta(seconds=retention)
        removed = self._repository.prune(cutoff)
        if removed:
            for execution_id in [k for k in self._done if self._repository.get(k) is None]:
                del self._done[execution_id]
            logger.debug(f"Evicted {removed} finished executions")
