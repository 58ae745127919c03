"""Step execution engine for autoflow workflows."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from .constants import BRANCH_INDEX_KEY, LOOP_INDEX_KEY
from .contracts import (
    ActionStep,
    ConditionRef,
    ConditionStep,
    Execution,
    LoopStep,
    ParallelStep,
    Step,
    StepKind,
    StepResult,
    Workflow,
    utcnow,
)
from .errors import StepExecutionError, StepTimeoutError
from .registry import ComponentRegistry
from .resolver import resolve_parameters

logger = logging.getLogger(__name__)

_MISSING = object()


class StepExecutor:
    """Runs single steps against an execution's context.

    Component failures never propagate out of :meth:`execute_step`; they are
    reported through ``StepResult.success`` and ``StepResult.error``.
    """

    def __init__(self, registry: ComponentRegistry) -> None:
        self._registry = registry

    async def execute_step(
        self,
        step: Step,
        execution: Execution,
        workflow: Optional[Workflow] = None,
        deadline: Optional[float] = None,
    ) -> StepResult:
        """Run ``step`` with ``execution.context`` as the shared context.

        Args:
            step: Step to run.
            execution: Execution owning the context.
            workflow: Workflow the step belongs to, used for logging.
            deadline: Event loop time after which component calls time out.
        """
        if workflow is not None:
            logger.debug(
                f"Executing step {step.id} ({step.type}) of workflow {workflow.name} "
                f"for execution_id={execution.id}"
            )
        return await self._run_step(step, execution.context, deadline)

    async def _run_step(
        self, step: Step, context: Dict[str, Any], deadline: Optional[float]
    ) -> StepResult:
        start_time = utcnow()
        try:
            if step.pre_conditions and not await self._conditions_met(
                step, context, deadline
            ):
                logger.debug(f"Skipping step {step.id}: conditions not met")
                return StepResult(
                    success=True,
                    start_time=start_time,
                    end_time=utcnow(),
                    result={"skipped": True, "reason": "Conditions not met"},
                )

            next_step = None
            kind = step.kind
            if kind is StepKind.ACTION:
                result = await self._run_action(step, context, deadline)
            elif kind is StepKind.CONDITION:
                met = await self._evaluate(
                    step.condition_type, step.parameters, context, deadline, step.id
                )
                next_step = step.true_step if met else step.false_step
                result = {"condition_met": met, "next_step": next_step}
            elif kind is StepKind.LOOP:
                result = await self._run_loop(step, context, deadline)
            elif kind is StepKind.PARALLEL:
                result = await self._run_parallel(step, context, deadline)
            else:  # pragma: no cover - the discriminated union rejects others
                raise StepExecutionError(step.id, f"Unknown step type: {step.type}")

            if step.output_variable and result is not None:
                context[step.output_variable] = result

            return StepResult(
                success=True,
                result=result,
                start_time=start_time,
                end_time=utcnow(),
                next_step=next_step,
            )
        except Exception as e:
            if isinstance(e, StepExecutionError) and e.step_id == step.id:
                error = e.message
            else:
                error = str(e)
            logger.warning(f"Step {step.id} failed: {error}")
            return StepResult(
                success=False,
                error=error,
                start_time=start_time,
                end_time=utcnow(),
            )

    # ------------------------------------------------------------------
    async def _conditions_met(
        self, step: Step, context: Dict[str, Any], deadline: Optional[float]
    ) -> bool:
        ref: ConditionRef
        for ref in step.pre_conditions:
            if not await self._evaluate(
                ref.type, ref.parameters, context, deadline, step.id
            ):
                return False
        return True

    async def _run_action(
        self, step: ActionStep, context: Dict[str, Any], deadline: Optional[float]
    ) -> Any:
        action = self._registry.get_action(step.action_type)
        parameters = resolve_parameters(step.parameters, context)
        return await self._call(action.execute, parameters, context, deadline, step.id)

    async def _evaluate(
        self,
        condition_type: str,
        parameters: Dict[str, Any],
        context: Dict[str, Any],
        deadline: Optional[float],
        step_id: str,
    ) -> bool:
        condition = self._registry.get_condition(condition_type)
        resolved = resolve_parameters(parameters, context)
        return bool(
            await self._call(condition.evaluate, resolved, context, deadline, step_id)
        )

    async def _call(
        self,
        func: Callable[..., Any],
        parameters: Dict[str, Any],
        context: Dict[str, Any],
        deadline: Optional[float],
        step_id: str,
    ) -> Any:
        """Invoke a component method, bounding awaitables by ``deadline``."""
        remaining = self._remaining(deadline, step_id)
        value = func(parameters, context)
        if not inspect.isawaitable(value):
            return value
        if remaining is None:
            return await value
        try:
            return await asyncio.wait_for(value, remaining)
        except asyncio.TimeoutError:
            raise StepTimeoutError(step_id, "Workflow timeout expired") from None

    @staticmethod
    def _remaining(deadline: Optional[float], step_id: str) -> Optional[float]:
        if deadline is None:
            return None
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise StepTimeoutError(step_id, "Workflow timeout expired")
        return remaining

    # ------------------------------------------------------------------
    async def _run_sequence(
        self, steps: List[Step], context: Dict[str, Any], deadline: Optional[float]
    ) -> List[Any]:
        results = []
        for nested in steps:
            nested_result = await self._run_step(nested, context, deadline)
            if not nested_result.success and not nested.continue_on_failure:
                raise StepExecutionError(nested.id, nested_result.error or "failed")
            results.append(nested_result.result)
        return results

    async def _run_loop(
        self, step: LoopStep, context: Dict[str, Any], deadline: Optional[float]
    ) -> List[List[Any]]:
        previous = context.get(LOOP_INDEX_KEY, _MISSING)
        results = []
        try:
            for index in range(step.iterations):
                context[LOOP_INDEX_KEY] = index
                results.append(await self._run_sequence(step.steps, context, deadline))
        finally:
            if previous is _MISSING:
                context.pop(LOOP_INDEX_KEY, None)
            else:
                context[LOOP_INDEX_KEY] = previous
        return results

    async def _run_parallel(
        self, step: ParallelStep, context: Dict[str, Any], deadline: Optional[float]
    ) -> List[List[Any]]:
        """Run all branches concurrently and join them all-or-nothing.

        Each branch works on its own shallow copy of the context; the copies
        are merged back only when every branch succeeded.
        """
        if not step.branches:
            return []

        snapshot = dict(context)
        branch_contexts = []
        tasks = []
        for index, branch in enumerate(step.branches):
            branch_context = dict(context)
            branch_context[BRANCH_INDEX_KEY] = index
            branch_contexts.append(branch_context)
            tasks.append(
                asyncio.ensure_future(
                    self._run_sequence(branch, branch_context, deadline)
                )
            )

        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION
            )
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if task in done and task.exception() is not None:
                raise task.exception()

        for branch_context in branch_contexts:
            for key, value in branch_context.items():
                if key == BRANCH_INDEX_KEY:
                    continue
                if snapshot.get(key, _MISSING) is not value:
                    context[key] = value
        return [task.result() for task in tasks]
