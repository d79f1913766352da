"""
Bulk activation and deactivation for modswitch.

A bulk operation applies an ordered list of steps to the Activation Store one
at a time, never in parallel. A failing step is recorded and the batch moves
on; there are no retries and nothing is rolled back.
"""

import asyncio
import inspect
import threading
import time
import uuid
from collections.abc import AsyncIterator, Iterable

from modswitch.modules.errors import CoreModuleError, ModuleError, StepApplyError
from modswitch.modules.interfaces import (
    ActivationStep,
    BatchProgress,
    BatchResult,
    BatchStatus,
    IActivationStore,
    Operation,
    ProgressCallback,
    StepResult,
    StepStatus,
)
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)


class BulkOperation:
    """One batch of steps and its execution state."""

    def __init__(
        self,
        workspace_id: str,
        steps: Iterable[ActivationStep | str],
        operation: Operation | str,
        actor_id: str
    ):
        """Create a batch in the planning state.

        Args:
            workspace_id: Target workspace
            steps: Plan steps, or bare module names, in execution order
            operation: ``activate`` or ``deactivate``
            actor_id: User recorded as the author of every change
        """
        self.operation_id = str(uuid.uuid4())
        self.workspace_id = workspace_id
        self.operation = Operation(operation)
        self.actor_id = actor_id
        self.steps: tuple[ActivationStep, ...] = tuple(
            step if isinstance(step, ActivationStep) else ActivationStep(order=position, module_name=step)
            for position, step in enumerate(steps, start=1)
        )
        self.status = BatchStatus.PLANNING
        self._results = [StepResult(order=step.order, module_name=step.module_name) for step in self.steps]
        self._cancel_requested = threading.Event()

    @property
    def results(self) -> list[StepResult]:
        return list(self._results)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def cancel(self) -> None:
        """Stop scheduling further steps. A step already in flight still completes."""
        self._cancel_requested.set()

    def result(self) -> BatchResult:
        by_status: dict[StepStatus, list[StepResult]] = {status: [] for status in StepStatus}
        for step in self._results:
            by_status[step.status].append(step)
        return BatchResult(
            workspace_id=self.workspace_id,
            operation=self.operation,
            status=self.status,
            succeeded=by_status[StepStatus.SUCCEEDED],
            failed=by_status[StepStatus.FAILED],
            skipped=by_status[StepStatus.SKIPPED],
        )


class BulkOperationOrchestrator:
    """Executes bulk operations against an Activation Store."""

    def __init__(self, store: IActivationStore, core_modules: Iterable[str] = ()):
        self._store = store
        self._core_modules = frozenset(core_modules)

    async def execute(self, operation: BulkOperation, on_progress: ProgressCallback | None = None) -> BatchResult:
        """Run every step of ``operation`` in order.

        Args:
            operation: Batch in the planning state
            on_progress: Optional sync or async callable receiving a
                ``BatchProgress`` after each step

        Returns:
            Succeeded, failed and skipped steps
        """
        if operation.status is not BatchStatus.PLANNING:
            raise ModuleError(
                f"Bulk operation {operation.operation_id} was already started",
                context={"status": operation.status.value},
            )

        total = len(operation.steps)
        operation.status = BatchStatus.EXECUTING
        logger.info(
            f"Starting {operation.operation.value} batch {operation.operation_id} in "
            f"{operation.workspace_id}: {[step.module_name for step in operation.steps]}"
        )

        completed = 0
        for index, step in enumerate(operation.steps):
            if operation.cancel_requested:
                self._skip_remaining(operation, index)
                break

            in_flight = operation._results[index].model_copy(
                update={"status": StepStatus.IN_FLIGHT, "started_at": time.time()}
            )
            operation._results[index] = in_flight

            try:
                await self._apply(operation, step)
            except Exception as e:
                failure = StepApplyError(step.module_name, e)
                logger.error(f"Step {step.order} of batch {operation.operation_id} failed: {failure}")
                finished = in_flight.model_copy(update={
                    "status": StepStatus.FAILED,
                    "error": str(e) or e.__class__.__name__,
                    "finished_at": time.time(),
                })
            else:
                finished = in_flight.model_copy(update={
                    "status": StepStatus.SUCCEEDED,
                    "finished_at": time.time(),
                })

            operation._results[index] = finished
            completed += 1
            await self._notify(on_progress, BatchProgress(completed=completed, total=total, last_step=finished))

        if any(result.status is StepStatus.SKIPPED for result in operation._results):
            operation.status = BatchStatus.CANCELLED
        else:
            operation.status = BatchStatus.COMPLETED

        result = operation.result()
        logger.info(
            f"Batch {operation.operation_id} {operation.status.value}: "
            f"{len(result.succeeded)} succeeded, {len(result.failed)} failed, {len(result.skipped)} skipped"
        )
        return result

    async def stream(self, operation: BulkOperation) -> AsyncIterator[BatchProgress]:
        """Execute ``operation`` and yield its progress events.

        The final ``BatchResult`` is available from ``operation.result()`` once
        the iterator is exhausted. Closing the iterator early cancels the batch
        between steps.
        """
        queue: asyncio.Queue = asyncio.Queue()
        finished = object()

        task = asyncio.create_task(self.execute(operation, on_progress=queue.put))
        task.add_done_callback(lambda _: queue.put_nowait(finished))

        try:
            while True:
                item = await queue.get()
                if item is finished:
                    break
                yield item
            await task
        finally:
            if not task.done():
                operation.cancel()
                await task

    async def _apply(self, operation: BulkOperation, step: ActivationStep) -> None:
        desired = operation.operation.desired_state
        if not desired and step.module_name in self._core_modules:
            raise CoreModuleError(step.module_name)
        await self._store.apply(operation.workspace_id, step.module_name, desired, operation.actor_id)

    @staticmethod
    def _skip_remaining(operation: BulkOperation, start: int) -> None:
        for index in range(start, len(operation._results)):
            operation._results[index] = operation._results[index].model_copy(update={"status": StepStatus.SKIPPED})
        logger.info(
            f"Batch {operation.operation_id} cancelled; {len(operation._results) - start} steps not attempted"
        )

    @staticmethod
    async def _notify(callback: ProgressCallback | None, progress: BatchProgress) -> None:
        if callback is None:
            return
        try:
            outcome = callback(progress)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Progress observer failed: {e}")
