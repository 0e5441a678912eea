"""Build workflow orchestration.

This module provides the sequential executor:
- BuildWorkflow.execute(): run every step in list order, fail fast
- BuildWorkflow.collect_artifacts(): group uploaded artifacts by type
- create_build_steps(): turn concrete step definitions into shell steps

Steps run strictly one at a time. The working directory is acquired before
the first step and released on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence

from buildflow.steps.artifacts import collect_artifacts
from buildflow.steps.context import WorkflowContext
from buildflow.steps.env import merge_env
from buildflow.steps.errors import ConfigurationError
from buildflow.steps.functions import BuildStepDefinition
from buildflow.steps.step import BuildStep, ShellBuildStep, StepExecutionError
from buildflow.types import StepStatus, WorkflowStatus

logger = logging.getLogger(__name__)


class WorkflowStateError(RuntimeError):
    """Raised when a workflow operation is invalid in its current state."""

    def __init__(self, message: str, status: WorkflowStatus) -> None:
        super().__init__(message)
        self.status = status
        self.code = "invalid_workflow_state"


class WorkflowAbortedError(Exception):
    """Raised when a step failure aborts the workflow.

    Attributes:
        step_id: Id of the failing step.
        step_index: Position of the failing step.
        step_error: The originating step error.
    """

    def __init__(
        self,
        step_error: StepExecutionError,
        step_index: int,
    ) -> None:
        super().__init__(
            f"Workflow aborted at step {step_index + 1} ('{step_error.step_id}'): "
            f"{step_error}"
        )
        self.step_id = step_error.step_id
        self.step_index = step_index
        self.step_error = step_error
        self.code = "workflow_aborted"


class WorkflowCancelledError(Exception):
    """Raised when a workflow is cancelled between steps."""

    def __init__(self, next_step_index: int) -> None:
        super().__init__(f"Workflow cancelled before step {next_step_index + 1}")
        self.next_step_index = next_step_index
        self.code = "workflow_cancelled"


def create_build_steps(
    ctx: WorkflowContext,
    definitions: Iterable[BuildStepDefinition],
) -> list[BuildStep]:
    """Create shell steps from concrete step definitions."""
    return [
        ShellBuildStep(
            ctx,
            id=d.id,
            command=d.command,
            name=d.name,
            working_directory=d.working_directory,
            env=d.env,
            shell=d.shell,
        )
        for d in definitions
    ]


class BuildWorkflow:
    """Ordered list of build steps executed sequentially."""

    def __init__(
        self,
        ctx: WorkflowContext,
        build_steps: Sequence[BuildStep],
    ) -> None:
        self.ctx = ctx
        self.build_steps: tuple[BuildStep, ...] = tuple(build_steps)
        self.status = WorkflowStatus.INITIALIZED
        self._cancel_requested = False

        seen: set[str] = set()
        for step in self.build_steps:
            if step.id in seen:
                raise ConfigurationError(f"Duplicate step id: {step.id}")
            seen.add(step.id)

    def __len__(self) -> int:
        return len(self.build_steps)

    def cancel(self) -> None:
        """Request cancellation at the next step boundary."""
        self._cancel_requested = True

    def step_statuses(self) -> dict[str, StepStatus]:
        return {step.id: step.status for step in self.build_steps}

    async def execute(self, env: Mapping[str, str] | None = None) -> None:
        """Execute all steps in order.

        Args:
            env: Workflow-level environment. Each step receives it merged
                with the step's own env; without it steps see only their own.

        Raises:
            WorkflowStateError: If the workflow has already been executed.
            WorkflowAbortedError: If a step fails.
            WorkflowCancelledError: If cancellation was requested.
        """
        if self.status is not WorkflowStatus.INITIALIZED:
            raise WorkflowStateError(
                f"Workflow cannot be executed in state '{self.status.value}'",
                self.status,
            )

        self.status = WorkflowStatus.RUNNING
        logger.info("Workflow started: %d step(s)", len(self.build_steps))

        try:
            with self.ctx.acquire():
                for index, step in enumerate(self.build_steps):
                    if self._cancel_requested:
                        logger.warning("Workflow cancelled before step %s", step.id)
                        raise WorkflowCancelledError(index)
                    step_env = merge_env(env, step.env)
                    try:
                        await step.execute(step_env)
                    except StepExecutionError as e:
                        logger.error("Workflow aborted at step %s: %s", step.id, e)
                        raise WorkflowAbortedError(e, index) from e
        except (Exception, asyncio.CancelledError):
            self.status = WorkflowStatus.FAILED
            raise

        self.status = WorkflowStatus.COMPLETED
        logger.info("Workflow completed")

    def collect_artifacts(self) -> dict[str, list[str]]:
        """Group artifact paths uploaded by the executed steps by type.

        After a failure only the steps that succeeded contribute.

        Raises:
            WorkflowStateError: If the workflow has not finished executing.
        """
        if self.status not in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED):
            raise WorkflowStateError(
                f"Artifacts cannot be collected in state '{self.status.value}'",
                self.status,
            )
        return collect_artifacts(self.build_steps, only_succeeded=True)


__all__ = [
    "BuildWorkflow",
    "WorkflowAbortedError",
    "WorkflowCancelledError",
    "WorkflowStateError",
    "create_build_steps",
]
