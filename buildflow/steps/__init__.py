"""Build step execution engine.

This module handles:
- Environment merging for step execution
- Build steps and the upload-artifact directive
- Build function expansion
- Working directory lifecycle
- Sequential workflow execution and artifact collection
"""

from buildflow.steps.artifacts import (
    APPLICATION_ARCHIVE,
    BUILD_ARTIFACT,
    Artifact,
    collect_artifacts,
)
from buildflow.steps.context import WorkflowContext
from buildflow.steps.env import BuildStepEnv, merge_env
from buildflow.steps.errors import ConfigurationError, UnknownFunctionError
from buildflow.steps.functions import (
    BuildFunction,
    BuildFunctionRegistry,
    BuildStepDefinition,
    FunctionInput,
    StepTemplate,
)
from buildflow.steps.step import BuildStep, ShellBuildStep, StepExecutionError
from buildflow.steps.workflow import (
    BuildWorkflow,
    WorkflowAbortedError,
    WorkflowCancelledError,
    WorkflowStateError,
)

__all__ = [
    "APPLICATION_ARCHIVE",
    "BUILD_ARTIFACT",
    "Artifact",
    "BuildFunction",
    "BuildFunctionRegistry",
    "BuildStep",
    "BuildStepDefinition",
    "BuildStepEnv",
    "BuildWorkflow",
    "ConfigurationError",
    "FunctionInput",
    "ShellBuildStep",
    "StepExecutionError",
    "StepTemplate",
    "UnknownFunctionError",
    "WorkflowAbortedError",
    "WorkflowCancelledError",
    "WorkflowContext",
    "WorkflowStateError",
    "collect_artifacts",
    "merge_env",
]
