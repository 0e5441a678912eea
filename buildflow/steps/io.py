"""Workflow file loading and workflow construction.

This module provides helpers for loading workflow definitions from YAML/JSON
files, registering their build functions, expanding function calls into
concrete step definitions, and constructing a ready-to-run workflow.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from buildflow.steps.context import WorkflowContext
from buildflow.steps.functions import (
    BuildFunction,
    BuildFunctionRegistry,
    BuildStepDefinition,
    FunctionInput,
    StepTemplate,
)
from buildflow.steps.schema import FunctionSchema, WorkflowFileSchema
from buildflow.steps.workflow import BuildWorkflow, create_build_steps

logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the content is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the content is not an object.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_workflow_data(data: dict[str, Any]) -> WorkflowFileSchema:
    """Validate workflow data using the schema.

    Raises:
        pydantic.ValidationError: If data does not match schema.
    """
    return WorkflowFileSchema.model_validate(data)


def load_workflow_file(path: Path) -> WorkflowFileSchema:
    """Load and validate a workflow file (YAML or JSON).

    File format is determined by extension (.yaml, .yml for YAML,
    .json for JSON).

    Args:
        path: Path to the workflow file.

    Returns:
        Validated WorkflowFileSchema instance.

    Raises:
        ValueError: If file extension is not supported.
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If data does not match schema.
    """
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = load_yaml(path)
    elif suffix == ".json":
        data = load_json(path)
    else:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json"
        )
    return parse_workflow_data(data)


def function_from_schema(function_id: str, schema: FunctionSchema) -> BuildFunction:
    """Convert a validated function definition to a BuildFunction."""
    return BuildFunction(
        id=function_id,
        name=schema.name,
        inputs=tuple(
            FunctionInput(name=i.name, required=i.required, default=i.default)
            for i in schema.inputs
        ),
        steps=tuple(
            StepTemplate(
                id=s.id,
                command=s.run,
                name=s.name,
                working_directory=s.working_directory,
                env=dict(s.env),
                shell=s.shell,
            )
            for s in schema.steps
        ),
    )


def registry_from_schema(
    schema: WorkflowFileSchema,
    registry: BuildFunctionRegistry | None = None,
) -> BuildFunctionRegistry:
    """Register the functions declared in a workflow file.

    Args:
        schema: Validated workflow file.
        registry: Existing registry to extend (a new one if not provided).

    Returns:
        Registry containing the file's functions.

    Raises:
        ConfigurationError: If a function id is already registered.
    """
    if registry is None:
        registry = BuildFunctionRegistry()
    for function_id, fn_schema in schema.functions.items():
        registry.register(function_from_schema(function_id, fn_schema))
    return registry


def expand_step_definitions(
    schema: WorkflowFileSchema,
    registry: BuildFunctionRegistry,
) -> list[BuildStepDefinition]:
    """Expand workflow step entries into concrete step definitions.

    Steps without an id get ``step-<n>`` (1-based position in the file).

    Raises:
        UnknownFunctionError: If a step uses an unregistered function.
        ConfigurationError: If function parameters are invalid.
    """
    definitions: list[BuildStepDefinition] = []
    for position, entry in enumerate(schema.steps, start=1):
        step_id = entry.id or f"step-{position}"
        if entry.uses is not None:
            expanded = registry.expand(entry.uses, entry.with_, call_id=step_id)
            if entry.name and len(expanded) == 1:
                expanded = [replace(expanded[0], name=entry.name)]
            definitions.extend(expanded)
        else:
            definitions.append(
                BuildStepDefinition(
                    id=step_id,
                    command=entry.run or "",
                    name=entry.name,
                    working_directory=entry.working_directory,
                    env=dict(entry.env),
                    shell=entry.shell,
                )
            )
    return definitions


def create_workflow(
    ctx: WorkflowContext,
    schema: WorkflowFileSchema,
    registry: BuildFunctionRegistry | None = None,
) -> BuildWorkflow:
    """Construct a workflow from a validated workflow file.

    Build functions are expanded before the workflow is constructed, so
    expansion errors prevent construction entirely. The file's ``env`` is
    not bound to the workflow; callers pass it to ``execute``.

    Args:
        ctx: Workflow context owning the working directory.
        schema: Validated workflow file.
        registry: Optional registry with additional functions.

    Returns:
        BuildWorkflow ready to execute.

    Raises:
        UnknownFunctionError: If a step uses an unregistered function.
        ConfigurationError: If functions, parameters or steps are invalid.
    """
    registry = registry_from_schema(schema, registry)
    definitions = expand_step_definitions(schema, registry)
    logger.info(
        "Constructed workflow with %d step(s) from %d function(s)",
        len(definitions),
        len(registry),
    )
    return BuildWorkflow(ctx, create_build_steps(ctx, definitions))


__all__ = [
    "create_workflow",
    "expand_step_definitions",
    "function_from_schema",
    "load_json",
    "load_workflow_file",
    "load_yaml",
    "parse_workflow_data",
    "registry_from_schema",
]
