"""Build function registry.

A build function is a named, parameterized template of one or more steps.
Functions are expanded into concrete step definitions before a workflow is
constructed; the workflow itself only ever sees concrete steps.

Templates reference inputs as ``${ inputs.NAME }``. Any other ``${...}``
text (shell parameter expansion) is left untouched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from buildflow.steps.errors import ConfigurationError, UnknownFunctionError

logger = logging.getLogger(__name__)

INPUT_REFERENCE_PATTERN = re.compile(r"\$\{\s*inputs\.([A-Za-z_][A-Za-z0-9_\-]*)\s*\}")
# Anything that starts like an input reference, used to detect malformed ones
INPUT_REFERENCE_START = re.compile(r"\$\{\s*inputs\.")


@dataclass(frozen=True)
class FunctionInput:
    """Declared input of a build function."""

    name: str
    required: bool = True
    default: Any = None


@dataclass(frozen=True)
class StepTemplate:
    """Templated step definition inside a build function."""

    id: str
    command: str
    name: str | None = None
    working_directory: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    shell: str | None = None


@dataclass(frozen=True)
class BuildStepDefinition:
    """Concrete, fully resolved step definition."""

    id: str
    command: str
    name: str | None = None
    working_directory: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    shell: str | None = None


@dataclass(frozen=True)
class BuildFunction:
    """Named, parameterized template expanding into concrete steps."""

    id: str
    steps: tuple[StepTemplate, ...]
    name: str | None = None
    inputs: tuple[FunctionInput, ...] = ()

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Build function id must be a non-empty string")
        if not self.steps:
            raise ConfigurationError(f"Build function '{self.id}' has no steps")
        template_ids = [s.id for s in self.steps]
        if len(set(template_ids)) != len(template_ids):
            raise ConfigurationError(
                f"Build function '{self.id}' has duplicate step ids: {template_ids}"
            )
        input_names = [i.name for i in self.inputs]
        if len(set(input_names)) != len(input_names):
            raise ConfigurationError(
                f"Build function '{self.id}' has duplicate inputs: {input_names}"
            )

    def input_names(self) -> set[str]:
        return {i.name for i in self.inputs}


def render_value(value: Any) -> str:
    """Render a parameter value for substitution."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def substitute_inputs(
    template: str,
    values: Mapping[str, str],
    function_id: str,
) -> str:
    """Substitute ``${ inputs.NAME }`` references in a template string.

    Args:
        template: Template text.
        values: Resolved input values.
        function_id: Function id, used in error messages.

    Returns:
        Template with all input references replaced.

    Raises:
        ConfigurationError: If a reference is malformed or names an
            undeclared input.
    """

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            raise ConfigurationError(
                f"Build function '{function_id}' references undeclared input '{name}'"
            )
        return values[name]

    result = INPUT_REFERENCE_PATTERN.sub(replace, template)
    # Valid references are gone; anything left that looks like one is malformed
    leftover = INPUT_REFERENCE_START.search(
        INPUT_REFERENCE_PATTERN.sub("", template)
    )
    if leftover:
        raise ConfigurationError(
            f"Build function '{function_id}' has a malformed input reference "
            f"near: {template[leftover.start():leftover.start() + 40]!r}"
        )
    return result


class BuildFunctionRegistry:
    """Registry of build functions keyed by id."""

    def __init__(self, functions: Iterable[BuildFunction] = ()) -> None:
        self._functions: dict[str, BuildFunction] = {}
        for fn in functions:
            self.register(fn)

    def register(self, fn: BuildFunction) -> None:
        """Register a build function.

        Raises:
            ConfigurationError: If a function with the same id exists.
        """
        if fn.id in self._functions:
            raise ConfigurationError(f"Build function already registered: {fn.id}")
        self._functions[fn.id] = fn
        logger.debug("Registered build function: %s", fn.id)

    def get(self, function_id: str) -> BuildFunction:
        """Look up a build function.

        Raises:
            UnknownFunctionError: If the id is not registered.
        """
        try:
            return self._functions[function_id]
        except KeyError:
            raise UnknownFunctionError(function_id) from None

    def ids(self) -> list[str]:
        return sorted(self._functions)

    def __contains__(self, function_id: object) -> bool:
        return function_id in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def _resolve_inputs(
        self,
        fn: BuildFunction,
        parameters: Mapping[str, Any],
    ) -> dict[str, str]:
        unknown = sorted(set(parameters) - fn.input_names())
        if unknown:
            raise ConfigurationError(
                f"Build function '{fn.id}' got unknown parameters: {unknown}"
            )

        values: dict[str, str] = {}
        for declared in fn.inputs:
            if declared.name in parameters and parameters[declared.name] is not None:
                values[declared.name] = render_value(parameters[declared.name])
            elif declared.default is not None:
                values[declared.name] = render_value(declared.default)
            elif declared.required:
                raise ConfigurationError(
                    f"Build function '{fn.id}' is missing required input '{declared.name}'"
                )
            else:
                values[declared.name] = ""
        return values

    def expand(
        self,
        function_id: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        call_id: str | None = None,
    ) -> list[BuildStepDefinition]:
        """Expand a build function into concrete step definitions.

        Args:
            function_id: Registered function id.
            parameters: Input values for the function.
            call_id: Id of the calling step; prefixes expanded step ids.

        Returns:
            Concrete step definitions in template order.

        Raises:
            UnknownFunctionError: If the id is not registered.
            ConfigurationError: If parameters are missing, unknown or a
                substitution is malformed.
        """
        fn = self.get(function_id)
        values = self._resolve_inputs(fn, parameters or {})
        prefix = call_id or fn.id

        definitions: list[BuildStepDefinition] = []
        for template in fn.steps:
            step_id = prefix if len(fn.steps) == 1 else f"{prefix}.{template.id}"

            def sub(text: str | None) -> str | None:
                if text is None:
                    return None
                return substitute_inputs(text, values, fn.id)

            definitions.append(
                BuildStepDefinition(
                    id=step_id,
                    command=substitute_inputs(template.command, values, fn.id),
                    name=sub(template.name),
                    working_directory=sub(template.working_directory),
                    env={
                        key: substitute_inputs(value, values, fn.id)
                        for key, value in template.env.items()
                    },
                    shell=sub(template.shell),
                )
            )

        logger.debug(
            "Expanded build function %s into %d step(s)", fn.id, len(definitions)
        )
        return definitions


__all__ = [
    "BuildFunction",
    "BuildFunctionRegistry",
    "BuildStepDefinition",
    "FunctionInput",
    "StepTemplate",
    "render_value",
    "substitute_inputs",
]
