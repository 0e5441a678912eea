"""Environment model for build steps.

Environments are read-only mappings of variable name to string value.
The workflow merges its own environment with each step's overrides and
hands the result to the step unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from buildflow.steps.errors import ConfigurationError

BuildStepEnv = Mapping[str, str]


def freeze_env(env: Mapping[str, str] | None) -> BuildStepEnv:
    """Return a read-only copy of an environment mapping.

    Args:
        env: Mapping of variable names to values, or None for empty.

    Returns:
        Read-only mapping detached from the input.

    Raises:
        ConfigurationError: If a key or value is not a string.
    """
    copied: dict[str, str] = {}
    for key, value in (env or {}).items():
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f"Invalid environment variable name: {key!r}")
        if not isinstance(value, str):
            raise ConfigurationError(
                f"Environment variable {key} must be a string, "
                f"got {type(value).__name__}"
            )
        copied[key] = value
    return MappingProxyType(copied)


def merge_env(
    workflow_env: Mapping[str, str] | None,
    step_env: Mapping[str, str] | None,
) -> BuildStepEnv:
    """Merge workflow-level and step-level environments.

    Step-local entries take precedence over workflow entries with the same
    key. Neither input is modified.

    Args:
        workflow_env: Environment supplied to the workflow (may be None).
        step_env: Step-local overrides (may be None).

    Returns:
        New read-only mapping with the effective environment.
    """
    merged: dict[str, str] = {}
    if workflow_env:
        merged.update(workflow_env)
    if step_env:
        merged.update(step_env)
    return freeze_env(merged)


def parse_env_assignments(assignments: Iterable[str]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` strings into a dictionary.

    Later assignments of the same key win. Values may contain ``=``.

    Raises:
        ConfigurationError: If an assignment has no ``=`` or an empty key.
    """
    env: dict[str, str] = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigurationError(
                f"Invalid environment assignment '{item}', expected KEY=VALUE"
            )
        env[key] = value
    return env


__all__ = ["BuildStepEnv", "freeze_env", "merge_env", "parse_env_assignments"]
