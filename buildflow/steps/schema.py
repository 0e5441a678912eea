"""Pydantic models for workflow file validation.

This module defines the models used to validate workflow definitions
loaded from YAML/JSON files before build functions are expanded and the
workflow is constructed.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ID_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")


def _validate_id(v: str | None) -> str | None:
    if v is None:
        return v
    if not ID_PATTERN.match(v):
        raise ValueError(
            f"id must contain only alphanumerics, underscores, dots, and hyphens, got '{v}'"
        )
    return v


class FunctionInputSchema(BaseModel):
    """Schema for a build function input.

    Attributes:
        name: Input name referenced as ``${ inputs.NAME }``.
        required: Whether a value must be supplied (ignored with a default).
        default: Optional default value.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, description="Input name")
    required: bool = Field(default=True)
    default: str | int | float | bool | None = Field(default=None)


class FunctionStepSchema(BaseModel):
    """Schema for a templated step inside a build function."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Step id, unique within the function")
    name: str | None = Field(default=None)
    run: str = Field(description="Templated command text")
    working_directory: str | None = Field(default=None)
    env: dict[str, str] = Field(default_factory=dict)
    shell: str | None = Field(default=None)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate id characters."""
        return _validate_id(v)  # type: ignore[return-value]


class FunctionSchema(BaseModel):
    """Schema for a build function definition."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, description="Human-readable name")
    inputs: list[FunctionInputSchema] = Field(default_factory=list)
    steps: list[FunctionStepSchema] = Field(min_length=1)


class StepSchema(BaseModel):
    """Schema for a workflow step entry.

    A step either runs command text (``run``) or calls a build function
    (``uses`` with optional ``with`` parameters).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str | None = Field(default=None, description="Step id (generated if omitted)")
    name: str | None = Field(default=None)
    run: str | None = Field(default=None, description="Command text")
    uses: str | None = Field(default=None, description="Build function id")
    with_: dict[str, Any] = Field(default_factory=dict, alias="with")
    working_directory: str | None = Field(default=None)
    env: dict[str, str] = Field(default_factory=dict)
    shell: str | None = Field(default=None)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str | None) -> str | None:
        """Validate id characters."""
        return _validate_id(v)

    @model_validator(mode="after")
    def validate_kind(self) -> "StepSchema":
        """Validate that exactly one of run/uses is set."""
        if (self.run is None) == (self.uses is None):
            raise ValueError("step must define exactly one of 'run' or 'uses'")
        if self.uses is not None:
            extra = [
                f
                for f in ("working_directory", "shell")
                if getattr(self, f) is not None
            ]
            if self.env:
                extra.append("env")
            if extra:
                raise ValueError(
                    f"function call step '{self.id or self.uses}' cannot set {extra}"
                )
        elif self.with_:
            raise ValueError("'with' is only valid together with 'uses'")
        return self


class WorkflowFileSchema(BaseModel):
    """Complete workflow file schema."""

    model_config = ConfigDict(extra="forbid")

    env: dict[str, str] = Field(default_factory=dict, description="Workflow env")
    functions: dict[str, FunctionSchema] = Field(default_factory=dict)
    steps: list[StepSchema] = Field(default_factory=list)

    @field_validator("functions")
    @classmethod
    def validate_function_ids(
        cls, v: dict[str, FunctionSchema]
    ) -> dict[str, FunctionSchema]:
        """Validate function id characters."""
        for function_id in v:
            _validate_id(function_id)
        return v


__all__ = [
    "FunctionInputSchema",
    "FunctionSchema",
    "FunctionStepSchema",
    "StepSchema",
    "WorkflowFileSchema",
]
