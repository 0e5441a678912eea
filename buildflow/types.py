"""Shared type definitions for buildflow.

This module contains enums shared across subpackages to avoid
circular imports.
"""

from enum import Enum


class StepStatus(str, Enum):
    """Status of a single build step."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowStatus(str, Enum):
    """Status of a build workflow."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


__all__ = ["StepStatus", "WorkflowStatus"]
