"""Workflow context: working directory lifecycle.

The context owns a base working directory shared by every step of one
workflow. The directory is created before the first step runs and removed
recursively once the workflow is done, whichever way it ends.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from buildflow.config import Settings, get_settings

logger = logging.getLogger(__name__)


class WorkflowContext:
    """Working directory state shared by the steps of one workflow.

    Attributes:
        base_working_directory: Absolute base directory for the workflow.
        logs_directory: Optional directory for per-step command logs. It
            is not removed on teardown.
        settings: Settings used for step defaults.
    """

    def __init__(
        self,
        base_working_directory: Path | str,
        *,
        logs_directory: Path | str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.base_working_directory = Path(base_working_directory).expanduser().absolute()
        self.logs_directory = (
            Path(logs_directory).expanduser().absolute() if logs_directory else None
        )
        self.settings = settings if settings is not None else get_settings()
        self._torn_down = False

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        workflow_id: str | None = None,
    ) -> WorkflowContext:
        """Create a context rooted under the configured work directory.

        Args:
            settings: Settings instance; uses default if not provided.
            workflow_id: Name of the base directory (random if not provided).

        Returns:
            New WorkflowContext.
        """
        if settings is None:
            settings = get_settings()
        workflow_id = workflow_id or uuid.uuid4().hex
        return cls(
            settings.work_dir / workflow_id,
            logs_directory=settings.logs_dir,
            settings=settings,
        )

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def ensure_base_directory(self) -> Path:
        """Create the base working directory if it is absent."""
        self.base_working_directory.mkdir(parents=True, exist_ok=True)
        if self.logs_directory is not None:
            self.logs_directory.mkdir(parents=True, exist_ok=True)
        logger.debug("Base working directory ready: %s", self.base_working_directory)
        return self.base_working_directory

    def resolve_step_directory(self, step: Any) -> Path:
        """Return the working directory a step runs in.

        A step without a declared working directory runs in the base
        directory. Relative declarations are resolved against it.
        """
        declared = getattr(step, "working_directory", None)
        if not declared:
            return self.base_working_directory
        path = Path(declared).expanduser()
        if not path.is_absolute():
            path = self.base_working_directory / path
        return path

    def step_log_path(self, step_id: str) -> Path | None:
        """Return the log file for a step, or None if logging to files is off."""
        if self.logs_directory is None:
            return None
        safe_id = step_id.replace("/", "_")
        return self.logs_directory / f"{safe_id}.log"

    def teardown(self) -> None:
        """Remove the base working directory tree.

        Only the first call removes anything.
        """
        if self._torn_down:
            logger.debug("Context already torn down: %s", self.base_working_directory)
            return
        self._torn_down = True
        if self.base_working_directory.exists():
            shutil.rmtree(self.base_working_directory)
            logger.debug("Removed base working directory: %s", self.base_working_directory)

    @contextmanager
    def acquire(self) -> Iterator[Path]:
        """Hold the base working directory for the duration of a block.

        Yields:
            The base working directory.
        """
        try:
            yield self.ensure_base_directory()
        finally:
            self.teardown()


__all__ = ["WorkflowContext"]
