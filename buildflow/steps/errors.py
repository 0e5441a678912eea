"""Construction-time error definitions shared across the engine.

Execution-time errors live next to the code that raises them
(``StepExecutionError`` in ``steps.step``, ``WorkflowAbortedError`` in
``steps.workflow``). The errors here are raised before any step runs.
"""

CONFIGURATION_ERROR = "configuration_error"
UNKNOWN_FUNCTION = "unknown_function"


class ConfigurationError(Exception):
    """Raised when step, function or workflow configuration is malformed."""

    def __init__(self, message: str, code: str = CONFIGURATION_ERROR) -> None:
        super().__init__(message)
        self.code = code


class UnknownFunctionError(ConfigurationError):
    """Raised when a build function id is not registered."""

    def __init__(self, function_id: str) -> None:
        super().__init__(f"Unknown build function: {function_id}", code=UNKNOWN_FUNCTION)
        self.function_id = function_id


__all__ = [
    "CONFIGURATION_ERROR",
    "UNKNOWN_FUNCTION",
    "ConfigurationError",
    "UnknownFunctionError",
]
