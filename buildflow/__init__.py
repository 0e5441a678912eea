"""buildflow - Sequential build workflow execution engine.

This package runs an ordered list of build steps against a shared
environment and working directory, and aggregates the artifacts those
steps upload, grouped by artifact type.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
