"""Entry point for ``python -m buildflow``."""

from buildflow.cli import app

if __name__ == "__main__":
    app()
