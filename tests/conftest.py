import pytest


@pytest.fixture
def anyio_backend():
    # The engine is built on asyncio subprocesses; run async tests on asyncio only.
    return "asyncio"
