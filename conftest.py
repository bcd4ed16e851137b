import logging

import pytest


@pytest.fixture(autouse=True, scope='function')
def capture_masterplate_logs(caplog):
    """Captures everything masterplate logs during a test at DEBUG, so
    that the debug-only branches (composition, optional misses) are
    exercised and available for assertions via ``caplog``.
    """
    caplog.set_level(logging.DEBUG, logger='masterplate')
    yield


@pytest.fixture
def anyio_backend():
    """Async registration only needs anyio's own abstractions, so the
    async tests run against asyncio alone (trio isn't a dependency).
    """
    return 'asyncio'
