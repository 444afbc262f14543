"""Root conftest: test environment variables and structlog routing for every test package."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Handlers are left to pytest so caplog captures relay events.
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Keep connection_id/room_id bindings from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
