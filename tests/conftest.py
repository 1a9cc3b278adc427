import os

import pytest
import structlog

from bulkcall.config import ENV_PREFIX


@pytest.fixture(autouse=True)
def test_clear_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)


@pytest.fixture
def reset_logging():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
