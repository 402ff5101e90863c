"""
Shared fixtures for the support chat tests
"""

import pytest

import infrastructure.resilience.retry_service as retry_module
from config.app_config import AppConfig, AuthConfig
from infrastructure.store import MemoryDocumentStore
from tests.helpers import RecordingNotifier, TickingClock


@pytest.fixture(autouse=True)
def fresh_retry_service():
    """Each test gets its own store circuit breaker"""
    retry_module._retry_service = None
    yield
    retry_module._retry_service = None


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    config = AppConfig(auth=AuthConfig(operator_emails=["agent@example.com"]))
    config.logging.enable_file_logging = False
    return config
