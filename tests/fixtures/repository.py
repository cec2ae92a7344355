import pytest

from accessfrost.config import Settings
from accessfrost.feedback import ListFeedbackHandler
from accessfrost.run_context import RunContext
from accessfrost_test_utils.in_memory_repository import InMemoryRepository


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def context(repository, settings):
    return RunContext(repository, settings)


@pytest.fixture
def feedback_handler():
    return ListFeedbackHandler()
