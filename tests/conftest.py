"""Pytest configuration and fixtures."""

import os

import pytest

from analysis_engine.core.config import Settings
from analysis_engine.core.schemas_analysis import Document
from tests.fakes.fake_completion_client import FakeCompletionClient
from tests.fixtures_documents import make_sample_document


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["ANALYSIS_ENGINE_ENV"] = "test"


@pytest.fixture
def settings() -> Settings:
    """Settings with no retry delay so fatal-path tests stay fast."""
    return Settings(
        ANTHROPIC_API_KEY="test-anthropic-key",
        ANALYSIS_ENGINE_ENV="test",
        TLDR_RETRY_INITIAL_DELAY=0.0,
    )


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def sample_document() -> Document:
    return make_sample_document()
