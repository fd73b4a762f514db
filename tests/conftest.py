"""
Pytest configuration and fixtures for the test suite.
"""
import os
import sys

import pytest

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from relay_core import CredentialPool, RetryOrchestrator, UpstreamClient

from tests.fixtures.upstream_mocks import ALLOWED_MODELS, TEST_API_URL, ScriptedUpstream


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


@pytest.fixture
def sample_messages():
    """Sample messages for chat tests."""
    return [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "Hello, how are you?"}
    ]


@pytest.fixture
def make_orchestrator():
    """
    Build an orchestrator wired to a scripted upstream.

    Returns (orchestrator, pool) and records attempt outcomes on
    orchestrator.recorded_outcomes.
    """
    def _make(credentials, upstream: ScriptedUpstream, attempt_timeout=5.0, mode="shared"):
        client = upstream.client()
        pool = CredentialPool(credentials, mode=mode)
        outcomes = []
        orchestrator = RetryOrchestrator(
            pool,
            UpstreamClient(client, api_url=TEST_API_URL, attempt_timeout=attempt_timeout),
            ALLOWED_MODELS,
            on_attempt=outcomes.append,
        )
        orchestrator.recorded_outcomes = outcomes
        return orchestrator, pool

    return _make
