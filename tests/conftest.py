"""
Pytest configuration and fixtures for the test suite.

Defines markers for selective test execution:
    pytest -m unit          # Fast unit tests
    pytest -m integration   # Workflow tests against the in-memory Power BI fake
    pytest -m slow          # Tests that take >1s
    pytest -m resilience    # Rate limiting, polling budgets, cancellation
"""

import os
import sys
import time
from unittest.mock import Mock, patch

import pytest

# Add src and tests to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.dirname(__file__))

from pbi_provisioner.auth import TokenManager
from pbi_provisioner.config import ClientSettings


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Workflow tests against the in-memory Power BI fake")
    config.addinivalue_line("markers", "slow: Tests that take more than 1 second")
    config.addinivalue_line("markers", "resilience: Rate limiting, polling budgets, cancellation tests")


class RecordingSleep:
    """Sleep replacement that records requested durations instead of waiting."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def mock_credential():
    """Mock azure-identity credential that returns a token valid for one hour."""
    mock_token = Mock()
    mock_token.token = "mock-access-token-12345"
    mock_token.expires_on = time.time() + 3600

    mock_cred = Mock()
    mock_cred.get_token.return_value = mock_token
    return mock_cred


@pytest.fixture
def client_settings():
    return ClientSettings(
        tenant_id="72f988bf-86f1-41af-91ab-2d7cd011db47",
        client_id="11111111-2222-3333-4444-555555555555",
        client_secret="test-secret",
        group_prefix="DEV-",
    )


@pytest.fixture
def patched_credential(mock_credential):
    """Route every TokenManager credential lookup to the mock credential."""
    with patch.object(TokenManager, '_get_credential', return_value=mock_credential):
        yield mock_credential
