"""
Shared fixtures for agent tests.
"""

import pytest

from fakes import InMemoryStore


@pytest.fixture
def store():
    """Empty in-memory conversation store."""
    return InMemoryStore()
