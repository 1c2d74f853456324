"""
Rift Liquidity Test Configuration
=================================
Shared fixtures and pytest markers for the test suite.
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: pure logic tests with no network or disk access"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def mint_pair():
    """Two distinct mints as (lower, higher) in canonical address order."""
    from tests.mocks import new_address

    a, b = new_address(), new_address()
    return (a, b) if a < b else (b, a)


@pytest.fixture
def wsol_mint():
    return "So11111111111111111111111111111111111111112"
