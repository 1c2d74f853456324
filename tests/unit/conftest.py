"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO I/O ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- Database (SQLite, except under tmp_path)
- File system (except tmp_path)
"""

from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair

from src.shared.infrastructure.signer import KeypairSigner
from tests.mocks import MockBundleRelay, MockPriceSource, MockRpcClient


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable all network I/O for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must be pure logic with no external dependencies. "
            "Use integration tests for network-dependent code."
        )

    monkeypatch.setattr("httpx.AsyncClient.get", block_network)
    monkeypatch.setattr("httpx.AsyncClient.post", block_network)


# ============================================================================
# COLLABORATOR FAKES
# ============================================================================


@pytest.fixture
def rpc():
    return MockRpcClient()


@pytest.fixture
def signer():
    return KeypairSigner(Keypair())


@pytest.fixture
def relay():
    return MockBundleRelay()


@pytest.fixture
def prices():
    return MockPriceSource()


@pytest.fixture
def no_sleep():
    """Drop-in for asyncio.sleep that records delays without waiting."""
    return AsyncMock(return_value=None)
