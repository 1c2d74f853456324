"""
Rift Liquidity Test Mocks
=========================
Reusable mock classes for isolated testing.
"""

from tests.mocks.mock_feeds import MockPriceSource
from tests.mocks.mock_relay import MockBundleRelay
from tests.mocks.mock_rpc import MockAccountInfo, MockRpcClient, new_address

__all__ = [
    "MockAccountInfo",
    "MockBundleRelay",
    "MockPriceSource",
    "MockRpcClient",
    "new_address",
]
