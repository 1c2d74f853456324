"""
Collaborator Protocols
======================
Structural interfaces for everything the orchestrator talks to. Concrete
adapters live in src/shared/infrastructure; tests pass fakes.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction


@runtime_checkable
class RpcClient(Protocol):
    """Subset of Solana JSON-RPC used by the orchestrator. Results are raw `value` payloads."""

    async def get_account_info(self, address: str, encoding: str = "base64") -> Optional[Dict[str, Any]]:
        ...

    async def get_token_account_balance(self, address: str) -> Optional[int]:
        """Raw token amount, or None when the account does not exist."""
        ...

    async def get_latest_blockhash(self) -> str:
        ...

    async def send_raw_transaction(self, tx_bytes: bytes) -> str:
        ...

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        ...

    async def simulate_transaction(self, tx_bytes: bytes) -> Dict[str, Any]:
        ...


@runtime_checkable
class Signer(Protocol):
    @property
    def pubkey(self) -> Pubkey:
        ...

    def sign_transaction(self, message: MessageV0, extra_signers: List[Keypair]) -> VersionedTransaction:
        ...


@runtime_checkable
class PriceSource(Protocol):
    async def get_price(self, mint: str) -> Optional[float]:
        """USD price, or None when unknown."""
        ...


@runtime_checkable
class BundleRelay(Protocol):
    async def is_available(self) -> bool:
        ...

    async def get_random_tip_account(self) -> Optional[str]:
        ...

    async def submit_bundle(self, serialized_transactions: List[str]) -> Optional[str]:
        ...

    async def wait_for_landing(self, bundle_id: str, timeout: float = 30.0) -> bool:
        ...


@runtime_checkable
class CacheStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def put(self, key: str, value: Any) -> None:
        ...
