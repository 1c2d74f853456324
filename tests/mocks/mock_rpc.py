"""
Mock RPC Client
===============
Fake Solana RPC client for testing without network calls.

Accounts are stored as raw bytes plus owner and served in the same
shape `getAccountInfo` returns (base64 data). Builders below lay out the
pool, position and token-account bytes the decoders read.
"""

import base64
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from src.liquidity.constants import DAMM_V2_PROGRAM_ID, DLMM_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from src.liquidity.pool_classifier import (
    CP_LIQUIDITY_OFFSET,
    CP_MIN_SIZE,
    CP_POOL_DISCRIMINATOR,
    CP_SQRT_MAX_PRICE_OFFSET,
    CP_SQRT_MIN_PRICE_OFFSET,
    CP_SQRT_PRICE_OFFSET,
    LB_PAIR_DISCRIMINATOR,
    LB_MIN_SIZE,
)
from src.liquidity.positions import (
    BIN_POSITION_DISCRIMINATOR,
    BIN_POSITION_LOWER_OFFSET,
    BIN_POSITION_SHARES_OFFSET,
    CP_POSITION_DISCRIMINATOR,
    CP_POSITION_MIN_SIZE,
    CP_POSITION_UNLOCKED_OFFSET,
)

CONFIRMED = {"confirmationStatus": "confirmed", "err": None, "slot": 1000}


def new_address() -> str:
    return str(Pubkey.new_unique())


def _pk_bytes(value: str) -> bytes:
    return bytes(Pubkey.from_string(value))


# =============================================================================
# ACCOUNT BUILDERS
# =============================================================================


def lb_pair_data(
    token_x: str,
    token_y: str,
    reserve_x: str,
    reserve_y: str,
    active_id: int = 0,
    bin_step: int = 25,
    base_factor: int = 10_000,
    base_fee_power: int = 0,
) -> bytes:
    data = bytearray(LB_MIN_SIZE)
    data[:8] = LB_PAIR_DISCRIMINATOR
    struct.pack_into("<H", data, 8, base_factor)
    data[34] = base_fee_power
    struct.pack_into("<i", data, 76, active_id)
    struct.pack_into("<H", data, 80, bin_step)
    data[88:120] = _pk_bytes(token_x)
    data[120:152] = _pk_bytes(token_y)
    data[152:184] = _pk_bytes(reserve_x)
    data[184:216] = _pk_bytes(reserve_y)
    return bytes(data)


def cp_pool_data(
    token_a: str,
    token_b: str,
    vault_a: str,
    vault_b: str,
    fee_bps: int = 100,
    liquidity: int = 0,
    sqrt_price: int = 1 << 64,
    sqrt_min_price: int = 4295048016,
    sqrt_max_price: int = 79226673521066979257578248091,
) -> bytes:
    data = bytearray(CP_MIN_SIZE)
    data[:8] = CP_POOL_DISCRIMINATOR
    struct.pack_into("<Q", data, 8, fee_bps * 1_000_000_000 // 10_000)
    data[168:200] = _pk_bytes(token_a)
    data[200:232] = _pk_bytes(token_b)
    data[232:264] = _pk_bytes(vault_a)
    data[264:296] = _pk_bytes(vault_b)
    data[CP_LIQUIDITY_OFFSET:CP_LIQUIDITY_OFFSET + 16] = liquidity.to_bytes(16, "little")
    data[CP_SQRT_MIN_PRICE_OFFSET:CP_SQRT_MIN_PRICE_OFFSET + 16] = sqrt_min_price.to_bytes(16, "little")
    data[CP_SQRT_MAX_PRICE_OFFSET:CP_SQRT_MAX_PRICE_OFFSET + 16] = sqrt_max_price.to_bytes(16, "little")
    data[CP_SQRT_PRICE_OFFSET:CP_SQRT_PRICE_OFFSET + 16] = sqrt_price.to_bytes(16, "little")
    return bytes(data)


def token_account_data(mint: str, owner: str, amount: int) -> bytes:
    data = bytearray(165)
    data[0:32] = _pk_bytes(mint)
    data[32:64] = _pk_bytes(owner)
    struct.pack_into("<Q", data, 64, amount)
    return bytes(data)


def bin_position_data(lb_pair: str, owner: str, lower: int, upper: int, shares: Dict[int, int]) -> bytes:
    data = bytearray(BIN_POSITION_LOWER_OFFSET + 8)
    data[:8] = BIN_POSITION_DISCRIMINATOR
    data[8:40] = _pk_bytes(lb_pair)
    data[40:72] = _pk_bytes(owner)
    for bin_id, share in shares.items():
        offset = BIN_POSITION_SHARES_OFFSET + (bin_id - lower) * 16
        data[offset:offset + 16] = share.to_bytes(16, "little")
    struct.pack_into("<ii", data, BIN_POSITION_LOWER_OFFSET, lower, upper)
    return bytes(data)


def cp_position_data(pool: str, nft_mint: str, liquidity: int) -> bytes:
    data = bytearray(CP_POSITION_MIN_SIZE)
    data[:8] = CP_POSITION_DISCRIMINATOR
    data[8:40] = _pk_bytes(pool)
    data[40:72] = _pk_bytes(nft_mint)
    data[CP_POSITION_UNLOCKED_OFFSET:CP_POSITION_UNLOCKED_OFFSET + 16] = liquidity.to_bytes(16, "little")
    return bytes(data)


def token_2022_mint(decimals: int = 9, fee_bps: Optional[int] = None, maximum_fee: int = 10**18) -> Dict:
    """jsonParsed Token-2022 mint, optionally with a transferFeeConfig extension."""
    info: Dict[str, Any] = {"decimals": decimals, "extensions": []}
    if fee_bps is not None:
        schedule = {"transferFeeBasisPoints": fee_bps, "maximumFee": maximum_fee, "epoch": 0}
        info["extensions"].append(
            {"extension": "transferFeeConfig", "state": {"newerTransferFee": schedule, "olderTransferFee": schedule}}
        )
    return {"owner": str(TOKEN_2022_PROGRAM_ID), "data": {"parsed": {"info": info, "type": "mint"}}}


@dataclass
class MockAccountInfo:
    """Mock Solana account info."""
    owner: str
    data: bytes
    lamports: int = 2_039_280


class MockRpcClient:
    """
    Mock Solana RPC client.

    Usage:
        rpc = MockRpcClient()
        rpc.set_account(address, MockAccountInfo(owner, data))
        rpc.set_balance(token_account, [None, 500, 1000])  # successive reads
        rpc.outcomes = [None]  # first submitted tx never confirms
    """

    def __init__(self):
        self._accounts: Dict[str, MockAccountInfo] = {}
        self._parsed: Dict[str, Dict] = {}
        self._balances: Dict[str, List[Optional[int]]] = {}
        self._statuses: Dict[str, Optional[Dict]] = {}
        self._blockhash = str(Hash.new_unique())

        self.sent: List[VersionedTransaction] = []
        self.simulated: List[bytes] = []
        self.balance_reads: List[str] = []
        # Status per submission index; missing entries confirm
        self.outcomes: List[Optional[Dict]] = []
        self.default_status: Optional[Dict] = dict(CONFIRMED)
        self.simulation_result: Dict[str, Any] = {"err": None, "logs": []}
        self.call_count = 0

    # -------------------------------------------------------------------------
    # setup
    # -------------------------------------------------------------------------

    def set_account(self, address: str, info: MockAccountInfo) -> None:
        self._accounts[address] = info

    def remove_account(self, address: str) -> None:
        self._accounts.pop(address, None)

    def set_parsed_account(self, address: str, value: Dict) -> None:
        self._parsed[address] = value

    def set_balance(self, account: Union[str, Pubkey], values: Union[int, None, List[Optional[int]]]) -> None:
        self._balances[str(account)] = list(values) if isinstance(values, list) else [values]

    def add_dlmm_pool(
        self, token_x: str, token_y: str, reserve_x: int, reserve_y: int, active_id: int = 0, bin_step: int = 25
    ) -> str:
        address, vault_x, vault_y = new_address(), new_address(), new_address()
        self.set_account(address, MockAccountInfo(str(DLMM_PROGRAM_ID), lb_pair_data(
            token_x, token_y, vault_x, vault_y, active_id=active_id, bin_step=bin_step
        )))
        self.set_account(vault_x, MockAccountInfo(str(TOKEN_PROGRAM_ID), token_account_data(token_x, address, reserve_x)))
        self.set_account(vault_y, MockAccountInfo(str(TOKEN_PROGRAM_ID), token_account_data(token_y, address, reserve_y)))
        return address

    def add_cp_pool(self, token_a: str, token_b: str, reserve_a: int, reserve_b: int, **fields) -> str:
        address, vault_a, vault_b = new_address(), new_address(), new_address()
        self.set_account(address, MockAccountInfo(str(DAMM_V2_PROGRAM_ID), cp_pool_data(
            token_a, token_b, vault_a, vault_b, **fields
        )))
        self.set_account(vault_a, MockAccountInfo(str(TOKEN_PROGRAM_ID), token_account_data(token_a, address, reserve_a)))
        self.set_account(vault_b, MockAccountInfo(str(TOKEN_PROGRAM_ID), token_account_data(token_b, address, reserve_b)))
        return address

    def set_vault_amount(self, vault: str, mint: str, amount: int) -> None:
        info = self._accounts[vault]
        owner = str(Pubkey.from_bytes(info.data[32:64]))
        self.set_account(vault, MockAccountInfo(info.owner, token_account_data(mint, owner, amount)))

    # -------------------------------------------------------------------------
    # RpcClient protocol
    # -------------------------------------------------------------------------

    async def get_account_info(self, address: str, encoding: str = "base64") -> Optional[Dict[str, Any]]:
        self.call_count += 1
        if encoding == "jsonParsed":
            return self._parsed.get(address)

        info = self._accounts.get(address)
        if info is None:
            return None
        return {
            "lamports": info.lamports,
            "data": [base64.b64encode(info.data).decode(), "base64"],
            "owner": info.owner,
            "executable": False,
        }

    async def get_token_account_balance(self, address: str) -> Optional[int]:
        self.call_count += 1
        self.balance_reads.append(address)
        values = self._balances.get(address)
        if not values:
            return None
        return values.pop(0) if len(values) > 1 else values[0]

    async def get_latest_blockhash(self) -> str:
        self.call_count += 1
        return self._blockhash

    async def send_raw_transaction(self, tx_bytes: bytes) -> str:
        self.call_count += 1
        tx = VersionedTransaction.from_bytes(tx_bytes)
        index = len(self.sent)
        self.sent.append(tx)
        signature = str(tx.signatures[0])
        self._statuses[signature] = self.outcomes[index] if index < len(self.outcomes) else self.default_status
        return signature

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        self.call_count += 1
        return self._statuses.get(signature, self.default_status)

    async def simulate_transaction(self, tx_bytes: bytes) -> Dict[str, Any]:
        self.call_count += 1
        self.simulated.append(tx_bytes)
        return self.simulation_result
