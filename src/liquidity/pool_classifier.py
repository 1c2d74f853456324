"""
Pool Classifier
===============
Maps a pool address to its family (by owning program) and decodes the
token ordering exactly as stored on-chain.

Reserves are read from the pool's vault token accounts on every call; nothing
here is cached across quotes.
"""

import base64
import struct
from typing import Dict, Optional, Tuple

from solders.pubkey import Pubkey

from src.liquidity.constants import (
    BPS_DENOMINATOR,
    DAMM_V2_PROGRAM_ID,
    DLMM_PROGRAM_ID,
)
from src.liquidity.errors import ClassificationError
from src.liquidity.interfaces import RpcClient
from src.liquidity.types import BinPool, ConstantProductPool, Pool, PoolFamily
from src.shared.system.logging import Logger

KNOWN_OWNERS = {
    str(DLMM_PROGRAM_ID): PoolFamily.BIN_BASED,
    str(DAMM_V2_PROGRAM_ID): PoolFamily.CONSTANT_PRODUCT,
}

# DLMM LbPair layout (after 8-byte Anchor discriminator)
LB_PAIR_DISCRIMINATOR = bytes([0x21, 0x0B, 0x31, 0x62, 0xB5, 0x65, 0xB1, 0x0D])
LB_BASE_FACTOR_OFFSET = 8
LB_BASE_FEE_POWER_OFFSET = 34
LB_ACTIVE_ID_OFFSET = 76
LB_BIN_STEP_OFFSET = 80
LB_TOKEN_X_OFFSET = 88
LB_TOKEN_Y_OFFSET = 120
LB_RESERVE_X_OFFSET = 152
LB_RESERVE_Y_OFFSET = 184
LB_MIN_SIZE = 216

# DAMM v2 Pool layout: discriminator + 160-byte PoolFeesStruct, then mints/vaults
CP_POOL_DISCRIMINATOR = bytes([0xF1, 0x9A, 0x6D, 0x04, 0x11, 0xB1, 0x6D, 0xBC])
CP_CLIFF_FEE_OFFSET = 8
CP_TOKEN_A_OFFSET = 168
CP_TOKEN_B_OFFSET = 200
CP_VAULT_A_OFFSET = 232
CP_VAULT_B_OFFSET = 264
CP_LIQUIDITY_OFFSET = 360
CP_SQRT_MIN_PRICE_OFFSET = 424
CP_SQRT_MAX_PRICE_OFFSET = 440
CP_SQRT_PRICE_OFFSET = 456
CP_MIN_SIZE = 472
CP_FEE_DENOMINATOR = 1_000_000_000

# SPL token account: amount u64 at 64
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64


def _pubkey_at(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(data[offset:offset + 32]))


def _u128_at(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 16], "little")


def decode_account_data(account: Dict) -> bytes:
    """Extract raw bytes from a base64 getAccountInfo value."""
    data = account.get("data")
    if isinstance(data, list) and data:
        return base64.b64decode(data[0])
    if isinstance(data, str):
        return base64.b64decode(data)
    raise ValueError("Account data is not base64 encoded")


def decode_lb_pair(data: bytes) -> Dict:
    if len(data) < LB_MIN_SIZE:
        raise ValueError(f"LbPair data too short ({len(data)} bytes)")
    if data[:8] != LB_PAIR_DISCRIMINATOR:
        raise ValueError("Account is not an LbPair")

    base_factor = struct.unpack_from("<H", data, LB_BASE_FACTOR_OFFSET)[0]
    power = data[LB_BASE_FEE_POWER_OFFSET]
    bin_step = struct.unpack_from("<H", data, LB_BIN_STEP_OFFSET)[0]
    return {
        "active_bin_id": struct.unpack_from("<i", data, LB_ACTIVE_ID_OFFSET)[0],
        "bin_step": bin_step,
        # base fee rate = base_factor * bin_step * 10 * 10^power (1e9 precision)
        "fee_bps": base_factor * bin_step * (10 ** power) // BPS_DENOMINATOR,
        "token_a_mint": _pubkey_at(data, LB_TOKEN_X_OFFSET),
        "token_b_mint": _pubkey_at(data, LB_TOKEN_Y_OFFSET),
        "vault_a": _pubkey_at(data, LB_RESERVE_X_OFFSET),
        "vault_b": _pubkey_at(data, LB_RESERVE_Y_OFFSET),
    }


def decode_cp_pool(data: bytes) -> Dict:
    if len(data) < CP_MIN_SIZE:
        raise ValueError(f"CP pool data too short ({len(data)} bytes)")
    if data[:8] != CP_POOL_DISCRIMINATOR:
        raise ValueError("Account is not a constant-product Pool")

    cliff_fee_numerator = struct.unpack_from("<Q", data, CP_CLIFF_FEE_OFFSET)[0]
    return {
        "fee_bps": cliff_fee_numerator * BPS_DENOMINATOR // CP_FEE_DENOMINATOR,
        "token_a_mint": _pubkey_at(data, CP_TOKEN_A_OFFSET),
        "token_b_mint": _pubkey_at(data, CP_TOKEN_B_OFFSET),
        "vault_a": _pubkey_at(data, CP_VAULT_A_OFFSET),
        "vault_b": _pubkey_at(data, CP_VAULT_B_OFFSET),
        "liquidity": _u128_at(data, CP_LIQUIDITY_OFFSET),
        "sqrt_min_price": _u128_at(data, CP_SQRT_MIN_PRICE_OFFSET),
        "sqrt_max_price": _u128_at(data, CP_SQRT_MAX_PRICE_OFFSET),
        "sqrt_price": _u128_at(data, CP_SQRT_PRICE_OFFSET),
    }


class PoolClassifier:
    """
    classify(pool_address) -> BinPool | ConstantProductPool

    Unknown owners raise ClassificationError. Storage order is returned as-is;
    callers map semantic roles to slots with types.slot_for_mint.
    """

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    async def classify(self, pool_address: str) -> Pool:
        account = await self.rpc.get_account_info(pool_address)
        if account is None:
            raise ClassificationError(pool_address, reason="account not found")

        owner = account.get("owner")
        family = KNOWN_OWNERS.get(owner)
        if family is None:
            raise ClassificationError(pool_address, owner=owner)

        data = decode_account_data(account)
        try:
            fields = decode_lb_pair(data) if family is PoolFamily.BIN_BASED else decode_cp_pool(data)
        except ValueError as e:
            raise ClassificationError(pool_address, owner=owner, reason=str(e)) from e

        (reserve_a, program_a), (reserve_b, program_b) = await self._read_vaults(
            fields["vault_a"], fields["vault_b"]
        )

        if family is PoolFamily.BIN_BASED:
            pool = BinPool(
                address=pool_address,
                token_a_mint=fields["token_a_mint"],
                token_b_mint=fields["token_b_mint"],
                reserve_a=reserve_a,
                reserve_b=reserve_b,
                fee_bps=fields["fee_bps"],
                bin_step=fields["bin_step"],
                active_bin_id=fields["active_bin_id"],
                vault_a=fields["vault_a"],
                vault_b=fields["vault_b"],
                token_a_program=program_a,
                token_b_program=program_b,
            )
        else:
            pool = ConstantProductPool(
                address=pool_address,
                token_a_mint=fields["token_a_mint"],
                token_b_mint=fields["token_b_mint"],
                reserve_a=reserve_a,
                reserve_b=reserve_b,
                fee_bps=fields["fee_bps"],
                vault_a=fields["vault_a"],
                vault_b=fields["vault_b"],
                token_a_program=program_a,
                token_b_program=program_b,
                liquidity=fields["liquidity"],
                sqrt_price=fields["sqrt_price"],
                sqrt_min_price=fields["sqrt_min_price"],
                sqrt_max_price=fields["sqrt_max_price"],
            )

        Logger.debug(
            f"[POOL] {pool_address[:8]} {family.value} "
            f"A={pool.token_a_mint[:6]}({reserve_a}) B={pool.token_b_mint[:6]}({reserve_b})"
        )
        return pool

    async def _read_vaults(self, vault_a: str, vault_b: str) -> Tuple[Tuple[int, str], Tuple[int, str]]:
        return await self._read_vault(vault_a), await self._read_vault(vault_b)

    async def _read_vault(self, vault: str) -> Tuple[int, str]:
        """(amount, owning token program) for a vault token account; missing vault reads as empty."""
        account = await self.rpc.get_account_info(vault)
        if account is None:
            return 0, ""
        data = decode_account_data(account)
        amount = struct.unpack_from("<Q", data, TOKEN_ACCOUNT_AMOUNT_OFFSET)[0]
        return amount, account.get("owner", "")

    async def family_of(self, pool_address: str) -> Optional[PoolFamily]:
        """Owner-only lookup; does not decode or read reserves."""
        account = await self.rpc.get_account_info(pool_address)
        if account is None:
            return None
        return KNOWN_OWNERS.get(account.get("owner"))
