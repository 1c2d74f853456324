"""
Position Decoding
=================
Reads liquidity positions of both pool families into BinPosition /
SinglePosition values for the withdrawal planner.

DLMM PositionV2 layout:
- discriminator: 8 bytes at 0
- lb_pair: Pubkey at 8
- owner: Pubkey at 40
- liquidity_shares: [u128; 70] at 72 (index 0 = lower_bin_id)
- lower_bin_id: i32 at 7912
- upper_bin_id: i32 at 7916

DAMM v2 Position layout:
- discriminator: 8 bytes at 0
- pool: Pubkey at 8
- nft_mint: Pubkey at 40
- unlocked_liquidity: u128 at 152
"""

import struct
from typing import Optional

from solders.pubkey import Pubkey

from src.liquidity.constants import DAMM_V2_PROGRAM_ID, DLMM_PROGRAM_ID
from src.liquidity.errors import ClassificationError
from src.liquidity.interfaces import RpcClient
from src.liquidity.pool_classifier import decode_account_data
from src.liquidity.types import BinPosition, Position, SinglePosition

BIN_POSITION_DISCRIMINATOR = bytes([0x75, 0xB0, 0xD4, 0xC7, 0xF5, 0xB4, 0x85, 0xB6])
BIN_POSITION_MAX_WIDTH = 70
BIN_POSITION_SHARES_OFFSET = 72
BIN_POSITION_LOWER_OFFSET = 7912
BIN_POSITION_UPPER_OFFSET = 7916

CP_POSITION_DISCRIMINATOR = bytes([0xAA, 0xBC, 0x8F, 0xE4, 0x7A, 0x40, 0xF7, 0xD0])
CP_POSITION_UNLOCKED_OFFSET = 152
CP_POSITION_MIN_SIZE = 168


def _read_u128(data: bytes, offset: int) -> int:
    low, high = struct.unpack_from("<QQ", data, offset)
    return (high << 64) | low


def decode_bin_position(address: str, data: bytes) -> BinPosition:
    if len(data) < BIN_POSITION_UPPER_OFFSET + 4 or data[:8] != BIN_POSITION_DISCRIMINATOR:
        raise ValueError(f"{address} is not a bin position account")

    lower = struct.unpack_from("<i", data, BIN_POSITION_LOWER_OFFSET)[0]
    upper = struct.unpack_from("<i", data, BIN_POSITION_UPPER_OFFSET)[0]
    width = upper - lower + 1
    if width < 1 or width > BIN_POSITION_MAX_WIDTH:
        raise ValueError(f"{address} has invalid bin range {lower}..{upper}")

    shares = {}
    for i in range(width):
        share = _read_u128(data, BIN_POSITION_SHARES_OFFSET + i * 16)
        if share:
            shares[lower + i] = share

    return BinPosition(
        address=address,
        pool_address=str(Pubkey.from_bytes(data[8:40])),
        owner=str(Pubkey.from_bytes(data[40:72])),
        lower_bin_id=lower,
        upper_bin_id=upper,
        bin_liquidity=shares,
    )


def decode_single_position(address: str, data: bytes, owner: str = "") -> SinglePosition:
    """Constant-product positions are NFT-owned; pass the NFT holder as owner."""
    if len(data) < CP_POSITION_MIN_SIZE or data[:8] != CP_POSITION_DISCRIMINATOR:
        raise ValueError(f"{address} is not a constant-product position account")

    return SinglePosition(
        address=address,
        pool_address=str(Pubkey.from_bytes(data[8:40])),
        owner=owner,
        nft_mint=str(Pubkey.from_bytes(data[40:72])),
        liquidity=_read_u128(data, CP_POSITION_UNLOCKED_OFFSET),
    )


class PositionReader:
    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    async def fetch(self, address: str, owner: str = "") -> Optional[Position]:
        account = await self.rpc.get_account_info(address)
        if account is None:
            return None

        program = account.get("owner")
        data = decode_account_data(account)
        if program == str(DLMM_PROGRAM_ID):
            return decode_bin_position(address, data)
        if program == str(DAMM_V2_PROGRAM_ID):
            return decode_single_position(address, data, owner=owner)
        raise ClassificationError(address, owner=program, reason="not a known position account")
