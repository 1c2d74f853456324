"""
Token Standards & Transfer Fees
===============================
Mint inspection for SPL Token and Token-2022.

Only Token-2022 mints can carry a transfer fee. The fee is read from the
mint's transferFeeConfig extension and the deposit haircut is computed from
the actual basis points (and maximum fee cap). A Token-2022 mint whose data
cannot be parsed falls back to a flat conservative haircut.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from config.settings import Settings
from src.liquidity.constants import BPS_DENOMINATOR, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from src.liquidity.interfaces import RpcClient
from src.shared.system.logging import Logger


class TokenStandard(Enum):
    SPL_TOKEN = "SPL_TOKEN"
    TOKEN_2022 = "TOKEN_2022"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class MintInfo:
    mint: str
    standard: TokenStandard
    decimals: int
    transfer_fee_bps: int = 0
    maximum_fee: Optional[int] = None
    fee_known: bool = True

    @property
    def program_id(self) -> str:
        if self.standard is TokenStandard.TOKEN_2022:
            return str(TOKEN_2022_PROGRAM_ID)
        return str(TOKEN_PROGRAM_ID)

    @property
    def has_transfer_fee(self) -> bool:
        return self.transfer_fee_bps > 0 or not self.fee_known


def transfer_fee(amount: int, fee_bps: int, maximum_fee: Optional[int] = None) -> int:
    """Token-2022 fee on a transfer: ceil(amount * bps / 10_000), capped at maximum_fee."""
    if amount <= 0 or fee_bps <= 0:
        return 0
    fee = -(-amount * fee_bps // BPS_DENOMINATOR)
    if maximum_fee is not None:
        fee = min(fee, maximum_fee)
    return fee


def parse_mint_account(mint: str, account: Optional[Dict], default_haircut_bps: int) -> MintInfo:
    """Build MintInfo from a jsonParsed getAccountInfo value."""
    if account is None:
        return MintInfo(mint=mint, standard=TokenStandard.UNKNOWN, decimals=0)

    owner = account.get("owner")
    standard = TokenStandard.SPL_TOKEN
    if owner == str(TOKEN_2022_PROGRAM_ID):
        standard = TokenStandard.TOKEN_2022

    data = account.get("data", {})
    parsed = data.get("parsed", {}) if isinstance(data, dict) else {}
    info = parsed.get("info", {})
    decimals = int(info.get("decimals", 0))

    if standard is not TokenStandard.TOKEN_2022:
        return MintInfo(mint=mint, standard=standard, decimals=decimals)

    if not info:
        # Extensions unreadable: assume a fee exists
        return MintInfo(
            mint=mint,
            standard=standard,
            decimals=decimals,
            transfer_fee_bps=default_haircut_bps,
            fee_known=False,
        )

    for ext in info.get("extensions", []):
        if ext.get("extension") != "transferFeeConfig":
            continue
        state = ext.get("state", {})
        newer = state.get("newerTransferFee", {})
        older = state.get("olderTransferFee", {})
        # Either schedule may be active depending on epoch; take the larger
        bps = max(int(newer.get("transferFeeBasisPoints", 0)), int(older.get("transferFeeBasisPoints", 0)))
        caps = [int(f["maximumFee"]) for f in (newer, older) if "maximumFee" in f]
        return MintInfo(
            mint=mint,
            standard=standard,
            decimals=decimals,
            transfer_fee_bps=bps,
            maximum_fee=max(caps) if caps else None,
        )

    return MintInfo(mint=mint, standard=standard, decimals=decimals)


class TokenStandards:
    """Async mint lookups with a per-process cache."""

    def __init__(self, rpc: RpcClient, default_haircut_bps: Optional[int] = None):
        self.rpc = rpc
        self.default_haircut_bps = (
            Settings.FOT_DEFAULT_HAIRCUT_BPS if default_haircut_bps is None else default_haircut_bps
        )
        self._cache: Dict[str, MintInfo] = {}

    async def get_mint_info(self, mint: str) -> MintInfo:
        if mint in self._cache:
            return self._cache[mint]

        account = await self.rpc.get_account_info(mint, encoding="jsonParsed")
        info = parse_mint_account(mint, account, self.default_haircut_bps)
        if info.standard is not TokenStandard.UNKNOWN:
            self._cache[mint] = info
        if info.has_transfer_fee:
            Logger.info(f"[QUOTE] {mint[:8]}... transfer fee {info.transfer_fee_bps / 100:.2f}%")
        return info

    async def haircut(self, mint: str, amount: int) -> int:
        """Amount the receiving program will actually see for a transfer of `amount`."""
        info = await self.get_mint_info(mint)
        return amount - transfer_fee(amount, info.transfer_fee_bps, info.maximum_fee)
