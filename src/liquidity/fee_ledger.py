"""
Fee Ledger
==========
Claimable fee shares for the two beneficiary roles of a pool or rift vault.

The on-chain distribution always pays out the full amount split 50/50, so a
caller's "my share" target must be converted into a total distribution
amount before the instruction is built.
"""

import math
from typing import Optional

from config.settings import Settings
from src.liquidity.constants import PPM_DENOMINATOR
from src.liquidity.errors import InsufficientBalanceError
from src.liquidity.types import BeneficiaryRole, FeeLedgerEntry, VaultFeeState
from src.shared.system.logging import Logger


def split_fees(total_available: int) -> tuple:
    """(treasury, partner) halves; the odd unit goes to the partner."""
    treasury = total_available // 2
    return treasury, total_available - treasury


class FeeLedger:
    def __init__(self, safety_margin_ppm: Optional[int] = None):
        self.safety_margin_ppm = (
            Settings.FEE_SAFETY_MARGIN_PPM if safety_margin_ppm is None else safety_margin_ppm
        )

    def compute_claimable(self, state: VaultFeeState, caller: str) -> FeeLedgerEntry:
        if state.total_available < 0:
            raise ValueError(f"Negative fee balance for {state.vault_id}")

        share_a, share_b = split_fees(state.total_available)
        partner = state.partner or state.treasury

        if caller == state.treasury and partner == state.treasury:
            # No partner configured: the treasury receives both halves
            role, claimable = BeneficiaryRole.TREASURY, state.total_available
        elif caller == state.treasury:
            role, claimable = BeneficiaryRole.TREASURY, share_a
        elif caller == partner:
            role, claimable = BeneficiaryRole.PARTNER, share_b
        else:
            role, claimable = BeneficiaryRole.NONE, state.total_available

        return FeeLedgerEntry(
            pool_or_vault_id=state.vault_id,
            total_available=state.total_available,
            beneficiary_a_share=share_a,
            beneficiary_b_share=share_b,
            caller_claimable=claimable,
            caller_role=role,
        )

    def to_total(self, entry: FeeLedgerEntry, entered_amount: float) -> float:
        """
        "My share" amount -> total distribution amount, before the safety margin.

        total = entered / (caller_claimable / total_available)
        """
        if entered_amount <= 0:
            raise ValueError(f"Claim amount must be positive, got {entered_amount}")
        if entered_amount > entry.caller_claimable:
            raise InsufficientBalanceError(entry.pool_or_vault_id, int(entered_amount), entry.caller_claimable)
        if entry.caller_claimable == entry.total_available:
            return float(entered_amount)
        return entered_amount / (entry.caller_claimable / entry.total_available)

    def safety_margin(self, entry: FeeLedgerEntry) -> int:
        return math.ceil(entry.total_available * self.safety_margin_ppm / PPM_DENOMINATOR)

    def distribution_amount(self, entry: FeeLedgerEntry, entered_amount: float) -> int:
        """Integer amount to pass to the distribution instruction."""
        total = self.to_total(entry, entered_amount)
        amount = math.floor(total) - self.safety_margin(entry)
        amount = max(0, min(amount, entry.total_available))
        Logger.info(
            f"[LEDGER] {entry.pool_or_vault_id[:8]} {entry.caller_role.value} wants {entered_amount} "
            f"-> distribute {amount} of {entry.total_available}"
        )
        return amount
