"""
Withdrawal Planner
==================
Per-position removal plans across both pool families.

- Bin positions: one transaction per batch of bins (bins_per_tx wide);
  the last batch of a full withdrawal also closes the position.
- Constant-product positions: one removal per position, grouped per pool
  (up to positions_per_tx per transaction).

A transaction never mixes families.
"""

from typing import Dict, Iterable, List, Optional

from config.settings import Settings
from src.liquidity.constants import BPS_DENOMINATOR
from src.liquidity.errors import InvalidWithdrawalError
from src.liquidity.types import (
    BinPosition,
    PoolFamily,
    Position,
    SinglePosition,
    WithdrawalMode,
    WithdrawalPlan,
    WithdrawalStep,
    WithdrawalTransaction,
)
from src.shared.system.logging import Logger


def pct_to_bps(pct: float) -> int:
    if pct < 0 or pct > 100:
        raise InvalidWithdrawalError(f"Withdrawal percentage must be within (0, 100], got {pct}")
    bps = round(pct * 100)
    if pct > 0 and bps == 0:
        raise InvalidWithdrawalError(f"Withdrawal percentage {pct} is below 0.01%")
    return bps


def _chunks(items: List, size: int) -> Iterable[List]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class WithdrawalPlanner:
    def __init__(self, bins_per_tx: Optional[int] = None, positions_per_tx: Optional[int] = None):
        self.bins_per_tx = bins_per_tx or Settings.DLMM_BINS_PER_TX
        self.positions_per_tx = positions_per_tx or Settings.CP_POSITIONS_PER_TX

    def plan(
        self,
        positions: List[Position],
        mode: WithdrawalMode,
        pct: Optional[float] = None,
        selected: Optional[Iterable[str]] = None,
    ) -> WithdrawalPlan:
        if mode is WithdrawalMode.PERCENTAGE:
            if pct is None:
                raise InvalidWithdrawalError("Percentage mode requires pct")
            bps = pct_to_bps(pct)
            if bps == 0:
                return WithdrawalPlan(mode=mode, pct=pct)
            scope = list(positions)
        elif mode is WithdrawalMode.EXPLICIT_SELECTION:
            wanted = set(selected or ())
            known = {p.address for p in positions}
            unknown = wanted - known
            if unknown:
                raise InvalidWithdrawalError(f"Selected positions not found: {sorted(unknown)}")
            bps = BPS_DENOMINATOR
            scope = [p for p in positions if p.address in wanted]
        else:
            raise InvalidWithdrawalError(f"Unknown withdrawal mode {mode}")

        transactions: List[WithdrawalTransaction] = []
        by_pool: Dict[str, List[WithdrawalStep]] = {}

        for position in scope:
            if isinstance(position, BinPosition):
                transactions.extend(self._plan_bin_position(position, bps))
            elif isinstance(position, SinglePosition):
                step = self._plan_single_position(position, bps)
                if step is not None:
                    by_pool.setdefault(position.pool_address, []).append(step)
            else:
                raise TypeError(f"Unsupported position type {type(position).__name__}")

        for pool_address, steps in by_pool.items():
            for chunk in _chunks(steps, self.positions_per_tx):
                transactions.append(
                    WithdrawalTransaction(
                        family=PoolFamily.CONSTANT_PRODUCT,
                        pool_address=pool_address,
                        steps=tuple(chunk),
                    )
                )

        plan = WithdrawalPlan(mode=mode, pct=pct if mode is WithdrawalMode.PERCENTAGE else 100.0,
                              transactions=transactions)
        Logger.info(
            f"[WITHDRAW] Planned {plan.total} tx(s) for {len(scope)} position(s) at {bps / 100:.2f}%"
        )
        return plan

    def _plan_bin_position(self, position: BinPosition, bps: int) -> List[WithdrawalTransaction]:
        full = bps == BPS_DENOMINATOR
        funded = position.funded_bins
        if not funded:
            if not full:
                return []
            # Nothing to remove, only the account to close
            step = WithdrawalStep(
                position_address=position.address,
                bps=bps,
                lower_bin_id=position.lower_bin_id,
                upper_bin_id=position.upper_bin_id,
                close=True,
            )
            return [WithdrawalTransaction(PoolFamily.BIN_BASED, position.pool_address, (step,))]

        batches = []
        lower = funded[0]
        while lower <= funded[-1]:
            upper = min(lower + self.bins_per_tx - 1, funded[-1])
            if any(lower <= b <= upper for b in funded):
                batches.append((lower, upper))
            lower = upper + 1

        transactions = []
        for index, (lower, upper) in enumerate(batches):
            step = WithdrawalStep(
                position_address=position.address,
                bps=bps,
                lower_bin_id=lower,
                upper_bin_id=upper,
                close=full and index == len(batches) - 1,
            )
            transactions.append(WithdrawalTransaction(PoolFamily.BIN_BASED, position.pool_address, (step,)))
        return transactions

    def _plan_single_position(self, position: SinglePosition, bps: int) -> Optional[WithdrawalStep]:
        full = bps == BPS_DENOMINATOR
        if position.liquidity == 0 and not full:
            return None
        return WithdrawalStep(
            position_address=position.address,
            bps=bps,
            liquidity_delta=position.liquidity if full else position.liquidity * bps // BPS_DENOMINATOR,
            close=full,
            nft_mint=position.nft_mint,
        )


def simulate_withdrawal(plan: WithdrawalPlan, positions: List[Position]) -> Dict[str, int]:
    """
    Apply a plan to in-memory positions and return remaining liquidity per position.

    Bin removals take bps of each bin's shares (floor); a closed position must end at zero.
    """
    bins: Dict[str, Dict[int, int]] = {}
    single: Dict[str, int] = {}
    for position in positions:
        if isinstance(position, BinPosition):
            bins[position.address] = dict(position.bin_liquidity)
        else:
            single[position.address] = position.liquidity

    for tx in plan.transactions:
        for step in tx.steps:
            if tx.family is PoolFamily.BIN_BASED:
                shares = bins[step.position_address]
                for bin_id in range(step.lower_bin_id, step.upper_bin_id + 1):
                    liq = shares.get(bin_id, 0)
                    removed = liq if step.bps == BPS_DENOMINATOR else liq * step.bps // BPS_DENOMINATOR
                    shares[bin_id] = liq - removed
            else:
                single[step.position_address] -= step.liquidity_delta

    remaining = {address: sum(shares.values()) for address, shares in bins.items()}
    remaining.update(single)
    return remaining
