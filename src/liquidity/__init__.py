"""
Liquidity Package
=================
Liquidity provisioning and settlement for rift tokens on the bin-based
(DLMM) and constant-product (DAMM v2) AMMs.

Components:
- pool_classifier.py: Pool family + on-chain token ordering
- quote_engine.py: Counter amounts and creation prices
- withdrawal_planner.py: Batched removal plans
- orchestrator.py: Intent -> TransactionPlan -> settlement
- confirmation_tracker.py: Submit + poll to a terminal status
- fee_ledger.py: Two-beneficiary fee claims
- balance_reconciler.py: Optimistic vs remote balances
- bootstrap.py: build_orchestrator() from Settings
"""

from src.liquidity.types import (
    AddLiquidityIntent,
    BinPool,
    ConstantProductPool,
    CreatePoolIntent,
    LaunchIntent,
    PoolFamily,
    TransactionPlan,
    WithdrawalMode,
)
from src.liquidity.errors import LiquidityError

__all__ = [
    "AddLiquidityIntent",
    "BinPool",
    "ConstantProductPool",
    "CreatePoolIntent",
    "LaunchIntent",
    "LiquidityError",
    "PoolFamily",
    "TransactionPlan",
    "WithdrawalMode",
]
