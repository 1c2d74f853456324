"""
Live Wiring
===========
Compose a LiquidityOrchestrator from Settings: RPC gateway, wallet from
SOLANA_PRIVATE_KEY, Jupiter prices, Jito relay and the sqlite cache that
backs balances and pool overrides.

Usage:
    orchestrator = build_orchestrator()
    plan = await orchestrator.build_plan(intent)
    result = await orchestrator.execute_plan(plan)
    await orchestrator.rpc.close()
"""

from typing import Optional

from src.liquidity.balance_reconciler import BalanceReconciler
from src.liquidity.cache_store import PoolOverrides, SqliteCacheStore
from src.liquidity.confirmation_tracker import ConfirmationTracker
from src.liquidity.interfaces import BundleRelay, PriceSource, RpcClient, Signer
from src.liquidity.orchestrator import LiquidityOrchestrator
from src.liquidity.pool_classifier import PoolClassifier
from src.liquidity.quote_engine import QuoteEngine
from src.liquidity.token_standards import TokenStandards
from src.shared.infrastructure.jito_adapter import JitoBundleRelay
from src.shared.infrastructure.price_oracle import JupiterPriceOracle
from src.shared.infrastructure.rpc_gateway import RpcGateway
from src.shared.infrastructure.signer import KeypairSigner
from src.shared.system.logging import Logger


def build_orchestrator(
    rpc: Optional[RpcClient] = None,
    signer: Optional[Signer] = None,
    prices: Optional[PriceSource] = None,
    relay: Optional[BundleRelay] = None,
    db_path: Optional[str] = None,
    simulate: bool = False,
) -> LiquidityOrchestrator:
    """Anything not passed in is built from Settings."""
    rpc = rpc or RpcGateway()
    signer = signer or KeypairSigner.from_env()
    store = SqliteCacheStore(db_path)
    tokens = TokenStandards(rpc)

    orchestrator = LiquidityOrchestrator(
        rpc,
        signer,
        QuoteEngine(PoolClassifier(rpc), prices or JupiterPriceOracle(), tokens),
        tokens,
        ConfirmationTracker(rpc),
        relay=relay or JitoBundleRelay(),
        reconciler=BalanceReconciler(store),
        overrides=PoolOverrides(store),
        simulate=simulate,
    )
    Logger.info(f"[EXEC] Orchestrator ready for {orchestrator.owner[:8]}... (cache {store.db_path})")
    return orchestrator
