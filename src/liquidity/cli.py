"""
Liquidity CLI - Read-Only Inspection
====================================
Command-line interface for classifying pools and previewing quotes,
fee claims and withdrawal plans. Nothing here signs or sends.

Usage:
    python -m src.liquidity.cli classify <pool>
    python -m src.liquidity.cli quote <pool> --mint <mint> --amount 1000000000
    python -m src.liquidity.cli create-quote <source_mint> <quote_mint> [--price 0.02]
    python -m src.liquidity.cli claimable --total 100 --treasury <a> --partner <b> --caller <b> --amount 10
    python -m src.liquidity.cli withdraw-plan <position> [<position> ...] --pct 50
"""

import argparse
import asyncio
import sys

from src.liquidity.errors import LiquidityError, PriceUnavailableError
from src.liquidity.fee_ledger import FeeLedger
from src.liquidity.pool_classifier import PoolClassifier
from src.liquidity.positions import PositionReader
from src.liquidity.quote_engine import QuoteEngine
from src.liquidity.token_standards import TokenStandards
from src.liquidity.types import BinPool, VaultFeeState, WithdrawalMode
from src.liquidity.withdrawal_planner import WithdrawalPlanner
from src.shared.infrastructure.price_oracle import JupiterPriceOracle
from src.shared.infrastructure.rpc_gateway import RpcGateway
from src.shared.system.logging import Logger


async def classify_command(args):
    async with RpcGateway() as rpc:
        pool = await PoolClassifier(rpc).classify(args.pool)

    print("\n" + "=" * 60)
    print(f"POOL {pool.address}")
    print("=" * 60)
    print(f"Family:    {pool.family.value}")
    print(f"Token A:   {pool.token_a_mint}  reserve {pool.reserve_a}")
    print(f"Token B:   {pool.token_b_mint}  reserve {pool.reserve_b}")
    print(f"Fee:       {pool.fee_bps} bps")
    if isinstance(pool, BinPool):
        print(f"Bin step:  {pool.bin_step}  active bin {pool.active_bin_id}")
    print("=" * 60 + "\n")


async def quote_command(args):
    async with RpcGateway() as rpc:
        tokens = TokenStandards(rpc)
        engine = QuoteEngine(PoolClassifier(rpc), JupiterPriceOracle(), tokens)
        quote = await engine.quote_for_mint(args.pool, args.mint, args.amount, single_sided=args.single_sided)

    print("\n" + "=" * 60)
    print("DEPOSIT QUOTE")
    print("=" * 60)
    print(f"Source side:     {quote.source_side.value} ({quote.source_amount})")
    print(f"Counter amount:  {quote.counter_amount}")
    print(f"Ratio:           {quote.effective_ratio:.9g}")
    if quote.single_sided:
        print(f"Deposited:       {quote.deposit_source_amount or quote.source_amount} (haircut {quote.haircut_bps} bps)")
    print("=" * 60 + "\n")


async def create_quote_command(args):
    engine = QuoteEngine(classifier=None, prices=JupiterPriceOracle())
    if args.price is not None:
        quote = engine.manual_creation_quote(args.source_mint, args.quote_mint, args.price)
    else:
        try:
            quote = await engine.creation_quote(args.source_mint, args.quote_mint)
        except PriceUnavailableError as e:
            Logger.warning(f"[QUOTE] {e}. Re-run with --price")
            sys.exit(2)

    print("\n" + "=" * 60)
    print("NEW POOL PRICE")
    print("=" * 60)
    print(f"Token X (A):     {quote.token_a_mint}")
    print(f"Token Y (B):     {quote.token_b_mint}")
    print(f"Quote/source:    {quote.oriented_price:.9g}")
    print(f"Stored (Y per X): {quote.stored_price:.9g}{'  [inverted]' if quote.inverted else ''}")
    print("=" * 60 + "\n")


def claimable_command(args):
    ledger = FeeLedger()
    state = VaultFeeState(
        vault_id=args.vault or "vault",
        total_available=args.total,
        treasury=args.treasury,
        partner=args.partner,
    )
    entry = ledger.compute_claimable(state, args.caller)

    print("\n" + "=" * 60)
    print("FEE CLAIM")
    print("=" * 60)
    print(f"Total available:  {entry.total_available}")
    print(f"Treasury share:   {entry.beneficiary_a_share}")
    print(f"Partner share:    {entry.beneficiary_b_share}")
    print(f"Caller role:      {entry.caller_role.value} (claimable {entry.caller_claimable})")
    if args.amount is not None:
        print(f"Distribute total: {ledger.to_total(entry, args.amount):.6f}")
        print(f"After margin:     {ledger.distribution_amount(entry, args.amount)}")
    print("=" * 60 + "\n")


async def withdraw_plan_command(args):
    async with RpcGateway() as rpc:
        reader = PositionReader(rpc)
        positions = []
        for address in args.positions:
            position = await reader.fetch(address)
            if position is None:
                Logger.warning(f"[WITHDRAW] Position {address} not found")
                continue
            positions.append(position)

    mode = WithdrawalMode.PERCENTAGE if args.pct is not None else WithdrawalMode.EXPLICIT_SELECTION
    plan = WithdrawalPlanner().plan(
        positions, mode, pct=args.pct, selected=None if args.pct is not None else args.positions
    )

    print("\n" + "=" * 60)
    print(f"WITHDRAWAL PLAN ({plan.total} transaction(s))")
    print("=" * 60)
    for _, _, status, _ in plan.iter_progress():
        print(status)
    print("=" * 60 + "\n")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Rift liquidity inspection (read-only)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("classify", help="Pool family and on-chain token order")
    p.add_argument("pool")

    p = sub.add_parser("quote", help="Counter amount for a one-sided deposit")
    p.add_argument("pool")
    p.add_argument("--mint", required=True, help="Mint of the known side")
    p.add_argument("--amount", type=int, required=True, help="Known amount in base units")
    p.add_argument("--single-sided", action="store_true")

    p = sub.add_parser("create-quote", help="Initial price for a new pool")
    p.add_argument("source_mint")
    p.add_argument("quote_mint")
    p.add_argument("--price", type=float, help="Manual quote-per-source price")

    p = sub.add_parser("claimable", help="Fee shares and distribution amount")
    p.add_argument("--total", type=int, required=True)
    p.add_argument("--treasury", required=True)
    p.add_argument("--partner")
    p.add_argument("--caller", required=True)
    p.add_argument("--amount", type=float, help="Desired claim in caller-share terms")
    p.add_argument("--vault")

    p = sub.add_parser("withdraw-plan", help="Preview a withdrawal plan")
    p.add_argument("positions", nargs="+")
    p.add_argument("--pct", type=float, help="Percentage (omit to withdraw the listed positions fully)")

    args = parser.parse_args()

    try:
        if args.command == "classify":
            asyncio.run(classify_command(args))
        elif args.command == "quote":
            asyncio.run(quote_command(args))
        elif args.command == "create-quote":
            asyncio.run(create_quote_command(args))
        elif args.command == "claimable":
            claimable_command(args)
        elif args.command == "withdraw-plan":
            asyncio.run(withdraw_plan_command(args))
        else:
            parser.print_help()
            sys.exit(1)

    except KeyboardInterrupt:
        Logger.warning("[SYSTEM] Interrupted by user")
        sys.exit(130)
    except LiquidityError as e:
        Logger.error(f"[SYSTEM] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
