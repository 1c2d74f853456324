"""
Quote Engine
============
Deposit quotes for existing pools and initial prices for new pools.

Existing pool:  counter = known * reserve_counter // reserve_known
New pool:       price from USD oracle, then oriented into the canonical
                (ascending address) token order the AMM stores.

Neither pool family charges a fee on deposit, so reserve ratios are used as-is.
Transfer-fee haircuts come from the deposited mint, not the AMM.
"""

from dataclasses import replace
from typing import Optional

from config.settings import Settings
from src.liquidity.constants import BPS_DENOMINATOR
from src.liquidity.errors import EmptyPoolError, PriceUnavailableError, StaleQuoteError
from src.liquidity.interfaces import PriceSource
from src.liquidity.pool_classifier import PoolClassifier
from src.liquidity.token_standards import TokenStandards
from src.liquidity.types import (
    CreationQuote,
    DepositQuote,
    Pool,
    PoolSlot,
    mint_in_slot,
    reserve_in_slot,
    slot_for_mint,
)
from src.shared.system.logging import Logger


def counter_amount_for(known_amount: int, reserve_known: int, reserve_counter: int) -> int:
    """Proportional counter amount in atomic units (floor)."""
    return known_amount * reserve_counter // reserve_known


def quote_existing(pool: Pool, known_amount: int, known_side: PoolSlot, single_sided: bool = False) -> DepositQuote:
    """
    Pure quote against already-read reserves.

    Raises EmptyPoolError when either reserve is zero.
    """
    if known_amount < 0:
        raise ValueError(f"Deposit amount must be non-negative, got {known_amount}")

    reserve_known = reserve_in_slot(pool, known_side)
    reserve_counter = reserve_in_slot(pool, known_side.other)
    if reserve_known == 0 or reserve_counter == 0:
        raise EmptyPoolError(pool.address, pool.reserve_a, pool.reserve_b)

    return DepositQuote(
        pool_address=pool.address,
        family=pool.family,
        source_side=known_side,
        source_amount=known_amount,
        counter_amount=counter_amount_for(known_amount, reserve_known, reserve_counter),
        effective_ratio=reserve_counter / reserve_known,
        single_sided=single_sided,
        deposit_source_amount=known_amount,
    )


def quote_manual(
    pool: Pool, known_amount: int, known_side: PoolSlot, ratio: float, single_sided: bool = False
) -> DepositQuote:
    """Quote from a user-entered ratio (counter per known), used when reserves are empty."""
    if ratio <= 0:
        raise ValueError(f"Manual ratio must be positive, got {ratio}")
    return DepositQuote(
        pool_address=pool.address,
        family=pool.family,
        source_side=known_side,
        source_amount=known_amount,
        counter_amount=int(known_amount * ratio),
        effective_ratio=ratio,
        single_sided=single_sided,
        deposit_source_amount=known_amount,
    )


def orient_creation_price(source_mint: str, quote_mint: str, oriented_price: float) -> CreationQuote:
    """
    Convert "quote per 1 source" into the price the pool stores.

    The AMM orders tokens by ascending address (X first) and stores price as
    Y per X. When the quote mint sorts before the source mint, the quote
    token is X and the price must be inverted.
    """
    if source_mint == quote_mint:
        raise ValueError("Source and quote mints must differ")
    if oriented_price <= 0:
        raise ValueError(f"Price must be positive, got {oriented_price}")

    inverted = quote_mint < source_mint
    stored = 1.0 / oriented_price if inverted else oriented_price
    return CreationQuote(
        source_mint=source_mint,
        quote_mint=quote_mint,
        oriented_price=oriented_price,
        stored_price=stored,
        inverted=inverted,
    )


def is_stale(quoted_ratio: float, current_ratio: float, tolerance_bps: int) -> bool:
    if quoted_ratio <= 0:
        return True
    drift = abs(current_ratio - quoted_ratio) / quoted_ratio
    return drift * BPS_DENOMINATOR > tolerance_bps


class QuoteEngine:
    """
    Reads pools through the classifier (fresh reserves each call) and prices
    new pools through the oracle.
    """

    def __init__(
        self,
        classifier: PoolClassifier,
        prices: PriceSource,
        tokens: Optional[TokenStandards] = None,
        stale_tolerance_bps: Optional[int] = None,
    ):
        self.classifier = classifier
        self.prices = prices
        self.tokens = tokens
        self.stale_tolerance_bps = (
            Settings.STALE_QUOTE_TOLERANCE_BPS if stale_tolerance_bps is None else stale_tolerance_bps
        )

    async def quote(
        self,
        pool_address: str,
        known_amount: int,
        known_side: PoolSlot,
        single_sided: bool = False,
    ) -> DepositQuote:
        pool = await self.classifier.classify(pool_address)
        quote = quote_existing(pool, known_amount, known_side, single_sided=single_sided)
        if single_sided:
            quote = await self._apply_haircut(quote, mint_in_slot(pool, known_side))

        Logger.info(
            f"[QUOTE] {pool_address[:8]} {known_amount} ({known_side.value}) -> "
            f"{quote.counter_amount} ratio={quote.effective_ratio:.9g}"
            + (" single-sided" if single_sided else "")
        )
        return quote

    async def quote_for_mint(
        self, pool_address: str, mint: str, amount: int, single_sided: bool = False
    ) -> DepositQuote:
        """Same as quote() but the known side is given by mint instead of slot."""
        pool = await self.classifier.classify(pool_address)
        side = slot_for_mint(pool, mint)
        quote = quote_existing(pool, amount, side, single_sided=single_sided)
        if single_sided:
            quote = await self._apply_haircut(quote, mint)
        return quote

    async def _apply_haircut(self, quote: DepositQuote, mint: str) -> DepositQuote:
        if self.tokens is None:
            return quote
        info = await self.tokens.get_mint_info(mint)
        if not info.has_transfer_fee:
            return quote
        received = await self.tokens.haircut(mint, quote.source_amount)
        return replace(quote, haircut_bps=info.transfer_fee_bps, deposit_source_amount=received)

    async def creation_quote(self, source_mint: str, quote_mint: str) -> CreationQuote:
        """
        Initial price for a pool that does not exist yet.

        Raises PriceUnavailableError if either USD price is missing, in which
        case the caller falls back to manual_creation_quote.
        """
        source_usd = await self.prices.get_price(source_mint)
        if not source_usd:
            raise PriceUnavailableError(source_mint)
        quote_usd = await self.prices.get_price(quote_mint)
        if not quote_usd:
            raise PriceUnavailableError(quote_mint)

        quote = replace(
            orient_creation_price(source_mint, quote_mint, source_usd / quote_usd),
            source_usd=source_usd,
            quote_usd=quote_usd,
        )
        Logger.info(
            f"[QUOTE] New pool {source_mint[:6]}/{quote_mint[:6]}: {quote.oriented_price:.9g} "
            f"-> stored {quote.stored_price:.9g}" + (" (inverted)" if quote.inverted else "")
        )
        return quote

    def manual_creation_quote(self, source_mint: str, quote_mint: str, oriented_price: float) -> CreationQuote:
        return replace(orient_creation_price(source_mint, quote_mint, oriented_price), manual=True)

    async def revalidate(self, quote: DepositQuote) -> Pool:
        """
        Re-read the pool at submit time.

        Returns the fresh pool, or raises StaleQuoteError / EmptyPoolError.
        Single-sided quotes only deposit one token, so the ratio is not checked.
        """
        pool = await self.classifier.classify(quote.pool_address)
        if quote.single_sided:
            return pool

        reserve_known = reserve_in_slot(pool, quote.source_side)
        reserve_counter = reserve_in_slot(pool, quote.source_side.other)
        if reserve_known == 0 or reserve_counter == 0:
            raise EmptyPoolError(pool.address, pool.reserve_a, pool.reserve_b)

        current = reserve_counter / reserve_known
        if is_stale(quote.effective_ratio, current, self.stale_tolerance_bps):
            raise StaleQuoteError(pool.address, quote.effective_ratio, current, self.stale_tolerance_bps)
        return pool
