"""
Liquidity Orchestrator Types
============================
Dataclasses for pools, quotes, positions, plans and settlement records.

Pools are a closed tagged union (BinPool | ConstantProductPool) matched with
isinstance; storage slots are exposed as A/B independent of any semantic role
("the rift token"), and callers resolve the mapping by mint comparison.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, ClassVar, Dict, Iterator, List, Optional, Tuple, Union

from solders.instruction import Instruction
from solders.keypair import Keypair

from src.liquidity.pdas import rift_address, rift_mint_address
from src.liquidity.constants import DEFAULT_BIN_STEP, TOKEN_PROGRAM_ID


class PoolFamily(Enum):
    BIN_BASED = "BIN_BASED"
    CONSTANT_PRODUCT = "CONSTANT_PRODUCT"


class PoolSlot(Enum):
    """Storage slot of a token inside a pool (X/Y for bin pools map to A/B)."""

    A = "A"
    B = "B"

    @property
    def other(self) -> "PoolSlot":
        return PoolSlot.B if self is PoolSlot.A else PoolSlot.A


# =============================================================================
# POOLS
# =============================================================================


@dataclass(frozen=True, slots=True)
class BinPool:
    """
    Bin-based (DLMM) pool as read from chain.

    token_a/token_b are the on-chain X/Y slots. Reserves come from the vault
    token accounts and are read fresh at every classification.
    """

    family: ClassVar[PoolFamily] = PoolFamily.BIN_BASED

    address: str
    token_a_mint: str
    token_b_mint: str
    reserve_a: int
    reserve_b: int
    fee_bps: int
    bin_step: int
    active_bin_id: int
    vault_a: str = ""
    vault_b: str = ""
    token_a_program: str = str(TOKEN_PROGRAM_ID)
    token_b_program: str = str(TOKEN_PROGRAM_ID)

    def __post_init__(self):
        if self.token_a_mint == self.token_b_mint:
            raise ValueError(f"Pool {self.address} has identical token mints")

    @property
    def token_x_mint(self) -> str:
        return self.token_a_mint

    @property
    def token_y_mint(self) -> str:
        return self.token_b_mint


@dataclass(frozen=True, slots=True)
class ConstantProductPool:
    """Constant-product (DAMM v2) pool as read from chain."""

    family: ClassVar[PoolFamily] = PoolFamily.CONSTANT_PRODUCT

    address: str
    token_a_mint: str
    token_b_mint: str
    reserve_a: int
    reserve_b: int
    fee_bps: int
    vault_a: str = ""
    vault_b: str = ""
    token_a_program: str = str(TOKEN_PROGRAM_ID)
    token_b_program: str = str(TOKEN_PROGRAM_ID)
    liquidity: int = 0
    sqrt_price: int = 0  # Q64.64
    sqrt_min_price: int = 0
    sqrt_max_price: int = 0

    def __post_init__(self):
        if self.token_a_mint == self.token_b_mint:
            raise ValueError(f"Pool {self.address} has identical token mints")


Pool = Union[BinPool, ConstantProductPool]


def slot_for_mint(pool: Pool, mint: str) -> PoolSlot:
    """Resolve which storage slot holds `mint`."""
    if mint == pool.token_a_mint:
        return PoolSlot.A
    if mint == pool.token_b_mint:
        return PoolSlot.B
    raise ValueError(f"Mint {mint} is not part of pool {pool.address}")


def mint_in_slot(pool: Pool, slot: PoolSlot) -> str:
    return pool.token_a_mint if slot is PoolSlot.A else pool.token_b_mint


def reserve_in_slot(pool: Pool, slot: PoolSlot) -> int:
    return pool.reserve_a if slot is PoolSlot.A else pool.reserve_b


def program_in_slot(pool: Pool, slot: PoolSlot) -> str:
    return pool.token_a_program if slot is PoolSlot.A else pool.token_b_program


# =============================================================================
# QUOTES
# =============================================================================


@dataclass(frozen=True, slots=True)
class DepositQuote:
    """
    Counter amount for a one-sided input against live reserves.

    counter_amount is always the implied two-sided amount, even for
    single-sided deposits (where only the source side is deposited).
    deposit_source_amount is the nominal amount after any transfer-fee haircut.
    """

    pool_address: str
    family: PoolFamily
    source_side: PoolSlot
    source_amount: int
    counter_amount: int
    effective_ratio: float
    single_sided: bool = False
    haircut_bps: int = 0
    deposit_source_amount: int = 0
    quoted_at: float = field(default_factory=time.time)

    @property
    def deposit_counter_amount(self) -> int:
        return 0 if self.single_sided else self.counter_amount


@dataclass(frozen=True, slots=True)
class CreationQuote:
    """
    Initial price for a pool that does not exist yet.

    oriented_price: quote-token units per 1 source token (from USD prices).
    stored_price:   token Y per token X in canonical (ascending address) order,
                    i.e. what the pool-creation instruction must receive.
    """

    source_mint: str
    quote_mint: str
    oriented_price: float
    stored_price: float
    inverted: bool
    source_usd: Optional[float] = None
    quote_usd: Optional[float] = None
    manual: bool = False

    @property
    def token_a_mint(self) -> str:
        return min(self.source_mint, self.quote_mint)

    @property
    def token_b_mint(self) -> str:
        return max(self.source_mint, self.quote_mint)


# =============================================================================
# POSITIONS
# =============================================================================


@dataclass(frozen=True)
class BinPosition:
    """Position over a bounded range of bins. bin_liquidity maps bin id -> shares."""

    family: ClassVar[PoolFamily] = PoolFamily.BIN_BASED

    address: str
    pool_address: str
    owner: str
    lower_bin_id: int
    upper_bin_id: int
    bin_liquidity: Dict[int, int] = field(default_factory=dict)

    @property
    def total_liquidity(self) -> int:
        return sum(self.bin_liquidity.values())

    @property
    def funded_bins(self) -> List[int]:
        return sorted(b for b, liq in self.bin_liquidity.items() if liq > 0)


@dataclass(frozen=True, slots=True)
class SinglePosition:
    """NFT-keyed claim on a constant-product pool."""

    family: ClassVar[PoolFamily] = PoolFamily.CONSTANT_PRODUCT

    address: str
    pool_address: str
    owner: str
    nft_mint: str
    liquidity: int

    @property
    def total_liquidity(self) -> int:
        return self.liquidity


Position = Union[BinPosition, SinglePosition]


# =============================================================================
# WITHDRAWALS
# =============================================================================


class WithdrawalMode(Enum):
    PERCENTAGE = "PERCENTAGE"
    EXPLICIT_SELECTION = "EXPLICIT_SELECTION"


@dataclass(frozen=True, slots=True)
class WithdrawalStep:
    """
    Removal against one position.

    Bin steps cover [lower_bin_id, upper_bin_id]; constant-product steps carry
    liquidity_delta. close=True means the position account is closed afterwards.
    """

    position_address: str
    bps: int
    liquidity_delta: int = 0
    lower_bin_id: Optional[int] = None
    upper_bin_id: Optional[int] = None
    close: bool = False
    nft_mint: str = ""


@dataclass(frozen=True, slots=True)
class WithdrawalTransaction:
    family: PoolFamily
    pool_address: str
    steps: Tuple[WithdrawalStep, ...]

    @property
    def label(self) -> str:
        if self.family is PoolFamily.BIN_BASED:
            step = self.steps[0]
            return f"bins {step.lower_bin_id}..{step.upper_bin_id} of {step.position_address[:8]}"
        return f"{len(self.steps)} position(s) in pool {self.pool_address[:8]}"


@dataclass
class WithdrawalPlan:
    mode: WithdrawalMode
    pct: Optional[float]
    transactions: List[WithdrawalTransaction] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.transactions

    @property
    def total(self) -> int:
        return len(self.transactions)

    def iter_progress(self) -> Iterator[Tuple[int, int, str, WithdrawalTransaction]]:
        """Yield (current, total, status_text, transaction), 1-based."""
        total = self.total
        for index, tx in enumerate(self.transactions, start=1):
            yield index, total, f"Withdrawing {tx.label} ({index}/{total})", tx


ProgressCallback = Callable[[int, int, str], None]


# =============================================================================
# PLANS
# =============================================================================


class BundlingMode(Enum):
    SEQUENTIAL = "SEQUENTIAL"
    ATOMIC_BUNDLE = "ATOMIC_BUNDLE"


DeferredBuilder = Callable[[], Awaitable[List[Instruction]]]


@dataclass
class InstructionGroup:
    """
    Instructions that must land together in one transaction.

    A deferred group has no instructions until `builder` runs, which happens
    only after every earlier group has confirmed.
    """

    label: str
    instructions: List[Instruction] = field(default_factory=list)
    extra_signers: List[Keypair] = field(default_factory=list)
    builder: Optional[DeferredBuilder] = None

    @property
    def is_deferred(self) -> bool:
        return self.builder is not None and not self.instructions


@dataclass
class TransactionPlan:
    label: str
    bundling_mode: BundlingMode
    groups: List[InstructionGroup] = field(default_factory=list)
    pool_address: Optional[str] = None
    # token account -> expected change, applied optimistically once the plan completes
    balance_deltas: Dict[str, int] = field(default_factory=dict)
    # run once every group has confirmed
    on_complete: List[Callable[[], None]] = field(default_factory=list)

    @property
    def is_atomic(self) -> bool:
        return self.bundling_mode is BundlingMode.ATOMIC_BUNDLE


# =============================================================================
# INTENTS
# =============================================================================


@dataclass(frozen=True)
class AddLiquidityIntent:
    """Deposit into an existing pool using a fresh DepositQuote."""

    quote: DepositQuote
    owner: str
    single_sided: bool = False
    range_bins: int = 10


@dataclass(frozen=True)
class CreatePoolIntent:
    """
    Create a pool for (source, quote) and deposit into it.

    quote_amount == 0 requests a single-sided deposit of the source token.
    """

    family: PoolFamily
    owner: str
    creation_quote: CreationQuote
    source_amount: int
    quote_amount: int = 0
    source_decimals: int = 9
    quote_decimals: int = 9
    bin_step: int = DEFAULT_BIN_STEP
    base_factor: int = 10_000
    range_bins: int = 10
    fee_bps: int = 100

    @property
    def source_mint(self) -> str:
        return self.creation_quote.source_mint

    @property
    def quote_mint(self) -> str:
        return self.creation_quote.quote_mint

    @property
    def single_sided(self) -> bool:
        return self.quote_amount == 0


@dataclass(frozen=True)
class LaunchIntent:
    """
    Create a rift vault, wrap the first underlying, and open its first pool.

    The rift mint is a PDA of (creator, underlying, vanity_seed), so the pool's
    canonical token order can be quoted before the vault exists.
    """

    underlying_mint: str
    vanity_seed: bytes
    wrap_amount: int
    pool: CreatePoolIntent
    partner_wallet: Optional[str] = None
    rift_name: str = ""
    transfer_fee_bps: int = 80
    prefix_type: int = 0
    underlying_program: str = str(TOKEN_PROGRAM_ID)

    def __post_init__(self):
        if len(self.vanity_seed) > 32:
            raise ValueError("Vanity seed is limited to 32 bytes")
        if self.pool.source_mint != self.rift_mint:
            raise ValueError("Launch pool must quote the new rift mint as its source token")

    @property
    def creator(self) -> str:
        return self.pool.owner

    @property
    def rift_address(self) -> str:
        return str(rift_address(self.underlying_mint, self.creator, self.vanity_seed))

    @property
    def rift_mint(self) -> str:
        return str(rift_mint_address(self.underlying_mint, self.creator, self.vanity_seed))


Intent = Union[LaunchIntent, AddLiquidityIntent, CreatePoolIntent]


# =============================================================================
# SETTLEMENT
# =============================================================================


class ConfirmationStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"  # outcome unknown, may still land


@dataclass
class ConfirmationRecord:
    signature: str
    submitted_at: float
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    error: Optional[str] = None
    raw_error: object = None
    slot: Optional[int] = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status is not ConfirmationStatus.PENDING

    @property
    def confirmed(self) -> bool:
        return self.status is ConfirmationStatus.CONFIRMED


@dataclass
class PlanExecutionResult:
    plan_label: str
    records: List[ConfirmationRecord] = field(default_factory=list)
    bundle_id: Optional[str] = None

    @property
    def completed(self) -> bool:
        return bool(self.records) and all(r.confirmed for r in self.records)

    @property
    def last(self) -> Optional[ConfirmationRecord]:
        return self.records[-1] if self.records else None


# =============================================================================
# FEES & BALANCES
# =============================================================================


class BeneficiaryRole(Enum):
    TREASURY = "TREASURY"  # beneficiary A
    PARTNER = "PARTNER"    # beneficiary B
    NONE = "NONE"


@dataclass(frozen=True, slots=True)
class VaultFeeState:
    """Fee balance held by a pool or rift vault, with its two beneficiaries."""

    vault_id: str
    total_available: int
    treasury: str
    partner: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FeeLedgerEntry:
    pool_or_vault_id: str
    total_available: int
    beneficiary_a_share: int
    beneficiary_b_share: int
    caller_claimable: int
    caller_role: BeneficiaryRole = BeneficiaryRole.NONE


@dataclass
class CachedBalance:
    value: int
    fetched_at: float
    last_optimistic_update_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "fetched_at": self.fetched_at,
            "last_optimistic_update_at": self.last_optimistic_update_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CachedBalance":
        return cls(
            value=int(data["value"]),
            fetched_at=float(data["fetched_at"]),
            last_optimistic_update_at=data.get("last_optimistic_update_at"),
        )
