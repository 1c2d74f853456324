"""
Liquidity Orchestrator
======================
Intent -> TransactionPlan -> signed transactions -> terminal records.

Intents:
- AddLiquidityIntent: one transaction built from a DepositQuote that is
  revalidated against live reserves first. Bin ranges wider than one
  position become one transaction per chunk, bundled when the relay can
  take them all and sequential otherwise.
- CreatePoolIntent: SEQUENTIAL, create then deposit. The deposit group is
  deferred and only built after the create group confirms, from a fresh
  re-read of the depositor's balance (one deferred group per bin chunk).
- LaunchIntent: ATOMIC_BUNDLE, rift vault + wrap + first pool. Fails closed
  when no bundle relay can take it.

Execution never resubmits. A reverted transaction raises
OnChainExecutionError; a timed-out one stops the plan and is returned as-is.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from config.settings import Settings
from src.liquidity import pdas
from src.liquidity.balance_reconciler import BalanceReconciler
from src.liquidity.bin_math import balanced_range, bin_id_from_price, chunk_range, single_sided_range, split_deposit
from src.liquidity.cache_store import PoolOverrides
from src.liquidity.confirmation_tracker import ConfirmationTracker
from src.liquidity.constants import BPS_DENOMINATOR, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID, WSOL_MINT
from src.liquidity.errors import (
    InsufficientBalanceError,
    OnChainExecutionError,
    PartialBundleUnavailableError,
    PoolNoLongerSingleSidedError,
    SimulationFailedError,
    decode_program_error,
)
from src.liquidity.fee_ledger import FeeLedger
from src.liquidity.instruction_factory import (
    MAX_SQRT_PRICE,
    MIN_SQRT_PRICE,
    LiquidityInstructionFactory,
    cp_liquidity_for,
    min_rift_out,
    single_sided_sqrt_range,
    sqrt_price_q64,
    token_program_of,
)
from src.liquidity.interfaces import BundleRelay, RpcClient, Signer
from src.liquidity.quote_engine import QuoteEngine
from src.liquidity.token_standards import TokenStandards, transfer_fee
from src.liquidity.types import (
    AddLiquidityIntent,
    BinPool,
    BundlingMode,
    ConfirmationRecord,
    ConfirmationStatus,
    ConstantProductPool,
    CreatePoolIntent,
    InstructionGroup,
    Intent,
    LaunchIntent,
    PlanExecutionResult,
    Pool,
    PoolFamily,
    PoolSlot,
    Position,
    ProgressCallback,
    TransactionPlan,
    VaultFeeState,
    WithdrawalMode,
    mint_in_slot,
    program_in_slot,
    reserve_in_slot,
)
from src.liquidity.withdrawal_planner import WithdrawalPlanner
from src.shared.infrastructure.signer import compile_message, encode_base58, first_signature
from src.shared.system.logging import Logger

# Constant-product pools are created with this fraction of the deposit and
# topped up once the balance re-read confirms what actually arrived.
CP_SEED_DIVISOR = 100


@dataclass
class _CreationLayout:
    """Where a new pool will live and how its first position is shaped."""

    pool: Pool
    source_is_a: bool
    position: Keypair
    # Bin pools: one position per chunk, the first chunk uses `position`
    chunks: List[Tuple[int, int]] = field(default_factory=list)
    chunk_positions: List[Keypair] = field(default_factory=list)


class LiquidityOrchestrator:
    def __init__(
        self,
        rpc: RpcClient,
        signer: Signer,
        quotes: QuoteEngine,
        tokens: TokenStandards,
        tracker: ConfirmationTracker,
        relay: Optional[BundleRelay] = None,
        reconciler: Optional[BalanceReconciler] = None,
        overrides: Optional[PoolOverrides] = None,
        planner: Optional[WithdrawalPlanner] = None,
        ledger: Optional[FeeLedger] = None,
        simulate: bool = False,
        recheck_attempts: Optional[int] = None,
        recheck_delay_s: Optional[float] = None,
        max_bundle_txs: Optional[int] = None,
        bins_per_position: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rpc = rpc
        self.signer = signer
        self.quotes = quotes
        self.tokens = tokens
        self.tracker = tracker
        self.relay = relay
        self.reconciler = reconciler
        self.overrides = overrides
        self.planner = planner or WithdrawalPlanner()
        self.ledger = ledger or FeeLedger()
        self.simulate = simulate
        self.recheck_attempts = recheck_attempts or Settings.BALANCE_RECHECK_ATTEMPTS
        self.recheck_delay_s = Settings.BALANCE_RECHECK_DELAY_S if recheck_delay_s is None else recheck_delay_s
        self.max_bundle_txs = max_bundle_txs or Settings.JITO_MAX_TXS_PER_BUNDLE
        self.bins_per_position = min(bins_per_position or Settings.DLMM_BINS_PER_TX, pdas.BINS_PER_ARRAY)
        self._sleep = sleep
        self.factory = LiquidityInstructionFactory(signer.pubkey)

    @property
    def owner(self) -> str:
        return str(self.signer.pubkey)

    # =========================================================================
    # PLAN BUILDING
    # =========================================================================

    async def build_plan(self, intent: Intent) -> TransactionPlan:
        if isinstance(intent, AddLiquidityIntent):
            plan = await self._plan_add(intent)
        elif isinstance(intent, CreatePoolIntent):
            plan = await self._plan_create(intent)
        elif isinstance(intent, LaunchIntent):
            plan = await self._plan_launch(intent)
        else:
            raise TypeError(f"Unsupported intent {type(intent).__name__}")

        Logger.info(
            f"[PLAN] Built '{plan.label}': {len(plan.groups)} group(s), {plan.bundling_mode.value}"
        )
        return plan

    async def _plan_add(self, intent: AddLiquidityIntent) -> TransactionPlan:
        quote = intent.quote
        pool = await self.quotes.revalidate(quote)
        single = intent.single_sided or quote.single_sided
        side = quote.source_side
        source_mint = mint_in_slot(pool, side)

        if single and isinstance(pool, ConstantProductPool):
            counter_reserve = reserve_in_slot(pool, side.other)
            if counter_reserve > 0:
                raise PoolNoLongerSingleSidedError(pool.address, counter_reserve)

        if single:
            # A two-sided quote used single-sided never had the transfer fee taken off
            if quote.single_sided and quote.deposit_source_amount:
                source_amount = quote.deposit_source_amount
            else:
                source_amount = await self.tokens.haircut(source_mint, quote.source_amount)
            counter_amount = 0
        else:
            source_amount, counter_amount = quote.source_amount, quote.counter_amount

        await self._require_balance(source_mint, program_in_slot(pool, side), quote.source_amount)
        if counter_amount:
            await self._require_balance(mint_in_slot(pool, side.other), program_in_slot(pool, side.other), counter_amount)

        amount_a, amount_b = (source_amount, counter_amount) if side is PoolSlot.A else (counter_amount, source_amount)
        bundling_mode = BundlingMode.SEQUENTIAL

        if isinstance(pool, BinPool):
            if single:
                lower, upper = single_sided_range(pool.active_bin_id, intent.range_bins, side is PoolSlot.A)
            else:
                lower, upper = balanced_range(pool.active_bin_id, intent.range_bins)
            groups = await self._bin_add_groups(pool, lower, upper, amount_a, amount_b)
            # Bundled when the relay can take every chunk
            if len(groups) > 1 and await self._bundle_fits(len(groups)):
                bundling_mode = BundlingMode.ATOMIC_BUNDLE
        else:
            position = Keypair()
            liquidity = cp_liquidity_for(pool, amount_a, amount_b)
            if liquidity <= 0:
                raise ValueError(f"Deposit into {pool.address} is too small to mint liquidity")
            ixs = self.factory.compute_budget() + self.factory.prepare_token_accounts(pool, amount_a, amount_b)
            ixs.append(self.factory.cp_create_position(pool, position.pubkey()))
            ixs.append(self.factory.cp_add_liquidity(pool, position.pubkey(), liquidity, amount_a, amount_b))
            groups = [InstructionGroup(label="deposit", instructions=ixs, extra_signers=[position])]

        plan = TransactionPlan(
            label=f"add liquidity to {pool.address[:8]}",
            bundling_mode=bundling_mode,
            groups=groups,
            pool_address=pool.address,
        )
        self._track_spend(plan, pool, side, quote.source_amount)
        self._track_spend(plan, pool, side.other, counter_amount)
        return plan

    async def _plan_create(self, intent: CreatePoolIntent) -> TransactionPlan:
        source_program = await self._mint_program(intent.source_mint)
        quote_program = await self._mint_program(intent.quote_mint)
        await self._require_balance(intent.source_mint, source_program, intent.source_amount)
        if intent.quote_amount:
            await self._require_balance(intent.quote_mint, quote_program, intent.quote_amount)

        layout = self._creation_layout(intent, source_program, quote_program)
        pool = layout.pool
        plan = TransactionPlan(
            label=f"create {intent.family.value} pool {pool.address[:8]}",
            bundling_mode=BundlingMode.SEQUENTIAL,
            pool_address=pool.address,
        )

        if isinstance(pool, BinPool):
            create_ixs = self.factory.compute_budget() + [
                self.factory.dlmm_create_pair(pool, intent.base_factor),
                *self._chunk_bin_arrays(pool.address, layout.chunks),
            ]
            plan.groups.append(InstructionGroup(label="create pool", instructions=create_ixs))
            seed_a = seed_b = 0
        else:
            nominal_a, nominal_b = self._to_slots(layout, intent.source_amount, intent.quote_amount)
            seed_a, seed_b = self._seed(nominal_a), self._seed(nominal_b)
            seed_liquidity = cp_liquidity_for(pool, seed_a, seed_b)
            if seed_liquidity <= 0:
                raise ValueError("Deposit is too small to seed a constant-product pool")
            create_ixs = self.factory.compute_budget() + self.factory.prepare_token_accounts(pool, seed_a, seed_b)
            create_ixs.append(self.factory.cp_create_pool(pool, layout.position.pubkey(), seed_liquidity))
            plan.groups.append(
                InstructionGroup(label="create pool", instructions=create_ixs, extra_signers=[layout.position])
            )

        verified: Dict[str, Tuple[int, int]] = {}

        async def verified_slots() -> Tuple[int, int]:
            if "slots" in verified:
                return verified["slots"]
            if self.overrides is not None:
                self.overrides.remember(intent.source_mint, pool.address, intent.family, intent.quote_mint)

            # The create step already moved the seed out of the wallet
            seed_source, seed_quote = self._to_slots(layout, seed_a, seed_b)
            source = await self._verified_amount(
                intent.source_mint, source_program, intent.source_amount - seed_source, haircut=intent.single_sided
            )
            quote = 0
            if intent.quote_amount:
                quote = await self._verified_amount(
                    intent.quote_mint, quote_program, intent.quote_amount - seed_quote, haircut=False
                )

            amount_a, amount_b = self._to_slots(layout, source, quote)
            self._track_spend(plan, pool, PoolSlot.A, amount_a + seed_a)
            self._track_spend(plan, pool, PoolSlot.B, amount_b + seed_b)
            verified["slots"] = (amount_a, amount_b)
            return amount_a, amount_b

        if isinstance(pool, BinPool):
            total = len(layout.chunks)
            for index, ((lower, upper), position) in enumerate(zip(layout.chunks, layout.chunk_positions)):

                async def build_chunk(index=index, lower=lower, upper=upper, position=position) -> List[Instruction]:
                    amount_x, amount_y = await verified_slots()
                    x, y = split_deposit(layout.chunks, pool.active_bin_id, amount_x, amount_y)[index]
                    return self._bin_deposit_instructions(pool, position.pubkey(), lower, upper, x, y)

                plan.groups.append(
                    InstructionGroup(
                        label=self._chunk_label("deposit", index + 1, total),
                        extra_signers=[position],
                        builder=build_chunk,
                    )
                )
        else:

            async def build_deposit() -> List[Instruction]:
                amount_a, amount_b = await verified_slots()
                return self.factory.compute_budget() + self.factory.prepare_token_accounts(
                    pool, amount_a, amount_b
                ) + self._cp_deposit_instructions(layout, amount_a, amount_b)

            plan.groups.append(InstructionGroup(label="deposit", builder=build_deposit))
        return plan

    async def _plan_launch(self, intent: LaunchIntent) -> TransactionPlan:
        await self._require_relay()

        pool_intent = intent.pool
        underlying_program = token_program_of(intent.underlying_program)
        quote_program = await self._mint_program(pool_intent.quote_mint)
        if pool_intent.quote_amount:
            await self._require_balance(pool_intent.quote_mint, quote_program, pool_intent.quote_amount)
        await self._require_balance(intent.underlying_mint, underlying_program, intent.wrap_amount)

        rift = intent.rift_address
        rift_mint = intent.rift_mint
        minted = min_rift_out(intent.wrap_amount, intent.transfer_fee_bps)
        if pool_intent.source_amount > minted:
            raise ValueError(
                f"Pool deposit {pool_intent.source_amount} exceeds the {minted} rift tokens the wrap guarantees"
            )

        wrap_ixs = self.factory.compute_budget() + [
            self.factory.rift_create(
                intent.underlying_mint,
                intent.vanity_seed,
                intent.transfer_fee_bps,
                partner_wallet=intent.partner_wallet,
                rift_name=intent.rift_name,
                prefix_type=intent.prefix_type,
                underlying_program=underlying_program,
            ),
            self.factory.create_ata(intent.underlying_mint, underlying_program),
        ]
        if intent.underlying_mint == WSOL_MINT:
            wrap_ixs += self.factory.fund_wsol(intent.wrap_amount, create=False)
        wrap_ixs += [
            self.factory.create_ata(rift_mint, TOKEN_2022_PROGRAM_ID),
            self.factory.rift_wrap(
                rift, intent.underlying_mint, rift_mint, intent.wrap_amount, minted, underlying_program
            ),
        ]

        layout = self._creation_layout(pool_intent, str(TOKEN_2022_PROGRAM_ID), quote_program)
        pool = layout.pool
        # The mint does not exist yet, so the fee comes from the launch parameters
        source = pool_intent.source_amount
        if pool_intent.single_sided:
            source -= transfer_fee(source, intent.transfer_fee_bps)
        amount_a, amount_b = self._to_slots(layout, source, pool_intent.quote_amount)

        groups = [InstructionGroup(label="create rift + wrap", instructions=wrap_ixs)]
        if isinstance(pool, BinPool):
            groups.append(
                InstructionGroup(
                    label="create pool",
                    instructions=self.factory.compute_budget() + [
                        self.factory.dlmm_create_pair(pool, pool_intent.base_factor),
                        *self._chunk_bin_arrays(pool.address, layout.chunks),
                    ],
                )
            )
            split = split_deposit(layout.chunks, pool.active_bin_id, amount_a, amount_b)
            total = len(layout.chunks)
            for index, ((lower, upper), position, (x, y)) in enumerate(
                zip(layout.chunks, layout.chunk_positions, split), start=1
            ):
                groups.append(
                    InstructionGroup(
                        label=self._chunk_label("deposit", index, total),
                        instructions=self._bin_deposit_instructions(pool, position.pubkey(), lower, upper, x, y),
                        extra_signers=[position],
                    )
                )
        else:
            liquidity = cp_liquidity_for(pool, amount_a, amount_b)
            if liquidity <= 0:
                raise ValueError("Launch deposit is too small to mint liquidity")
            groups.append(
                InstructionGroup(
                    label="create pool + deposit",
                    instructions=self.factory.compute_budget()
                    + self.factory.prepare_token_accounts(pool, amount_a, amount_b)
                    + [self.factory.cp_create_pool(pool, layout.position.pubkey(), liquidity)],
                    extra_signers=[layout.position],
                )
            )

        if len(groups) > self.max_bundle_txs:
            raise PartialBundleUnavailableError(
                f"launch needs {len(groups)} transactions, relay accepts {self.max_bundle_txs}"
            )

        plan = TransactionPlan(
            label=f"launch rift {rift_mint[:8]}",
            bundling_mode=BundlingMode.ATOMIC_BUNDLE,
            groups=groups,
            pool_address=pool.address,
        )
        self._track_spend(plan, pool, PoolSlot.B if layout.source_is_a else PoolSlot.A, pool_intent.quote_amount)
        if intent.underlying_mint != WSOL_MINT:
            underlying_account = self._token_account(intent.underlying_mint, str(underlying_program))
            plan.balance_deltas[underlying_account] = -intent.wrap_amount
        if self.overrides is not None:
            overrides = self.overrides
            plan.on_complete.append(
                lambda: overrides.remember(pool_intent.source_mint, pool.address, pool_intent.family, pool_intent.quote_mint)
            )
        return plan

    # =========================================================================
    # CREATION HELPERS
    # =========================================================================

    def _creation_layout(self, intent: CreatePoolIntent, source_program: str, quote_program: str) -> _CreationLayout:
        quote = intent.creation_quote
        source_is_a = intent.source_mint == quote.token_a_mint
        decimals_a, decimals_b = (
            (intent.source_decimals, intent.quote_decimals)
            if source_is_a
            else (intent.quote_decimals, intent.source_decimals)
        )
        program_a, program_b = (source_program, quote_program) if source_is_a else (quote_program, source_program)
        position = Keypair()

        if intent.family is PoolFamily.BIN_BASED:
            active_id = bin_id_from_price(quote.stored_price, intent.bin_step, decimals_a, decimals_b)
            pool = self.factory.projected_bin_pool(
                quote.token_a_mint,
                quote.token_b_mint,
                intent.bin_step,
                active_id,
                fee_bps=intent.base_factor * intent.bin_step // BPS_DENOMINATOR,
                token_x_program=program_a,
                token_y_program=program_b,
            )
            if intent.single_sided:
                lower, upper = single_sided_range(active_id, intent.range_bins, source_is_a)
            else:
                lower, upper = balanced_range(active_id, intent.range_bins)
            chunks = chunk_range(lower, upper, self.bins_per_position)
            positions = [position] + [Keypair() for _ in chunks[1:]]
            return _CreationLayout(pool, source_is_a, position, chunks, positions)

        sqrt_price = sqrt_price_q64(quote.stored_price, decimals_a, decimals_b)
        if intent.single_sided:
            sqrt_min, sqrt_max = single_sided_sqrt_range(sqrt_price, source_is_a)
        else:
            sqrt_min, sqrt_max = MIN_SQRT_PRICE, MAX_SQRT_PRICE
        pool = self.factory.projected_cp_pool(
            quote.token_a_mint,
            quote.token_b_mint,
            sqrt_price,
            sqrt_min,
            sqrt_max,
            fee_bps=intent.fee_bps,
            token_a_program=program_a,
            token_b_program=program_b,
        )
        return _CreationLayout(pool, source_is_a, position)

    def _cp_deposit_instructions(self, layout: _CreationLayout, amount_a: int, amount_b: int) -> List[Instruction]:
        pool, position = layout.pool, layout.position.pubkey()
        liquidity = cp_liquidity_for(pool, amount_a, amount_b)
        if liquidity <= 0:
            return []
        return [self.factory.cp_add_liquidity(pool, position, liquidity, amount_a, amount_b)]

    def _bin_deposit_instructions(
        self,
        pool: BinPool,
        position: Pubkey,
        lower: int,
        upper: int,
        amount_x: int,
        amount_y: int,
        bin_arrays: Iterable[Instruction] = (),
    ) -> List[Instruction]:
        """One transaction's worth: fund, create missing bin arrays, open a position, deposit."""
        return (
            self.factory.compute_budget()
            + self.factory.prepare_token_accounts(pool, amount_x, amount_y)
            + list(bin_arrays)
            + [
                self.factory.dlmm_init_position(pool.address, position, lower, upper - lower + 1),
                self.factory.dlmm_add_liquidity(pool, position, amount_x, amount_y, lower, upper),
            ]
        )

    async def _bin_add_groups(
        self, pool: BinPool, lower: int, upper: int, amount_x: int, amount_y: int
    ) -> List[InstructionGroup]:
        """Wide ranges become one position per chunk of `bins_per_position` bins."""
        chunks = chunk_range(lower, upper, self.bins_per_position)
        split = split_deposit(chunks, pool.active_bin_id, amount_x, amount_y)
        planned: set = set()
        groups = []
        for index, ((low, high), (x, y)) in enumerate(zip(chunks, split), start=1):
            position = Keypair()
            arrays = await self._missing_bin_arrays(pool.address, low, high, planned)
            groups.append(
                InstructionGroup(
                    label=self._chunk_label("deposit", index, len(chunks)),
                    instructions=self._bin_deposit_instructions(pool, position.pubkey(), low, high, x, y, arrays),
                    extra_signers=[position],
                )
            )
        if len(chunks) > 1:
            Logger.info(f"[PLAN] Range {lower}..{upper} split into {len(chunks)} positions")
        return groups

    def _chunk_bin_arrays(self, lb_pair: str, chunks: List[Tuple[int, int]]) -> List[Instruction]:
        """Every bin array any chunk touches, for a pool that does not exist yet."""
        indexes = set()
        for lower, upper in chunks:
            low, high = self.factory.bin_array_indexes(lower, upper)
            indexes.update(range(low, high + 1))
        return [self.factory.dlmm_init_bin_array(lb_pair, index) for index in sorted(indexes)]

    @staticmethod
    def _chunk_label(label: str, index: int, total: int) -> str:
        return label if total == 1 else f"{label} {index}/{total}"

    @staticmethod
    def _to_slots(layout: _CreationLayout, source: int, quote: int) -> Tuple[int, int]:
        return (source, quote) if layout.source_is_a else (quote, source)

    @staticmethod
    def _seed(amount: int) -> int:
        return max(amount // CP_SEED_DIVISOR, 1) if amount > 0 else 0

    async def _bundle_fits(self, transactions: int) -> bool:
        if self.relay is None or transactions > self.max_bundle_txs:
            return False
        return await self.relay.is_available()

    async def _mint_program(self, mint: str) -> str:
        return (await self.tokens.get_mint_info(mint)).program_id

    async def _missing_bin_arrays(
        self, lb_pair: str, lower: int, upper: int, planned: Optional[set] = None
    ) -> List[Instruction]:
        """Init instructions for bin arrays that neither exist nor are already planned."""
        planned = set() if planned is None else planned
        low, high = self.factory.bin_array_indexes(lower, upper)
        missing = []
        for index in range(low, high + 1):
            if index in planned:
                continue
            if await self.rpc.get_account_info(str(pdas.dlmm_bin_array(lb_pair, index))) is None:
                missing.append(self.factory.dlmm_init_bin_array(lb_pair, index))
                planned.add(index)
        return missing

    # =========================================================================
    # BALANCES
    # =========================================================================

    def _token_account(self, mint: str, program: str) -> str:
        return str(self.factory.ata(mint, token_program_of(program)))

    async def _read_balance(self, account: str) -> int:
        if self.reconciler is not None:
            return await self.reconciler.read(account, lambda: self.rpc.get_token_account_balance(account))
        return await self.rpc.get_token_account_balance(account) or 0

    async def _require_balance(self, mint: str, program, required: int) -> None:
        """Pre-flight check; native SOL is funded into WSOL at build time and is not checked here."""
        if mint == WSOL_MINT or required <= 0:
            return
        available = await self._read_balance(self._token_account(mint, str(program)))
        if available < required:
            raise InsufficientBalanceError(mint, required, available)

    async def _verified_amount(self, mint: str, program: str, nominal: int, haircut: bool) -> int:
        """
        Re-read the depositor's balance after the create step.

        Retries while the balance is not yet visible or short of the nominal
        amount; deposits min(nominal, actual), less the transfer fee when
        the deposit is single-sided.
        """
        if mint == WSOL_MINT:
            return nominal

        account = self._token_account(mint, program)
        balance = None
        for attempt in range(1, self.recheck_attempts + 1):
            balance = await self.rpc.get_token_account_balance(account)
            if balance is not None and balance >= nominal:
                break
            Logger.debug(f"[PLAN] Balance recheck {attempt}/{self.recheck_attempts} for {mint[:8]}: {balance}")
            if attempt < self.recheck_attempts:
                await self._sleep(self.recheck_delay_s)

        if not balance:
            raise InsufficientBalanceError(mint, nominal, balance or 0)

        amount = min(nominal, balance)
        if amount < nominal:
            Logger.warning(f"[PLAN] {mint[:8]} balance {balance} below nominal {nominal}; depositing {amount}")
        if haircut:
            amount = await self.tokens.haircut(mint, amount)
        return amount

    def _track_spend(self, plan: TransactionPlan, pool: Pool, slot: PoolSlot, amount: int) -> None:
        mint = mint_in_slot(pool, slot)
        if amount <= 0 or mint == WSOL_MINT:
            return
        account = self._token_account(mint, program_in_slot(pool, slot))
        plan.balance_deltas[account] = -amount

    def _apply_balance_deltas(self, plan: TransactionPlan) -> None:
        if self.reconciler is None:
            return
        for account, delta in plan.balance_deltas.items():
            self.reconciler.apply_delta(account, delta)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_plan(self, plan: TransactionPlan) -> PlanExecutionResult:
        if plan.is_atomic:
            result = await self._execute_bundle(plan)
        else:
            result = PlanExecutionResult(plan_label=plan.label)
            total = len(plan.groups)
            for index, group in enumerate(plan.groups, start=1):
                instructions = group.instructions or await group.builder()
                record = await self._send(instructions, group.extra_signers, f"{group.label} ({index}/{total})")
                result.records.append(record)
                if not record.confirmed:
                    break

        if result.completed:
            self._apply_balance_deltas(plan)
            for callback in plan.on_complete:
                callback()
            Logger.success(f"[EXEC] '{plan.label}' complete")
        return result

    async def _sign(self, instructions: List[Instruction], extra_signers: List[Keypair], blockhash: str) -> VersionedTransaction:
        valid, errors = self.factory.validate_instructions(instructions)
        if not valid:
            raise ValueError(f"Invalid transaction: {'; '.join(errors)}")
        message = compile_message(self.signer.pubkey, instructions, blockhash)
        return self.signer.sign_transaction(message, extra_signers)

    async def _simulate(self, tx: VersionedTransaction) -> None:
        result = await self.rpc.simulate_transaction(bytes(tx))
        err = result.get("err")
        if err:
            logs = result.get("logs") or []
            raise SimulationFailedError(decode_program_error(err, logs), logs)

    async def _send(self, instructions: List[Instruction], extra_signers: List[Keypair], label: str) -> ConfirmationRecord:
        blockhash = await self.rpc.get_latest_blockhash()
        tx = await self._sign(instructions, extra_signers, blockhash)
        if self.simulate:
            await self._simulate(tx)

        Logger.info(f"[EXEC] Submitting {label}")
        record = await self.tracker.confirm(await self.tracker.submit(tx))
        self._raise_if_failed(record)
        if record.status is ConfirmationStatus.TIMED_OUT:
            Logger.warning(f"[EXEC] {label} timed out; stopping until on-chain state is verified")
        return record

    @staticmethod
    def _raise_if_failed(record: ConfirmationRecord) -> None:
        if record.status is ConfirmationStatus.FAILED:
            raise OnChainExecutionError(record.signature, record.error or "unknown error", record.raw_error)

    async def _require_relay(self) -> None:
        if self.relay is None:
            raise PartialBundleUnavailableError("no bundle relay configured")
        if not await self.relay.is_available():
            raise PartialBundleUnavailableError("bundle relay is not reachable")

    async def _execute_bundle(self, plan: TransactionPlan) -> PlanExecutionResult:
        await self._require_relay()
        if len(plan.groups) > self.max_bundle_txs:
            raise PartialBundleUnavailableError(
                f"plan has {len(plan.groups)} transactions, relay accepts {self.max_bundle_txs}"
            )
        if any(group.is_deferred for group in plan.groups):
            raise ValueError("Atomic plans cannot contain deferred groups")

        tip_account = await self.relay.get_random_tip_account()
        blockhash = await self.rpc.get_latest_blockhash()
        last = len(plan.groups) - 1
        txs = []
        for index, group in enumerate(plan.groups):
            instructions = list(group.instructions)
            if index == last:
                instructions.append(self.factory.tip(tip_account=tip_account))
            txs.append(await self._sign(instructions, group.extra_signers, blockhash))

        if self.simulate:
            await self._simulate(txs[0])

        bundle_id = await self.relay.submit_bundle([encode_base58(tx) for tx in txs])
        if not bundle_id:
            raise PartialBundleUnavailableError("relay did not accept the bundle")
        Logger.info(f"[JITO] Bundle {bundle_id[:16]}... submitted ({len(txs)} txs)")

        landed = await self.relay.wait_for_landing(bundle_id)
        result = PlanExecutionResult(plan_label=plan.label, bundle_id=bundle_id)
        for tx in txs:
            record = ConfirmationRecord(signature=first_signature(tx), submitted_at=time.time())
            record = await self.tracker.confirm(record, max_attempts=None if landed else 1)
            result.records.append(record)
            self._raise_if_failed(record)

        if not landed and not result.completed:
            Logger.warning(f"[JITO] Bundle {bundle_id[:16]}... not seen landing; verify before retrying")
        return result

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def execute_withdrawal(
        self,
        positions: List[Position],
        mode: WithdrawalMode,
        pct: Optional[float] = None,
        selected: Optional[Iterable[str]] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> PlanExecutionResult:
        """
        Plan and run a withdrawal, one transaction at a time.

        `progress(current, total, status_text)` is called before each
        transaction and once more when everything has confirmed.
        """
        plan = self.planner.plan(positions, mode, pct=pct, selected=selected)
        result = PlanExecutionResult(plan_label=f"withdraw {mode.value.lower()}")
        if plan.is_empty:
            Logger.info("[WITHDRAW] Nothing to withdraw")
            return result

        by_address: Dict[str, Position] = {p.address: p for p in positions}
        pools: Dict[str, Pool] = {}

        for current, total, status, tx in plan.iter_progress():
            if progress is not None:
                progress(current, total, status)
            if tx.pool_address not in pools:
                pools[tx.pool_address] = await self.quotes.classifier.classify(tx.pool_address)

            instructions = self.factory.withdrawal_instructions(pools[tx.pool_address], tx, by_address)
            record = await self._send(instructions, [], status)
            result.records.append(record)
            if not record.confirmed:
                return result

        if progress is not None:
            progress(plan.total, plan.total, "Withdrawal complete")
        Logger.success(f"[WITHDRAW] {plan.total} transaction(s) confirmed")
        return result

    # =========================================================================
    # FEES
    # =========================================================================

    def build_fee_claim(
        self,
        rift: str,
        underlying_mint: str,
        state: VaultFeeState,
        entered_amount: float,
        underlying_program: Pubkey = TOKEN_PROGRAM_ID,
    ) -> TransactionPlan:
        """
        Distribute enough of the fee vault that the caller receives
        `entered_amount` (in "my share" terms).
        """
        entry = self.ledger.compute_claimable(state, self.owner)
        amount = self.ledger.distribution_amount(entry, entered_amount)
        if amount <= 0:
            raise InsufficientBalanceError(underlying_mint, int(entered_amount), entry.caller_claimable)

        ixs = self.factory.compute_budget() + [
            self.factory.rift_distribute_fees(
                rift,
                underlying_mint,
                amount,
                treasury=state.treasury,
                partner=state.partner,
                underlying_program=underlying_program,
            )
        ]
        return TransactionPlan(
            label=f"distribute {amount} fees from {state.vault_id[:8]}",
            bundling_mode=BundlingMode.SEQUENTIAL,
            groups=[InstructionGroup(label="distribute fees", instructions=ixs)],
        )
