"""
LiquidityOrchestrator Unit Tests
================================
Intent -> plan -> execution against mock RPC, relay and wallet.

Every collaborator is a fake: nothing here touches the network.
"""

import base58
import pytest
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from src.liquidity import pdas
from src.liquidity.balance_reconciler import BalanceReconciler
from src.liquidity.cache_store import InMemoryCacheStore, PoolOverrides
from src.liquidity.confirmation_tracker import ConfirmationTracker
from src.liquidity.constants import TOKEN_PROGRAM_ID, WSOL_MINT
from src.liquidity.errors import (
    InsufficientBalanceError,
    OnChainExecutionError,
    PartialBundleUnavailableError,
    PoolNoLongerSingleSidedError,
    SimulationFailedError,
    StaleQuoteError,
)
from src.liquidity.instruction_factory import anchor_discriminator
from src.liquidity.orchestrator import LiquidityOrchestrator
from src.liquidity.pool_classifier import PoolClassifier
from src.liquidity.quote_engine import QuoteEngine
from src.liquidity.token_standards import TokenStandards
from src.liquidity.types import (
    AddLiquidityIntent,
    BinPosition,
    BundlingMode,
    CreatePoolIntent,
    InstructionGroup,
    LaunchIntent,
    PoolFamily,
    PoolSlot,
    TransactionPlan,
    VaultFeeState,
    WithdrawalMode,
)
from src.liquidity.withdrawal_planner import WithdrawalPlanner
from tests.mocks import MockBundleRelay, new_address
from tests.mocks.mock_rpc import token_2022_mint

FAILED_SLIPPAGE = {"confirmationStatus": "confirmed", "err": {"InstructionError": [4, {"Custom": 6003}]}}


def make_orchestrator(rpc, signer, prices, no_sleep, relay=None, **kwargs):
    tokens = TokenStandards(rpc)
    quotes = QuoteEngine(PoolClassifier(rpc), prices, tokens, stale_tolerance_bps=100)
    tracker = ConfirmationTracker(rpc, poll_interval_s=0, max_attempts=2, sleep=no_sleep)
    kwargs.setdefault("planner", WithdrawalPlanner(bins_per_tx=50, positions_per_tx=4))
    return LiquidityOrchestrator(
        rpc, signer, quotes, tokens, tracker,
        relay=relay, recheck_attempts=5, recheck_delay_s=0, sleep=no_sleep, **kwargs
    )


def fund(rpc, orch, mint, values, program=TOKEN_PROGRAM_ID):
    account = orch.factory.ata(mint, program)
    rpc.set_balance(account, values)
    return str(account)


def discriminators(instructions):
    return [bytes(ix.data[:8]) for ix in instructions]


def sent_instruction_data(tx, name):
    """Data of the first compiled instruction in a sent transaction with the given Anchor name."""
    prefix = anchor_discriminator(name)
    return next(bytes(ix.data) for ix in tx.message.instructions if bytes(ix.data)[:8] == prefix)


def u64_at(data, offset):
    return int.from_bytes(data[offset:offset + 8], "little")


@pytest.fixture
def overrides():
    return PoolOverrides(InMemoryCacheStore())


@pytest.fixture
def orch(rpc, signer, prices, no_sleep, relay, overrides):
    return make_orchestrator(rpc, signer, prices, no_sleep, relay=relay, overrides=overrides)


# =============================================================================
# ADD LIQUIDITY
# =============================================================================


@pytest.mark.unit
class TestAddLiquidity:

    @pytest.mark.asyncio
    async def test_two_sided_constant_product(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_cp_pool(a, b, 10_000_000, 20_000_000)
        account_a = fund(rpc, orch, a, 1_000_000)
        account_b = fund(rpc, orch, b, 2_000_000)
        quote = await orch.quotes.quote(address, 1_000_000, PoolSlot.A)

        plan = await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner))

        assert plan.bundling_mode is BundlingMode.SEQUENTIAL
        assert len(plan.groups) == 1
        assert len(plan.groups[0].extra_signers) == 1
        assert anchor_discriminator("add_liquidity") in discriminators(plan.groups[0].instructions)
        assert plan.balance_deltas == {account_a: -1_000_000, account_b: -2_000_000}

        result = await orch.execute_plan(plan)

        assert result.completed
        assert len(rpc.sent) == 1

    @pytest.mark.asyncio
    async def test_insufficient_balance_blocks_before_submission(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_cp_pool(a, b, 10_000, 20_000)
        fund(rpc, orch, a, 1_000)
        fund(rpc, orch, b, 5)
        quote = await orch.quotes.quote(address, 1_000, PoolSlot.A)

        with pytest.raises(InsufficientBalanceError) as exc:
            await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner))

        assert exc.value.required == 2_000
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_single_sided_bin_pool(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_dlmm_pool(a, b, 1_000, 1_000, active_id=5)
        account_a = fund(rpc, orch, a, 500)
        quote = await orch.quotes.quote(address, 500, PoolSlot.A, single_sided=True)

        plan = await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner, single_sided=True))
        ixs = plan.groups[0].instructions
        kinds = discriminators(ixs)

        assert kinds.count(anchor_discriminator("initialize_bin_array")) == 2
        assert anchor_discriminator("initialize_position") in kinds
        add = ixs[kinds.index(anchor_discriminator("add_liquidity_by_strategy"))]
        # amount_x, amount_y, active id, then the range above the active bin
        assert bytes(add.data[8:24]) == (500).to_bytes(8, "little") + (0).to_bytes(8, "little")
        assert bytes(add.data[32:40]) == (6).to_bytes(4, "little") + (15).to_bytes(4, "little")
        assert plan.balance_deltas == {account_a: -500}

        assert (await orch.execute_plan(plan)).completed

    @pytest.mark.asyncio
    async def test_two_sided_quote_deposited_single_sided_takes_transfer_fee(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_dlmm_pool(a, b, 1_000, 1_000, active_id=5)
        rpc.set_parsed_account(a, token_2022_mint(fee_bps=100))
        fund(rpc, orch, a, 500)
        quote = await orch.quotes.quote(address, 500, PoolSlot.A)

        plan = await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner, single_sided=True))
        ixs = plan.groups[0].instructions
        add = ixs[discriminators(ixs).index(anchor_discriminator("add_liquidity_by_strategy"))]

        # 1% of 500 stays with the token's fee collector
        assert u64_at(add.data, 8) == 495
        assert u64_at(add.data, 16) == 0

    @pytest.mark.asyncio
    async def test_wide_range_split_into_bundled_positions(self, rpc, orch, relay, mint_pair):
        a, b = mint_pair
        address = rpc.add_dlmm_pool(a, b, 1_000, 1_000, active_id=5)
        fund(rpc, orch, a, 1_200)
        quote = await orch.quotes.quote(address, 1_200, PoolSlot.A, single_sided=True)

        plan = await orch.build_plan(
            AddLiquidityIntent(quote, owner=orch.owner, single_sided=True, range_bins=120)
        )

        assert plan.bundling_mode is BundlingMode.ATOMIC_BUNDLE
        assert [g.label for g in plan.groups] == ["deposit 1/3", "deposit 2/3", "deposit 3/3"]
        assert all(len(g.extra_signers) == 1 for g in plan.groups)
        ranges, amounts, arrays = [], [], 0
        for group in plan.groups:
            kinds = discriminators(group.instructions)
            arrays += kinds.count(anchor_discriminator("initialize_bin_array"))
            add = group.instructions[kinds.index(anchor_discriminator("add_liquidity_by_strategy"))]
            ranges.append((int.from_bytes(add.data[32:36], "little"), int.from_bytes(add.data[36:40], "little")))
            amounts.append(u64_at(add.data, 8))
        assert ranges == [(6, 55), (56, 105), (106, 125)]
        assert amounts == [500, 500, 200]
        # arrays 0, 1 and 2, each initialized once
        assert arrays == 3

        result = await orch.execute_plan(plan)

        assert result.completed
        assert len(relay.bundles) == 1 and len(relay.bundles[0]) == 3
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_wide_range_without_relay_goes_sequential(self, rpc, signer, prices, no_sleep, mint_pair):
        orch = make_orchestrator(rpc, signer, prices, no_sleep, relay=None)
        a, b = mint_pair
        address = rpc.add_dlmm_pool(a, b, 1_000, 1_000, active_id=5)
        fund(rpc, orch, a, 1_200)
        quote = await orch.quotes.quote(address, 1_200, PoolSlot.A, single_sided=True)

        plan = await orch.build_plan(
            AddLiquidityIntent(quote, owner=orch.owner, single_sided=True, range_bins=120)
        )
        result = await orch.execute_plan(plan)

        assert plan.bundling_mode is BundlingMode.SEQUENTIAL
        assert result.completed
        assert len(rpc.sent) == 3

    @pytest.mark.asyncio
    async def test_stale_quote_rejected(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_cp_pool(a, b, 1_000, 2_000)
        quote = await orch.quotes.quote(address, 10, PoolSlot.A)
        pool = await orch.quotes.classifier.classify(address)
        rpc.set_vault_amount(pool.vault_b, b, 3_000)

        with pytest.raises(StaleQuoteError):
            await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner))

    @pytest.mark.asyncio
    async def test_single_sided_cp_after_counter_accrued(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_cp_pool(a, b, 1_000, 7)
        fund(rpc, orch, a, 100)
        quote = await orch.quotes.quote(address, 100, PoolSlot.A, single_sided=True)

        with pytest.raises(PoolNoLongerSingleSidedError) as exc:
            await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner, single_sided=True))

        assert exc.value.counter_reserve == 7

    @pytest.mark.asyncio
    async def test_unsupported_intent(self, orch):
        with pytest.raises(TypeError):
            await orch.build_plan(object())


# =============================================================================
# CREATE POOL (SEQUENTIAL, DEFERRED DEPOSIT)
# =============================================================================


@pytest.mark.unit
class TestCreatePool:

    def _intent(self, orch, family, source, quote, source_amount, quote_amount, price=0.5):
        creation = orch.quotes.manual_creation_quote(source, quote, price)
        return CreatePoolIntent(
            family=family,
            owner=orch.owner,
            creation_quote=creation,
            source_amount=source_amount,
            quote_amount=quote_amount,
        )

    @pytest.mark.asyncio
    async def test_constant_product_seed_then_verified_top_up(self, rpc, orch, overrides, no_sleep, mint_pair):
        low, high = mint_pair
        intent = self._intent(orch, PoolFamily.CONSTANT_PRODUCT, source=high, quote=low,
                              source_amount=1_000_000, quote_amount=500_000)
        # preflight read, then the post-create re-read lags once
        fund(rpc, orch, high, [1_000_000, None, 1_000_000])
        fund(rpc, orch, low, 500_000)

        plan = await orch.build_plan(intent)

        assert [g.label for g in plan.groups] == ["create pool", "deposit"]
        assert not plan.groups[0].is_deferred
        assert plan.groups[1].is_deferred
        assert anchor_discriminator("initialize_customizable_pool") in discriminators(plan.groups[0].instructions)

        result = await orch.execute_plan(plan)

        assert result.completed
        assert len(rpc.sent) == 2
        assert no_sleep.await_count == 1
        assert overrides.lookup(high)["pool_address"] == plan.pool_address

    @pytest.mark.asyncio
    async def test_top_up_is_balance_left_after_seed(self, rpc, orch, no_sleep, mint_pair):
        low, high = mint_pair
        intent = self._intent(orch, PoolFamily.CONSTANT_PRODUCT, source=low, quote=high,
                              source_amount=1_000_000, quote_amount=0)
        # whole balance deposited: the create step takes the 1% seed
        account = fund(rpc, orch, low, [1_000_000, 990_000])

        result = await orch.execute_plan(await orch.build_plan(intent))
        top_up = sent_instruction_data(rpc.sent[1], "add_liquidity")

        assert result.completed
        assert no_sleep.await_count == 0
        assert rpc.balance_reads.count(account) == 2
        # max_a after the 16-byte liquidity delta
        assert u64_at(top_up, 24) == 990_000
        assert u64_at(top_up, 32) == 0

    @pytest.mark.asyncio
    async def test_wide_bin_pool_deposit_chunks_share_one_balance_read(self, rpc, orch, mint_pair):
        low, high = mint_pair
        intent = CreatePoolIntent(
            family=PoolFamily.BIN_BASED,
            owner=orch.owner,
            creation_quote=orch.quotes.manual_creation_quote(low, high, 1.0),
            source_amount=2_000_000,
            range_bins=120,
        )
        account = fund(rpc, orch, low, 2_000_000)

        plan = await orch.build_plan(intent)

        assert [g.label for g in plan.groups] == ["create pool", "deposit 1/3", "deposit 2/3", "deposit 3/3"]
        assert all(g.is_deferred for g in plan.groups[1:])
        assert len({id(g.extra_signers[0]) for g in plan.groups[1:]}) == 3

        result = await orch.execute_plan(plan)
        deposits = [sent_instruction_data(tx, "add_liquidity_by_strategy") for tx in rpc.sent[1:]]

        assert result.completed
        assert len(rpc.sent) == 4
        assert rpc.balance_reads.count(account) == 2
        assert [u64_at(data, 8) for data in deposits] == [833_333, 833_333, 333_334]

    @pytest.mark.asyncio
    async def test_deposit_not_built_when_create_times_out(self, rpc, orch, overrides, mint_pair):
        low, high = mint_pair
        intent = self._intent(orch, PoolFamily.CONSTANT_PRODUCT, source=high, quote=low,
                              source_amount=1_000_000, quote_amount=500_000)
        fund(rpc, orch, high, 1_000_000)
        fund(rpc, orch, low, 500_000)
        rpc.outcomes = [None]

        plan = await orch.build_plan(intent)
        result = await orch.execute_plan(plan)

        assert not result.completed
        assert len(result.records) == 1
        assert len(rpc.sent) == 1
        assert overrides.lookup(high) is None

    @pytest.mark.asyncio
    async def test_missing_balance_after_create(self, rpc, orch, mint_pair):
        low, high = mint_pair
        intent = self._intent(orch, PoolFamily.CONSTANT_PRODUCT, source=low, quote=high,
                              source_amount=1_000_000, quote_amount=0)
        fund(rpc, orch, low, [1_000_000, 0])

        plan = await orch.build_plan(intent)

        with pytest.raises(InsufficientBalanceError):
            await orch.execute_plan(plan)
        assert len(rpc.sent) == 1

    @pytest.mark.asyncio
    async def test_bin_pool_single_sided(self, rpc, orch, mint_pair):
        low, high = mint_pair
        intent = self._intent(orch, PoolFamily.BIN_BASED, source=low, quote=high,
                              source_amount=2_000_000, quote_amount=0, price=1.0)
        fund(rpc, orch, low, 2_000_000)

        plan = await orch.build_plan(intent)
        create_kinds = discriminators(plan.groups[0].instructions)

        assert plan.pool_address == str(pdas.dlmm_lb_pair(low, high))
        assert anchor_discriminator("initialize_customizable_permissionless_lb_pair") in create_kinds
        assert create_kinds.count(anchor_discriminator("initialize_bin_array")) == 2
        assert len(plan.groups[1].extra_signers) == 1

        result = await orch.execute_plan(plan)

        assert result.completed
        assert len(rpc.sent) == 2

    @pytest.mark.asyncio
    async def test_reconciler_sees_spend_immediately(self, rpc, signer, prices, no_sleep, relay, mint_pair):
        low, high = mint_pair
        reconciler = BalanceReconciler(InMemoryCacheStore(), freshness_window_s=30)
        orch = make_orchestrator(rpc, signer, prices, no_sleep, relay=relay, reconciler=reconciler)
        intent = self._intent(orch, PoolFamily.CONSTANT_PRODUCT, source=low, quote=high,
                              source_amount=1_000_000, quote_amount=400_000)
        source_account = fund(rpc, orch, low, 1_000_000)
        fund(rpc, orch, high, 400_000)

        await orch.execute_plan(await orch.build_plan(intent))

        cached = reconciler.cached(source_account)
        assert cached.value == 0
        assert cached.last_optimistic_update_at is not None


# =============================================================================
# LAUNCH (ATOMIC BUNDLE)
# =============================================================================


@pytest.mark.unit
class TestLaunch:

    def _intent(self, orch, family=PoolFamily.CONSTANT_PRODUCT, source_amount=900_000, seed=b"rift", range_bins=10):
        underlying = new_address()
        rift_mint = str(pdas.rift_mint_address(underlying, orch.owner, seed))
        creation = orch.quotes.manual_creation_quote(rift_mint, WSOL_MINT, 0.001)
        pool = CreatePoolIntent(
            family=family, owner=orch.owner, creation_quote=creation, source_amount=source_amount, range_bins=range_bins
        )
        return LaunchIntent(underlying_mint=underlying, vanity_seed=seed, wrap_amount=1_000_000, pool=pool)

    @pytest.mark.asyncio
    async def test_constant_product_launch_is_one_bundle(self, rpc, orch, relay, overrides):
        intent = self._intent(orch)
        underlying_account = fund(rpc, orch, intent.underlying_mint, 1_000_000)

        plan = await orch.build_plan(intent)

        assert plan.is_atomic
        assert [g.label for g in plan.groups] == ["create rift + wrap", "create pool + deposit"]
        first = discriminators(plan.groups[0].instructions)
        assert anchor_discriminator("create_rift_with_vanity_pda") in first
        assert anchor_discriminator("wrap_tokens") in first
        assert plan.balance_deltas == {underlying_account: -1_000_000}

        result = await orch.execute_plan(plan)

        assert result.completed
        assert result.bundle_id
        assert rpc.sent == []
        assert len(relay.bundles) == 1 and len(relay.bundles[0]) == 2
        assert overrides.lookup(intent.rift_mint)["pool_address"] == plan.pool_address

    @pytest.mark.asyncio
    async def test_tip_rides_in_last_transaction(self, rpc, orch, relay):
        intent = self._intent(orch)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        await orch.execute_plan(await orch.build_plan(intent))

        txs = [VersionedTransaction.from_bytes(base58.b58decode(raw)) for raw in relay.bundles[0]]
        tip = Pubkey.from_string(relay.tip_account)
        assert tip not in txs[0].message.account_keys
        assert tip in txs[-1].message.account_keys
        assert len({str(tx.message.recent_blockhash) for tx in txs}) == 1

    @pytest.mark.asyncio
    async def test_bin_pool_launch(self, rpc, orch, relay):
        intent = self._intent(orch, family=PoolFamily.BIN_BASED)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        plan = await orch.build_plan(intent)

        assert [g.label for g in plan.groups] == ["create rift + wrap", "create pool", "deposit"]
        assert (await orch.execute_plan(plan)).completed

    @pytest.mark.asyncio
    async def test_wide_bin_pool_launch_bundles_every_chunk(self, rpc, orch, relay):
        intent = self._intent(orch, family=PoolFamily.BIN_BASED, range_bins=120)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        plan = await orch.build_plan(intent)

        assert [g.label for g in plan.groups] == [
            "create rift + wrap", "create pool", "deposit 1/3", "deposit 2/3", "deposit 3/3",
        ]
        assert (await orch.execute_plan(plan)).completed
        assert len(relay.bundles[0]) == 5

    @pytest.mark.asyncio
    async def test_launch_range_too_wide_for_one_bundle(self, rpc, orch):
        intent = self._intent(orch, family=PoolFamily.BIN_BASED, range_bins=200)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        with pytest.raises(PartialBundleUnavailableError):
            await orch.build_plan(intent)
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_fails_closed_without_relay(self, rpc, signer, prices, no_sleep):
        orch = make_orchestrator(rpc, signer, prices, no_sleep, relay=None)
        intent = self._intent(orch)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        with pytest.raises(PartialBundleUnavailableError):
            await orch.build_plan(intent)
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_fails_closed_when_relay_down(self, rpc, signer, prices, no_sleep):
        orch = make_orchestrator(rpc, signer, prices, no_sleep, relay=MockBundleRelay(available=False))
        intent = self._intent(orch)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        with pytest.raises(PartialBundleUnavailableError):
            await orch.build_plan(intent)
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_rejected_bundle_is_not_split(self, rpc, orch, relay):
        intent = self._intent(orch)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)
        plan = await orch.build_plan(intent)
        relay.accept = False

        with pytest.raises(PartialBundleUnavailableError):
            await orch.execute_plan(plan)
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_bundle_size_limit(self, rpc, signer, prices, no_sleep, relay):
        orch = make_orchestrator(rpc, signer, prices, no_sleep, relay=relay, max_bundle_txs=2)
        intent = self._intent(orch, family=PoolFamily.BIN_BASED)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        with pytest.raises(PartialBundleUnavailableError):
            await orch.build_plan(intent)

    @pytest.mark.asyncio
    async def test_deposit_cannot_exceed_wrapped_amount(self, rpc, orch):
        intent = self._intent(orch, source_amount=990_000)
        fund(rpc, orch, intent.underlying_mint, 1_000_000)

        with pytest.raises(ValueError, match="exceeds"):
            await orch.build_plan(intent)

    def test_pool_must_quote_the_rift_mint(self, orch):
        creation = orch.quotes.manual_creation_quote(new_address(), WSOL_MINT, 0.001)
        pool = CreatePoolIntent(PoolFamily.CONSTANT_PRODUCT, orch.owner, creation, 100)

        with pytest.raises(ValueError, match="rift mint"):
            LaunchIntent(underlying_mint=new_address(), vanity_seed=b"x", wrap_amount=100, pool=pool)

    def test_vanity_seed_limit(self, orch):
        creation = orch.quotes.manual_creation_quote(new_address(), WSOL_MINT, 0.001)
        pool = CreatePoolIntent(PoolFamily.CONSTANT_PRODUCT, orch.owner, creation, 100)

        with pytest.raises(ValueError, match="32 bytes"):
            LaunchIntent(underlying_mint=new_address(), vanity_seed=b"x" * 33, wrap_amount=100, pool=pool)

    @pytest.mark.asyncio
    async def test_atomic_plan_rejects_deferred_groups(self, orch):
        async def later():
            return []

        plan = TransactionPlan(
            label="bad", bundling_mode=BundlingMode.ATOMIC_BUNDLE,
            groups=[InstructionGroup(label="deferred", builder=later)],
        )

        with pytest.raises(ValueError, match="deferred"):
            await orch.execute_plan(plan)


# =============================================================================
# EXECUTION OUTCOMES
# =============================================================================


@pytest.mark.unit
class TestExecution:

    async def _cp_add_plan(self, rpc, orch, mint_pair):
        a, b = mint_pair
        address = rpc.add_cp_pool(a, b, 10_000, 10_000)
        fund(rpc, orch, a, 100)
        fund(rpc, orch, b, 100)
        quote = await orch.quotes.quote(address, 100, PoolSlot.A)
        return await orch.build_plan(AddLiquidityIntent(quote, owner=orch.owner))

    @pytest.mark.asyncio
    async def test_revert_raises_decoded_error(self, rpc, orch, mint_pair):
        plan = await self._cp_add_plan(rpc, orch, mint_pair)
        rpc.outcomes = [FAILED_SLIPPAGE]

        with pytest.raises(OnChainExecutionError) as exc:
            await orch.execute_plan(plan)

        assert exc.value.reason == "Instruction 4: Price slippage exceeded"
        assert len(rpc.sent) == 1

    @pytest.mark.asyncio
    async def test_simulation_failure_blocks_send(self, rpc, signer, prices, no_sleep, mint_pair):
        orch = make_orchestrator(rpc, signer, prices, no_sleep, simulate=True)
        plan = await self._cp_add_plan(rpc, orch, mint_pair)
        rpc.simulation_result = {"err": {"InstructionError": [3, {"Custom": 1}]}, "logs": []}

        with pytest.raises(SimulationFailedError, match="Insufficient funds"):
            await orch.execute_plan(plan)
        assert rpc.sent == []
        assert len(rpc.simulated) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_reported_not_retried(self, rpc, orch, mint_pair):
        plan = await self._cp_add_plan(rpc, orch, mint_pair)
        rpc.outcomes = [None]

        result = await orch.execute_plan(plan)

        assert not result.completed
        assert result.last.status.value == "TIMED_OUT"
        assert len(rpc.sent) == 1


# =============================================================================
# WITHDRAWALS
# =============================================================================


@pytest.mark.unit
class TestWithdrawal:

    def _position(self, rpc, orch, mint_pair, bins=60):
        address = rpc.add_dlmm_pool(*mint_pair, 1_000, 1_000)
        return BinPosition(new_address(), address, orch.owner, 0, bins - 1, {b: 10 for b in range(bins)})

    @pytest.mark.asyncio
    async def test_progress_reported_per_transaction(self, rpc, orch, mint_pair):
        position = self._position(rpc, orch, mint_pair)
        calls = []

        result = await orch.execute_withdrawal(
            [position], WithdrawalMode.PERCENTAGE, pct=100, progress=lambda *args: calls.append(args)
        )

        assert result.completed
        assert len(rpc.sent) == 2
        assert [(c, t) for c, t, _ in calls] == [(1, 2), (2, 2), (2, 2)]
        assert calls[0][2].startswith("Withdrawing")
        assert calls[-1][2] == "Withdrawal complete"

    @pytest.mark.asyncio
    async def test_stops_after_unconfirmed_transaction(self, rpc, orch, mint_pair):
        position = self._position(rpc, orch, mint_pair)
        rpc.outcomes = [None]
        calls = []

        result = await orch.execute_withdrawal(
            [position], WithdrawalMode.PERCENTAGE, pct=100, progress=lambda *args: calls.append(args)
        )

        assert not result.completed
        assert len(rpc.sent) == 1
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_zero_percent_sends_nothing(self, rpc, orch, mint_pair):
        position = self._position(rpc, orch, mint_pair)
        calls = []

        result = await orch.execute_withdrawal(
            [position], WithdrawalMode.PERCENTAGE, pct=0, progress=lambda *args: calls.append(args)
        )

        assert result.records == []
        assert rpc.sent == []
        assert calls == []


# =============================================================================
# FEE CLAIMS
# =============================================================================


@pytest.mark.unit
class TestFeeClaim:

    @pytest.mark.asyncio
    async def test_share_amount_converted_to_distribution(self, rpc, orch):
        state = VaultFeeState("fees-vault", 1_000, treasury=orch.owner, partner=new_address())

        plan = orch.build_fee_claim(new_address(), new_address(), state, entered_amount=100)
        distribute = plan.groups[0].instructions[-1]

        assert bytes(distribute.data[:8]) == anchor_discriminator("distribute_fees_from_vault")
        # 100 / 0.5 = 200, less a 1-unit safety margin
        assert int.from_bytes(bytes(distribute.data[8:16]), "little") == 199
        assert (await orch.execute_plan(plan)).completed

    def test_nothing_claimable(self, orch):
        state = VaultFeeState("fees-vault", 0, treasury=orch.owner)

        with pytest.raises(InsufficientBalanceError):
            orch.build_fee_claim(new_address(), new_address(), state, entered_amount=1)
