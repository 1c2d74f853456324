"""
Instruction Factory
===================
Pure, deterministic instruction building for both AMM families and the
rift vault program.

No RPC and no wallet: everything here works from pool snapshots
(BinPool / ConstantProductPool), mints and amounts.

Responsibilities:
- ComputeBudget limits and Jito tips
- Associated token accounts and WSOL funding
- Bin AMM: pair creation, bin arrays, positions, add/remove/close
- Constant-product AMM: pool creation, positions, add/remove/close
- Rift vaults: create, wrap, fee distribution
"""

from __future__ import annotations

import hashlib
import math
import struct
from typing import Dict, List, Optional, Tuple

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import (
    create_idempotent_associated_token_account,
    get_associated_token_address,
    sync_native,
)
from spl.token.models import SyncNativeParams

from config.settings import Settings
from src.liquidity import pdas
from src.liquidity.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    BPS_DENOMINATOR,
    DAMM_V2_POOL_AUTHORITY,
    DAMM_V2_PROGRAM_ID,
    DLMM_PROGRAM_ID,
    RENT_SYSVAR_ID,
    RIFTS_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WSOL_MINT,
)
from src.liquidity.types import (
    BinPool,
    BinPosition,
    ConstantProductPool,
    PoolFamily,
    Position,
    SinglePosition,
    WithdrawalTransaction,
)
from src.shared.system.logging import Logger


def anchor_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>")."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def _pk(value) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(str(value))


def token_program_of(value: str) -> Pubkey:
    return Pubkey.from_string(value) if value else TOKEN_PROGRAM_ID


def _u128(value: int) -> bytes:
    return int(value).to_bytes(16, "little")


def _option_pubkey(value: Optional[str]) -> bytes:
    return b"\x01" + bytes(_pk(value)) if value else b"\x00"


def _meta(pubkey, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=_pk(pubkey), is_signer=signer, is_writable=writable)


# =============================================================================
# CONSTANT-PRODUCT MATH (Q64.64 sqrt prices)
# =============================================================================

MIN_SQRT_PRICE = 4295048016
MAX_SQRT_PRICE = 79226673521066979257578248091
Q64 = 1 << 64


def sqrt_price_q64(price: float, decimals_a: int, decimals_b: int) -> int:
    """UI price (token B per token A) -> clamped Q64.64 sqrt price."""
    if price <= 0:
        raise ValueError(f"Price must be positive, got {price}")
    raw = price * (10 ** (decimals_b - decimals_a))
    return min(max(int(math.sqrt(raw) * Q64), MIN_SQRT_PRICE), MAX_SQRT_PRICE)


def liquidity_from_a(amount_a: int, sqrt_price: int, sqrt_max_price: int) -> int:
    if amount_a <= 0 or sqrt_max_price <= sqrt_price:
        return 0
    return amount_a * sqrt_price * sqrt_max_price // (sqrt_max_price - sqrt_price)


def liquidity_from_b(amount_b: int, sqrt_min_price: int, sqrt_price: int) -> int:
    if amount_b <= 0 or sqrt_price <= sqrt_min_price:
        return 0
    return (amount_b << 128) // (sqrt_price - sqrt_min_price)


def cp_liquidity_for(pool: ConstantProductPool, amount_a: int, amount_b: int) -> int:
    """Largest liquidity delta both amounts can fund (one side may be zero)."""
    from_a = liquidity_from_a(amount_a, pool.sqrt_price, pool.sqrt_max_price)
    from_b = liquidity_from_b(amount_b, pool.sqrt_min_price, pool.sqrt_price)
    if amount_a > 0 and amount_b > 0:
        return min(from_a, from_b)
    return from_a or from_b


def single_sided_sqrt_range(sqrt_price: int, deposit_is_a: bool) -> Tuple[int, int]:
    """Price range that puts the whole position in one token at `sqrt_price`."""
    if deposit_is_a:
        return sqrt_price, MAX_SQRT_PRICE
    return MIN_SQRT_PRICE, sqrt_price


def min_rift_out(amount: int, transfer_fee_bps: int, slippage_bps: int = 50, safety_bps: int = 50) -> int:
    """Minimum rift tokens accepted for a wrap, net of fee, slippage and a safety buffer."""
    total_bps = min(transfer_fee_bps + slippage_bps + safety_bps, 5000)
    return amount * (BPS_DENOMINATOR - total_bps) // BPS_DENOMINATOR


# =============================================================================
# STRATEGIES (bin AMM)
# =============================================================================

STRATEGY_SPOT_ONE_SIDE = 0
STRATEGY_SPOT_BALANCED = 3
STRATEGY_SPOT_IMBALANCED = 6

MAX_ACTIVE_BIN_SLIPPAGE = 3


class LiquidityInstructionFactory:
    """
    Pure instruction builder for liquidity plans.

    Usage:
        factory = LiquidityInstructionFactory(wallet_pubkey)
        ixs = factory.compute_budget() + factory.cp_add_liquidity(pool, ...)
    """

    # Jito tip accounts (8 total, round-robin)
    JITO_TIP_ACCOUNTS = [
        "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
        "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
        "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
        "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
        "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
        "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
        "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
        "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
    ]

    def __init__(self, payer):
        self.payer = _pk(payer)
        self._tip_account_index = 0
        self._dlmm_event_authority = pdas.event_authority(DLMM_PROGRAM_ID)
        self._cp_event_authority = pdas.event_authority(DAMM_V2_PROGRAM_ID)

    # =========================================================================
    # COMMON
    # =========================================================================

    def compute_budget(self, units: Optional[int] = None, price: Optional[int] = None) -> List[Instruction]:
        return [
            set_compute_unit_limit(units or Settings.COMPUTE_UNIT_LIMIT),
            set_compute_unit_price(Settings.COMPUTE_UNIT_PRICE if price is None else price),
        ]

    def tip(self, lamports: Optional[int] = None, tip_account: Optional[str] = None) -> Instruction:
        if tip_account is None:
            tip_account = self._get_next_tip_account()
        return transfer(
            TransferParams(
                from_pubkey=self.payer,
                to_pubkey=_pk(tip_account),
                lamports=lamports or Settings.JITO_TIP_LAMPORTS,
            )
        )

    def _get_next_tip_account(self) -> str:
        account = self.JITO_TIP_ACCOUNTS[self._tip_account_index]
        self._tip_account_index = (self._tip_account_index + 1) % len(self.JITO_TIP_ACCOUNTS)
        return account

    def ata(self, mint, token_program: Pubkey = TOKEN_PROGRAM_ID, owner=None) -> Pubkey:
        return get_associated_token_address(_pk(owner or self.payer), _pk(mint), token_program)

    def create_ata(self, mint, token_program: Pubkey = TOKEN_PROGRAM_ID, owner=None) -> Instruction:
        return create_idempotent_associated_token_account(
            self.payer, _pk(owner or self.payer), _pk(mint), token_program
        )

    def fund_wsol(self, lamports: int, create: bool = True) -> List[Instruction]:
        """Move native SOL into the payer's WSOL account and sync it."""
        wsol_ata = self.ata(WSOL_MINT)
        ixs = [self.create_ata(WSOL_MINT)] if create else []
        return ixs + [
            transfer(TransferParams(from_pubkey=self.payer, to_pubkey=wsol_ata, lamports=lamports)),
            sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=wsol_ata)),
        ]

    def prepare_token_accounts(self, pool, amount_a: int = 0, amount_b: int = 0) -> List[Instruction]:
        """Idempotent ATAs for both pool tokens, funding WSOL when it is deposited."""
        ixs = [
            self.create_ata(pool.token_a_mint, token_program_of(pool.token_a_program)),
            self.create_ata(pool.token_b_mint, token_program_of(pool.token_b_program)),
        ]
        if pool.token_a_mint == WSOL_MINT and amount_a > 0:
            ixs.extend(self.fund_wsol(amount_a, create=False))
        if pool.token_b_mint == WSOL_MINT and amount_b > 0:
            ixs.extend(self.fund_wsol(amount_b, create=False))
        return ixs

    # =========================================================================
    # BIN AMM
    # =========================================================================

    def projected_bin_pool(
        self,
        token_x: str,
        token_y: str,
        bin_step: int,
        active_bin_id: int,
        fee_bps: int = 0,
        token_x_program: str = str(TOKEN_PROGRAM_ID),
        token_y_program: str = str(TOKEN_PROGRAM_ID),
    ) -> BinPool:
        """BinPool snapshot for a pair that is about to be created."""
        lb_pair = pdas.dlmm_lb_pair(token_x, token_y)
        return BinPool(
            address=str(lb_pair),
            token_a_mint=token_x,
            token_b_mint=token_y,
            reserve_a=0,
            reserve_b=0,
            fee_bps=fee_bps,
            bin_step=bin_step,
            active_bin_id=active_bin_id,
            vault_a=str(pdas.dlmm_reserve(lb_pair, token_x)),
            vault_b=str(pdas.dlmm_reserve(lb_pair, token_y)),
            token_a_program=token_x_program,
            token_b_program=token_y_program,
        )

    def dlmm_create_pair(self, pool: BinPool, base_factor: int) -> Instruction:
        data = (
            anchor_discriminator("initialize_customizable_permissionless_lb_pair")
            + struct.pack("<iHHB?", pool.active_bin_id, pool.bin_step, base_factor, 0, False)
            + b"\x00"  # activation_point: None
            + struct.pack("<?B", False, 0)
            + bytes(62)
        )
        accounts = [
            _meta(pool.address, writable=True),
            _meta(DLMM_PROGRAM_ID),  # no bitmap extension
            _meta(pool.token_a_mint),
            _meta(pool.token_b_mint),
            _meta(pool.vault_a, writable=True),
            _meta(pool.vault_b, writable=True),
            _meta(pdas.dlmm_oracle(pool.address), writable=True),
            _meta(self.ata(pool.token_a_mint, token_program_of(pool.token_a_program))),
            _meta(self.payer, signer=True, writable=True),
            _meta(token_program_of(pool.token_a_program)),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(self.ata(pool.token_b_mint, token_program_of(pool.token_b_program))),
            _meta(self._dlmm_event_authority),
            _meta(DLMM_PROGRAM_ID),
        ]
        return Instruction(DLMM_PROGRAM_ID, data, accounts)

    @staticmethod
    def bin_array_indexes(lower_bin_id: int, upper_bin_id: int) -> Tuple[int, int]:
        lower = pdas.bin_array_index(lower_bin_id)
        return lower, max(lower + 1, pdas.bin_array_index(upper_bin_id))

    def dlmm_init_bin_array(self, lb_pair: str, index: int) -> Instruction:
        data = anchor_discriminator("initialize_bin_array") + struct.pack("<q", index)
        accounts = [
            _meta(lb_pair),
            _meta(pdas.dlmm_bin_array(lb_pair, index), writable=True),
            _meta(self.payer, signer=True, writable=True),
            _meta(SYSTEM_PROGRAM_ID),
        ]
        return Instruction(DLMM_PROGRAM_ID, data, accounts)

    def dlmm_init_position(self, lb_pair: str, position: Pubkey, lower_bin_id: int, width: int) -> Instruction:
        data = anchor_discriminator("initialize_position") + struct.pack("<ii", lower_bin_id, width)
        accounts = [
            _meta(self.payer, signer=True, writable=True),
            _meta(position, signer=True, writable=True),
            _meta(lb_pair),
            _meta(self.payer, signer=True),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(RENT_SYSVAR_ID),
            _meta(self._dlmm_event_authority),
            _meta(DLMM_PROGRAM_ID),
        ]
        return Instruction(DLMM_PROGRAM_ID, data, accounts)

    def _dlmm_liquidity_accounts(self, pool: BinPool, position, lower_bin_id: int, upper_bin_id: int) -> List[AccountMeta]:
        low, high = self.bin_array_indexes(lower_bin_id, upper_bin_id)
        program_x, program_y = token_program_of(pool.token_a_program), token_program_of(pool.token_b_program)
        return [
            _meta(position, writable=True),
            _meta(pool.address, writable=True),
            _meta(DLMM_PROGRAM_ID),  # no bitmap extension
            _meta(self.ata(pool.token_a_mint, program_x), writable=True),
            _meta(self.ata(pool.token_b_mint, program_y), writable=True),
            _meta(pool.vault_a, writable=True),
            _meta(pool.vault_b, writable=True),
            _meta(pool.token_a_mint),
            _meta(pool.token_b_mint),
            _meta(pdas.dlmm_bin_array(pool.address, low), writable=True),
            _meta(pdas.dlmm_bin_array(pool.address, high), writable=True),
            _meta(self.payer, signer=True),
            _meta(program_x),
            _meta(program_y),
            _meta(self._dlmm_event_authority),
            _meta(DLMM_PROGRAM_ID),
        ]

    def dlmm_add_liquidity(
        self,
        pool: BinPool,
        position,
        amount_x: int,
        amount_y: int,
        lower_bin_id: int,
        upper_bin_id: int,
        strategy_type: Optional[int] = None,
    ) -> Instruction:
        if strategy_type is None:
            strategy_type = STRATEGY_SPOT_ONE_SIDE if not (amount_x and amount_y) else STRATEGY_SPOT_IMBALANCED
        data = (
            anchor_discriminator("add_liquidity_by_strategy")
            + struct.pack("<QQii", amount_x, amount_y, pool.active_bin_id, MAX_ACTIVE_BIN_SLIPPAGE)
            + struct.pack("<iiB", lower_bin_id, upper_bin_id, strategy_type)
            + bytes(64)
        )
        accounts = self._dlmm_liquidity_accounts(pool, position, lower_bin_id, upper_bin_id)
        return Instruction(DLMM_PROGRAM_ID, data, accounts)

    def dlmm_remove_liquidity(
        self, pool: BinPool, position: BinPosition, from_bin_id: int, to_bin_id: int, bps: int
    ) -> Instruction:
        data = anchor_discriminator("remove_liquidity_by_range") + struct.pack("<iiH", from_bin_id, to_bin_id, bps)
        accounts = self._dlmm_liquidity_accounts(
            pool, position.address, position.lower_bin_id, position.upper_bin_id
        )
        return Instruction(DLMM_PROGRAM_ID, data, accounts)

    def dlmm_close_position(self, pool: BinPool, position: BinPosition) -> Instruction:
        low, high = self.bin_array_indexes(position.lower_bin_id, position.upper_bin_id)
        accounts = [
            _meta(position.address, writable=True),
            _meta(pool.address, writable=True),
            _meta(pdas.dlmm_bin_array(pool.address, low), writable=True),
            _meta(pdas.dlmm_bin_array(pool.address, high), writable=True),
            _meta(self.payer, signer=True),
            _meta(self.payer, writable=True),
            _meta(self._dlmm_event_authority),
            _meta(DLMM_PROGRAM_ID),
        ]
        return Instruction(DLMM_PROGRAM_ID, anchor_discriminator("close_position"), accounts)

    # =========================================================================
    # CONSTANT-PRODUCT AMM
    # =========================================================================

    def projected_cp_pool(
        self,
        token_a: str,
        token_b: str,
        sqrt_price: int,
        sqrt_min_price: int = MIN_SQRT_PRICE,
        sqrt_max_price: int = MAX_SQRT_PRICE,
        fee_bps: int = 0,
        token_a_program: str = str(TOKEN_PROGRAM_ID),
        token_b_program: str = str(TOKEN_PROGRAM_ID),
    ) -> ConstantProductPool:
        """ConstantProductPool snapshot for a pool that is about to be created."""
        pool = pdas.cp_customizable_pool(token_a, token_b)
        return ConstantProductPool(
            address=str(pool),
            token_a_mint=token_a,
            token_b_mint=token_b,
            reserve_a=0,
            reserve_b=0,
            fee_bps=fee_bps,
            vault_a=str(pdas.cp_token_vault(token_a, pool)),
            vault_b=str(pdas.cp_token_vault(token_b, pool)),
            token_a_program=token_a_program,
            token_b_program=token_b_program,
            sqrt_price=sqrt_price,
            sqrt_min_price=sqrt_min_price,
            sqrt_max_price=sqrt_max_price,
        )

    def cp_create_pool(self, pool: ConstantProductPool, nft_mint: Pubkey, liquidity: int) -> Instruction:
        """initialize_customizable_pool, seeding `liquidity` into the creator's first position."""
        cliff_fee_numerator = pool.fee_bps * 1_000_000_000 // BPS_DENOMINATOR
        data = (
            anchor_discriminator("initialize_customizable_pool")
            + struct.pack("<QHQQB", cliff_fee_numerator, 0, 0, 0, 0)
            + bytes(3)
            + b"\x00"  # dynamic_fee: None
            + _u128(pool.sqrt_min_price)
            + _u128(pool.sqrt_max_price)
            + struct.pack("<?", False)
            + _u128(liquidity)
            + _u128(pool.sqrt_price)
            + struct.pack("<BB", 0, 0)
            + b"\x00"  # activation_point: None
        )
        program_a, program_b = token_program_of(pool.token_a_program), token_program_of(pool.token_b_program)
        accounts = [
            _meta(self.payer),
            _meta(nft_mint, signer=True, writable=True),
            _meta(pdas.cp_position_nft_account(nft_mint), writable=True),
            _meta(self.payer, signer=True, writable=True),
            _meta(DAMM_V2_POOL_AUTHORITY),
            _meta(pool.address, writable=True),
            _meta(pdas.cp_position(nft_mint), writable=True),
            _meta(pool.token_a_mint),
            _meta(pool.token_b_mint),
            _meta(pool.vault_a, writable=True),
            _meta(pool.vault_b, writable=True),
            _meta(self.ata(pool.token_a_mint, program_a), writable=True),
            _meta(self.ata(pool.token_b_mint, program_b), writable=True),
            _meta(program_a),
            _meta(program_b),
            _meta(TOKEN_2022_PROGRAM_ID),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(self._cp_event_authority),
            _meta(DAMM_V2_PROGRAM_ID),
        ]
        return Instruction(DAMM_V2_PROGRAM_ID, data, accounts)

    def cp_create_position(self, pool: ConstantProductPool, nft_mint: Pubkey) -> Instruction:
        accounts = [
            _meta(self.payer),
            _meta(nft_mint, signer=True, writable=True),
            _meta(pdas.cp_position_nft_account(nft_mint), writable=True),
            _meta(pool.address, writable=True),
            _meta(pdas.cp_position(nft_mint), writable=True),
            _meta(DAMM_V2_POOL_AUTHORITY),
            _meta(self.payer, signer=True, writable=True),
            _meta(TOKEN_2022_PROGRAM_ID),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(self._cp_event_authority),
            _meta(DAMM_V2_PROGRAM_ID),
        ]
        return Instruction(DAMM_V2_PROGRAM_ID, anchor_discriminator("create_position"), accounts)

    def _cp_liquidity_accounts(self, pool: ConstantProductPool, nft_mint, with_authority: bool) -> List[AccountMeta]:
        program_a, program_b = token_program_of(pool.token_a_program), token_program_of(pool.token_b_program)
        accounts = [_meta(DAMM_V2_POOL_AUTHORITY)] if with_authority else []
        accounts += [
            _meta(pool.address, writable=True),
            _meta(pdas.cp_position(nft_mint), writable=True),
            _meta(self.ata(pool.token_a_mint, program_a), writable=True),
            _meta(self.ata(pool.token_b_mint, program_b), writable=True),
            _meta(pool.vault_a, writable=True),
            _meta(pool.vault_b, writable=True),
            _meta(pool.token_a_mint),
            _meta(pool.token_b_mint),
            _meta(pdas.cp_position_nft_account(nft_mint)),
            _meta(self.payer, signer=True),
            _meta(program_a),
            _meta(program_b),
            _meta(self._cp_event_authority),
            _meta(DAMM_V2_PROGRAM_ID),
        ]
        return accounts

    def cp_add_liquidity(
        self, pool: ConstantProductPool, nft_mint, liquidity_delta: int, max_a: int, max_b: int
    ) -> Instruction:
        data = anchor_discriminator("add_liquidity") + _u128(liquidity_delta) + struct.pack("<QQ", max_a, max_b)
        return Instruction(DAMM_V2_PROGRAM_ID, data, self._cp_liquidity_accounts(pool, nft_mint, False))

    def cp_remove_liquidity(
        self, pool: ConstantProductPool, nft_mint, liquidity_delta: int, min_a: int = 0, min_b: int = 0
    ) -> Instruction:
        data = anchor_discriminator("remove_liquidity") + _u128(liquidity_delta) + struct.pack("<QQ", min_a, min_b)
        return Instruction(DAMM_V2_PROGRAM_ID, data, self._cp_liquidity_accounts(pool, nft_mint, True))

    def cp_remove_all_liquidity(self, pool: ConstantProductPool, nft_mint, min_a: int = 0, min_b: int = 0) -> Instruction:
        data = anchor_discriminator("remove_all_liquidity") + struct.pack("<QQ", min_a, min_b)
        return Instruction(DAMM_V2_PROGRAM_ID, data, self._cp_liquidity_accounts(pool, nft_mint, True))

    def cp_close_position(self, pool: ConstantProductPool, nft_mint) -> Instruction:
        accounts = [
            _meta(nft_mint, writable=True),
            _meta(pdas.cp_position_nft_account(nft_mint), writable=True),
            _meta(pool.address, writable=True),
            _meta(pdas.cp_position(nft_mint), writable=True),
            _meta(DAMM_V2_POOL_AUTHORITY),
            _meta(self.payer, writable=True),
            _meta(self.payer, signer=True),
            _meta(TOKEN_2022_PROGRAM_ID),
            _meta(self._cp_event_authority),
            _meta(DAMM_V2_PROGRAM_ID),
        ]
        return Instruction(DAMM_V2_PROGRAM_ID, anchor_discriminator("close_position"), accounts)

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    def withdrawal_instructions(
        self, pool, tx: WithdrawalTransaction, positions: Dict[str, Position]
    ) -> List[Instruction]:
        """One planned withdrawal transaction -> instructions (ATAs first)."""
        ixs = self.compute_budget() + self.prepare_token_accounts(pool)

        for step in tx.steps:
            position = positions[step.position_address]
            if tx.family is PoolFamily.BIN_BASED:
                if not isinstance(position, BinPosition):
                    raise TypeError(f"Position {step.position_address} is not a bin position")
                if step.lower_bin_id is not None and step.bps > 0:
                    ixs.append(self.dlmm_remove_liquidity(pool, position, step.lower_bin_id, step.upper_bin_id, step.bps))
                if step.close:
                    ixs.append(self.dlmm_close_position(pool, position))
            else:
                if not isinstance(position, SinglePosition):
                    raise TypeError(f"Position {step.position_address} is not a constant-product position")
                if step.close:
                    if position.liquidity > 0:
                        ixs.append(self.cp_remove_all_liquidity(pool, position.nft_mint))
                    ixs.append(self.cp_close_position(pool, position.nft_mint))
                elif step.liquidity_delta > 0:
                    ixs.append(self.cp_remove_liquidity(pool, position.nft_mint, step.liquidity_delta))

        Logger.debug(f"[PLAN] {tx.label}: {len(ixs)} instructions")
        return ixs

    # =========================================================================
    # RIFT VAULTS
    # =========================================================================

    def rift_create(
        self,
        underlying_mint: str,
        vanity_seed: bytes,
        transfer_fee_bps: int,
        partner_wallet: Optional[str] = None,
        rift_name: str = "",
        prefix_type: int = 0,
        underlying_program: Pubkey = TOKEN_PROGRAM_ID,
    ) -> Instruction:
        rift = pdas.rift_address(underlying_mint, self.payer, vanity_seed)
        rift_mint = pdas.rift_mint_address(underlying_mint, self.payer, vanity_seed)
        name = rift_name.encode("utf-8")[:32]
        data = (
            anchor_discriminator("create_rift_with_vanity_pda")
            + vanity_seed.ljust(32, b"\x00")
            + struct.pack("<B", len(vanity_seed))
            + _option_pubkey(partner_wallet)
            + name.ljust(32, b"\x00")
            + struct.pack("<BHB", len(name), transfer_fee_bps, prefix_type)
        )
        accounts = [
            _meta(self.payer, signer=True, writable=True),
            _meta(rift, writable=True),
            _meta(underlying_mint),
            _meta(rift_mint, writable=True),
            _meta(pdas.rift_mint_authority(rift)),
            _meta(pdas.rift_vault(rift), writable=True),
            _meta(pdas.rift_fees_vault(rift), writable=True),
            _meta(pdas.rift_withheld_vault(rift), writable=True),
            _meta(pdas.rift_vault_authority(rift)),
            _meta(TOKEN_2022_PROGRAM_ID),
            _meta(underlying_program),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(RENT_SYSVAR_ID),
        ]
        return Instruction(RIFTS_PROGRAM_ID, data, accounts)

    def rift_wrap(
        self,
        rift,
        underlying_mint: str,
        rift_mint,
        amount: int,
        min_out: int,
        underlying_program: Pubkey = TOKEN_PROGRAM_ID,
    ) -> Instruction:
        data = anchor_discriminator("wrap_tokens") + struct.pack("<QQ", amount, min_out)
        accounts = [
            _meta(self.payer, signer=True, writable=True),
            _meta(rift, writable=True),
            _meta(self.ata(underlying_mint, underlying_program), writable=True),
            _meta(self.ata(rift_mint, TOKEN_2022_PROGRAM_ID), writable=True),
            _meta(pdas.rift_vault(rift), writable=True),
            _meta(underlying_mint),
            _meta(rift_mint, writable=True),
            _meta(pdas.rift_mint_authority(rift)),
            _meta(pdas.rift_fees_vault(rift), writable=True),
            _meta(pdas.rift_vault_authority(rift)),
            _meta(underlying_program),
            _meta(TOKEN_2022_PROGRAM_ID),
            _meta(SYSTEM_PROGRAM_ID),
        ]
        return Instruction(RIFTS_PROGRAM_ID, data, accounts)

    def rift_distribute_fees(
        self,
        rift,
        underlying_mint: str,
        amount: int,
        treasury: str,
        partner: Optional[str] = None,
        underlying_program: Pubkey = TOKEN_PROGRAM_ID,
    ) -> Instruction:
        """Split `amount` from the fee vault between treasury and partner (treasury if none)."""
        partner = partner or treasury
        data = anchor_discriminator("distribute_fees_from_vault") + struct.pack("<Q", amount)
        accounts = [
            _meta(self.payer, signer=True, writable=True),
            _meta(rift, writable=True),
            _meta(pdas.rift_fees_vault(rift), writable=True),
            _meta(pdas.rift_vault_authority(rift)),
            _meta(underlying_mint),
            _meta(treasury),
            _meta(self.ata(underlying_mint, underlying_program, owner=treasury), writable=True),
            _meta(partner),
            _meta(self.ata(underlying_mint, underlying_program, owner=partner), writable=True),
            _meta(ASSOCIATED_TOKEN_PROGRAM_ID),
            _meta(SYSTEM_PROGRAM_ID),
            _meta(underlying_program),
        ]
        return Instruction(RIFTS_PROGRAM_ID, data, accounts)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_instructions(self, instructions: List[Instruction]) -> Tuple[bool, List[str]]:
        """
        Validate instruction list for common errors.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if not instructions:
            errors.append("No instructions in transaction")
            return False, errors

        if len(instructions) > 20:
            errors.append(f"Too many instructions: {len(instructions)} (max 20)")

        for i, ix in enumerate(instructions):
            if not ix.program_id:
                errors.append(f"Instruction {i} missing program_id")

        return len(errors) == 0, errors
