"""
Program-derived addresses for the bin AMM, the constant-product AMM and
the rift vault program.

Every helper returns the Pubkey only; bumps are re-derived on-chain.
"""

from typing import Tuple

from solders.pubkey import Pubkey

from src.liquidity.constants import DAMM_V2_PROGRAM_ID, DLMM_PROGRAM_ID, RIFTS_PROGRAM_ID

# Base key the bin AMM uses for customizable permissionless pairs
ILM_BASE_KEY = Pubkey.from_string("MFGQxwAmB91SwuYX36okv2Qmdc9aMuHTwWGUrcjbtyd")

BINS_PER_ARRAY = 70


def _pk(value) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(str(value))


def _find(seeds, program_id: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(seeds, program_id)[0]


def sorted_by_bytes(mint_a, mint_b) -> Tuple[Pubkey, Pubkey]:
    a, b = _pk(mint_a), _pk(mint_b)
    return (a, b) if bytes(a) <= bytes(b) else (b, a)


def event_authority(program_id: Pubkey) -> Pubkey:
    return _find([b"__event_authority"], program_id)


# =============================================================================
# BIN AMM
# =============================================================================


def dlmm_lb_pair(token_x, token_y) -> Pubkey:
    low, high = sorted_by_bytes(token_x, token_y)
    return _find([bytes(ILM_BASE_KEY), bytes(low), bytes(high)], DLMM_PROGRAM_ID)


def dlmm_reserve(lb_pair, mint) -> Pubkey:
    return _find([bytes(_pk(lb_pair)), bytes(_pk(mint))], DLMM_PROGRAM_ID)


def dlmm_oracle(lb_pair) -> Pubkey:
    return _find([b"oracle", bytes(_pk(lb_pair))], DLMM_PROGRAM_ID)


def bin_array_index(bin_id: int) -> int:
    # Floor division keeps negative bins in the array below zero
    return bin_id // BINS_PER_ARRAY


def dlmm_bin_array(lb_pair, index: int) -> Pubkey:
    return _find(
        [b"bin_array", bytes(_pk(lb_pair)), index.to_bytes(8, "little", signed=True)],
        DLMM_PROGRAM_ID,
    )


# =============================================================================
# CONSTANT-PRODUCT AMM
# =============================================================================


def cp_customizable_pool(token_a, token_b) -> Pubkey:
    low, high = sorted_by_bytes(token_a, token_b)
    return _find([b"cpool", bytes(high), bytes(low)], DAMM_V2_PROGRAM_ID)


def cp_token_vault(mint, pool) -> Pubkey:
    return _find([b"token_vault", bytes(_pk(mint)), bytes(_pk(pool))], DAMM_V2_PROGRAM_ID)


def cp_position(nft_mint) -> Pubkey:
    return _find([b"position", bytes(_pk(nft_mint))], DAMM_V2_PROGRAM_ID)


def cp_position_nft_account(nft_mint) -> Pubkey:
    return _find([b"position_nft_account", bytes(_pk(nft_mint))], DAMM_V2_PROGRAM_ID)


# =============================================================================
# RIFT VAULTS
# =============================================================================


def rift_address(underlying_mint, creator, vanity_seed: bytes = b"") -> Pubkey:
    seeds = [b"rift", bytes(_pk(underlying_mint)), bytes(_pk(creator))]
    if vanity_seed:
        seeds.append(vanity_seed)
    return _find(seeds, RIFTS_PROGRAM_ID)


def rift_mint_address(underlying_mint, creator, vanity_seed: bytes = b"") -> Pubkey:
    if not vanity_seed:
        return _find([b"rift_mint", bytes(rift_address(underlying_mint, creator))], RIFTS_PROGRAM_ID)
    return _find(
        [b"rift_mint", bytes(_pk(creator)), bytes(_pk(underlying_mint)), vanity_seed],
        RIFTS_PROGRAM_ID,
    )


def rift_vault(rift) -> Pubkey:
    return _find([b"vault", bytes(_pk(rift))], RIFTS_PROGRAM_ID)


def rift_mint_authority(rift) -> Pubkey:
    return _find([b"rift_mint_auth", bytes(_pk(rift))], RIFTS_PROGRAM_ID)


def rift_fees_vault(rift) -> Pubkey:
    return _find([b"fees_vault", bytes(_pk(rift))], RIFTS_PROGRAM_ID)


def rift_withheld_vault(rift) -> Pubkey:
    return _find([b"withheld_vault", bytes(_pk(rift))], RIFTS_PROGRAM_ID)


def rift_vault_authority(rift) -> Pubkey:
    return _find([b"vault_auth", bytes(_pk(rift))], RIFTS_PROGRAM_ID)
