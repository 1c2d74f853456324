"""
Program IDs and well-known mints used by the orchestrator.
"""

from solders.pubkey import Pubkey

# Bin-based AMM (Meteora DLMM)
DLMM_PROGRAM_ID = Pubkey.from_string("LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo")

# Constant-product AMM (Meteora DAMM v2 / CP-AMM)
DAMM_V2_PROGRAM_ID = Pubkey.from_string("cpamdpZCGKUy5JxQXB4dcpGPiikHawvSWAd6mEn1sGG")
DAMM_V2_POOL_AUTHORITY = Pubkey.from_string("HLnpSz9h2S4hiLQ43rnSD9XkcUThA7B8hQMKmDaiTLcC")

# Rift wrapping vault
RIFTS_PROGRAM_ID = Pubkey.from_string("6FEZJKsxbDm5W4Ad4eogNehivRKKGCHJHRnKUSFbLpKt")

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
RENT_SYSVAR_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

WSOL_MINT = "So11111111111111111111111111111111111111112"

LAMPORTS_PER_SOL = 1_000_000_000
BPS_DENOMINATOR = 10_000
PPM_DENOMINATOR = 1_000_000

# Default bin step for new DLMM pairs (25 bps per bin)
DEFAULT_BIN_STEP = 25
