"""
Liquidity Error Taxonomy
========================
Exceptions raised by the orchestrator, plus decoding of raw on-chain
transaction errors into readable reasons.

Quote/classification errors are recoverable by the caller (fall back to a
manual ratio). Submission-time errors carry the decoded reason and are never
retried automatically.
"""

import json
from typing import Any, List, Optional


class LiquidityError(Exception):
    """Base class for all orchestrator errors."""


class ClassificationError(LiquidityError):
    """Pool account is owned by a program we do not know how to read."""

    def __init__(self, pool_address: str, owner: Optional[str] = None, reason: str = ""):
        self.pool_address = pool_address
        self.owner = owner
        detail = reason or f"unknown pool owner {owner}"
        super().__init__(f"Cannot classify pool {pool_address}: {detail}")


class EmptyPoolError(LiquidityError):
    """At least one reserve is zero, so no ratio can be derived."""

    def __init__(self, pool_address: str, reserve_a: int, reserve_b: int):
        self.pool_address = pool_address
        self.reserve_a = reserve_a
        self.reserve_b = reserve_b
        super().__init__(
            f"Pool {pool_address} has an empty side (reserves {reserve_a}/{reserve_b}); "
            "enter a ratio manually"
        )


class PriceUnavailableError(LiquidityError):
    """Oracle has no USD price for a mint; caller must enter a price manually."""

    def __init__(self, mint: str):
        self.mint = mint
        super().__init__(f"No USD price available for {mint}; enter an initial price manually")


class StaleQuoteError(LiquidityError):
    """Reserve ratio moved past tolerance between quote and submit."""

    def __init__(self, pool_address: str, quoted_ratio: float, current_ratio: float, tolerance_bps: int):
        self.pool_address = pool_address
        self.quoted_ratio = quoted_ratio
        self.current_ratio = current_ratio
        self.tolerance_bps = tolerance_bps
        super().__init__(
            f"Quote for {pool_address} is stale: ratio {quoted_ratio:.9g} -> {current_ratio:.9g} "
            f"(tolerance {tolerance_bps} bps)"
        )


class InsufficientBalanceError(LiquidityError):
    def __init__(self, mint: str, required: int, available: int):
        self.mint = mint
        self.required = required
        self.available = available
        super().__init__(f"Insufficient balance of {mint}: need {required}, have {available}")


class SimulationFailedError(LiquidityError):
    """Dry-run rejected the transaction before it was sent."""

    def __init__(self, reason: str, logs: Optional[List[str]] = None):
        self.reason = reason
        self.logs = logs or []
        super().__init__(f"Simulation failed: {reason}")


class PartialBundleUnavailableError(LiquidityError):
    """Plan requires atomic submission and no relay can provide it."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Atomic bundle unavailable, refusing partial submission: {reason}")


class OnChainExecutionError(LiquidityError):
    """Transaction confirmed but reverted."""

    def __init__(self, signature: str, reason: str, raw: Any = None):
        self.signature = signature
        self.reason = reason
        self.raw = raw
        super().__init__(f"Transaction {signature} failed on-chain: {reason}")


class PoolNoLongerSingleSidedError(LiquidityError):
    """Constant-product pool has accrued the counter asset through trading."""

    def __init__(self, pool_address: str, counter_reserve: int):
        self.pool_address = pool_address
        self.counter_reserve = counter_reserve
        super().__init__(
            f"Pool {pool_address} is no longer single-sided "
            f"(counter reserve {counter_reserve}); deposit both sides"
        )


class InvalidWithdrawalError(LiquidityError, ValueError):
    pass


class RpcError(LiquidityError):
    def __init__(self, method: str, message: str):
        self.method = method
        super().__init__(f"RPC {method} failed: {message}")


# =============================================================================
# PROGRAM ERROR DECODING
# =============================================================================

SPL_TOKEN_ERRORS = {
    0: "Insufficient SOL for rent-exempt account",
    1: "Insufficient funds",
    2: "Invalid token mint",
    3: "Token account mint mismatch",
    4: "Token account owner mismatch",
    5: "Token has fixed supply",
    6: "Account already initialized",
    7: "Account frozen",
    8: "Insufficient allowance",
    9: "Invalid number of signers",
    10: "Invalid signer",
    11: "Overflow in token operation",
    12: "Authority required",
    13: "Mint has no mint authority",
    14: "Mint has no freeze authority",
}

DLMM_ERRORS = {
    6000: "Invalid bin index",
    6001: "Invalid bin ID",
    6002: "Invalid input data",
    6003: "Price slippage exceeded",
    6004: "Bin slippage exceeded",
    6005: "Invalid composition factor",
    6006: "Bin step not in preset list",
    6007: "Zero liquidity - must deposit tokens",
    6008: "Invalid position",
    6009: "Bin array not found",
    6010: "Invalid token mint for this pool",
    6011: "Invalid account for single-sided deposit",
    6012: "Insufficient liquidity in pool",
    6040: "Price moved too much - retry or increase slippage",
    6041: "Bin range exceeded maximum allowed",
    6042: "Invalid bin array bitmap extension",
}

RUNTIME_ERRORS = {
    "AccountNotFound": "Required account not found - check token accounts exist",
    "InsufficientFunds": "Insufficient SOL balance for transaction",
    "InsufficientFundsForRent": "Insufficient SOL to keep an account rent-exempt",
    "InvalidAccountData": "Invalid account data",
    "InvalidAccountOwner": "Invalid account owner",
    "ArithmeticOverflow": "Calculation overflow - amount too large",
    "BlockhashNotFound": "Blockhash expired before the transaction landed",
    "AlreadyProcessed": "Transaction was already processed",
}

LOG_PATTERNS = (
    ("insufficient lamports", "Insufficient SOL to cover rent deposits plus fees"),
    ("insufficient funds", "Insufficient token balance for the requested amount"),
    ("exceeds desired", "Amount exceeds desired slippage limit"),
    ("slippage", "Price moved beyond slippage tolerance"),
)


def decode_custom_code(code: int) -> str:
    if code in DLMM_ERRORS:
        return DLMM_ERRORS[code]
    if code in SPL_TOKEN_ERRORS:
        return SPL_TOKEN_ERRORS[code]
    return f"Custom program error {code}"


def decode_program_error(err: Any, logs: Optional[List[str]] = None) -> str:
    """
    Turn a raw transaction error (as returned in RPC JSON) into a readable reason.

    Handles {"InstructionError": [idx, {"Custom": n}]}, {"InstructionError": [idx, "Name"]},
    bare string errors and known log patterns.
    """
    if logs:
        joined = " ".join(logs).lower()
        for pattern, message in LOG_PATTERNS:
            if pattern in joined:
                return message

    if isinstance(err, str):
        return RUNTIME_ERRORS.get(err, err)

    if isinstance(err, dict) and "InstructionError" in err:
        index, detail = err["InstructionError"]
        if isinstance(detail, dict) and "Custom" in detail:
            return f"Instruction {index}: {decode_custom_code(int(detail['Custom']))}"
        if isinstance(detail, str):
            return f"Instruction {index}: {RUNTIME_ERRORS.get(detail, detail)}"
        return f"Instruction {index}: {json.dumps(detail)}"

    if isinstance(err, dict) and len(err) == 1:
        name = next(iter(err))
        return RUNTIME_ERRORS.get(name, json.dumps(err))

    return json.dumps(err) if err is not None else "Unknown error"
