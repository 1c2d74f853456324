"""
DLMM bin/price conversion.

price (token Y per token X, UI units) = (1 + bin_step / 10_000) ** bin_id * 10 ** (dx - dy)
"""

import math
from typing import List, Sequence, Tuple

from src.liquidity.constants import BPS_DENOMINATOR


def bin_id_from_price(price: float, bin_step: int, x_decimals: int, y_decimals: int) -> int:
    if price <= 0:
        raise ValueError(f"Price must be positive, got {price}")
    if bin_step <= 0:
        raise ValueError(f"Bin step must be positive, got {bin_step}")
    adjusted = price * (10 ** (y_decimals - x_decimals))
    return round(math.log(adjusted) / math.log(1 + bin_step / BPS_DENOMINATOR))


def price_from_bin_id(bin_id: int, bin_step: int, x_decimals: int, y_decimals: int) -> float:
    return (1 + bin_step / BPS_DENOMINATOR) ** bin_id * (10 ** (x_decimals - y_decimals))


def single_sided_range(active_bin_id: int, width: int, deposit_is_x: bool) -> Tuple[int, int]:
    """
    Bins for a one-token deposit.

    Token X can only sit above the active bin and token Y only below it,
    so the range starts one bin away from the active bin.
    """
    if width < 1:
        raise ValueError("Range width must be at least one bin")
    if deposit_is_x:
        return active_bin_id + 1, active_bin_id + width
    return active_bin_id - width, active_bin_id - 1


def balanced_range(active_bin_id: int, width: int) -> Tuple[int, int]:
    half = max(width // 2, 0)
    return active_bin_id - half, active_bin_id + half


def chunk_range(lower_bin_id: int, upper_bin_id: int, width: int) -> List[Tuple[int, int]]:
    """Split an inclusive bin range into consecutive pieces at most `width` bins wide."""
    if width < 1:
        raise ValueError("Chunk width must be at least one bin")
    if upper_bin_id < lower_bin_id:
        raise ValueError(f"Empty bin range {lower_bin_id}..{upper_bin_id}")
    return [
        (start, min(start + width - 1, upper_bin_id))
        for start in range(lower_bin_id, upper_bin_id + 1, width)
    ]


def split_amount(total: int, weights: Sequence[int]) -> List[int]:
    """
    Divide `total` in proportion to `weights`, flooring each share.

    The rounding remainder goes to the last weighted share so the parts
    always add up to `total`.
    """
    if total <= 0:
        return [0] * len(weights)
    weight_sum = sum(weights)
    if weight_sum <= 0:
        raise ValueError(f"Cannot place {total} across zero-weight chunks")
    shares = [total * weight // weight_sum for weight in weights]
    last = max(index for index, weight in enumerate(weights) if weight > 0)
    shares[last] += total - sum(shares)
    return shares


def split_deposit(
    chunks: Sequence[Tuple[int, int]], active_bin_id: int, amount_x: int, amount_y: int
) -> List[Tuple[int, int]]:
    """
    Per-chunk (amount_x, amount_y) for a deposit spread over `chunks`.

    X is weighted by the bins at or above the active bin, Y by the bins at
    or below it.
    """
    x_weights = [max(0, upper - max(lower, active_bin_id) + 1) for lower, upper in chunks]
    y_weights = [max(0, min(upper, active_bin_id) - lower + 1) for lower, upper in chunks]
    return list(zip(split_amount(amount_x, x_weights), split_amount(amount_y, y_weights)))
