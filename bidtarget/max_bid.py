"""
Theoretical max CPC
Price-based hard ceiling on cost-per-click, and the guard that clips
proposed bids to it.
"""

import math
from typing import Optional, Tuple

from .config import MaxBidConfig, coerce_config
from .logger import get_logger
from .models import (
    BidGuardResult,
    MaxBidBreakdown,
    MaxBidInputs,
    MaxBidResult,
    SalePhase,
)

logger = get_logger(__name__)


def hard_ceiling(
    price: float, ratio: float, expected_cvr: float, safety_factor: float
) -> Tuple[float, float]:
    """Return (price x ratio x cvr, same times the safety factor)"""
    hard = price * ratio * expected_cvr
    return hard, hard * safety_factor


def compute_max_bid(
    inputs: MaxBidInputs, config: Optional[MaxBidConfig] = None
) -> MaxBidResult:
    """
    Outside MAIN_SALE the ceiling is the normal one. During MAIN_SALE the
    promotional ratio and CVR are used (normal values when absent), capped at
    normal ceiling x uplift_cap.
    """
    config = coerce_config(config, MaxBidConfig)

    normal_hard, normal_ceiling = hard_ceiling(
        inputs.price, inputs.ratio_target, inputs.expected_cvr, config.safety_factor
    )

    if SalePhase(inputs.sale_phase) is not SalePhase.MAIN_SALE:
        return MaxBidResult(
            ceiling=normal_ceiling,
            normal_ceiling=normal_ceiling,
            was_uplift_capped=False,
            breakdown=MaxBidBreakdown(
                price=inputs.price,
                ratio_used=inputs.ratio_target,
                expected_cvr_used=inputs.expected_cvr,
                hard_ceiling=normal_hard,
                ceiling_with_safety=normal_ceiling,
            ),
        )

    sale_ratio = inputs.sale_ratio_target
    if sale_ratio is None:
        sale_ratio = inputs.ratio_target
    sale_cvr = inputs.sale_expected_cvr
    if sale_cvr is None:
        sale_cvr = inputs.expected_cvr

    sale_hard, sale_ceiling = hard_ceiling(
        inputs.price, sale_ratio, sale_cvr, config.safety_factor
    )
    cap = normal_ceiling * config.uplift_cap
    was_capped = sale_ceiling > cap

    if was_capped:
        logger.info(
            f"Sale CPC ceiling {sale_ceiling:.2f} capped at {cap:.2f} "
            f"({config.uplift_cap}x normal)"
        )

    return MaxBidResult(
        ceiling=cap if was_capped else sale_ceiling,
        normal_ceiling=normal_ceiling,
        was_uplift_capped=was_capped,
        breakdown=MaxBidBreakdown(
            price=inputs.price,
            ratio_used=sale_ratio,
            expected_cvr_used=sale_cvr,
            hard_ceiling=sale_hard,
            ceiling_with_safety=sale_ceiling,
            pre_cap_ceiling=sale_ceiling,
        ),
    )


def round_bid(x: float, precision: int = 0) -> float:
    """Round half up to the smallest currency unit"""
    p = 10 ** precision
    return math.floor(x * p + 0.5) / p


def apply_bid_guard(
    bid: float, ceiling: float, config: Optional[MaxBidConfig] = None
) -> BidGuardResult:
    """
    Clip a proposed bid to the ceiling and round it to the currency unit.
    A clipped bid is rounded down if rounding would carry it past the ceiling,
    so final_bid never exceeds the ceiling but can sit below it: a 20 bid
    against a 15.525 ceiling at bid_precision=0 becomes 15, not 15.525.
    """
    config = coerce_config(config, MaxBidConfig)

    was_clipped = bid > ceiling
    capped = ceiling if was_clipped else bid
    final = round_bid(capped, config.bid_precision)

    if final > ceiling:
        p = 10 ** config.bid_precision
        final = math.floor(ceiling * p) / p

    reason = None
    if was_clipped:
        reason = f"exceeds theoretical max CPC ({round_bid(ceiling, config.bid_precision)})"
        logger.debug(f"Bid {bid} clipped to {final} (ceiling {ceiling:.4f})")

    return BidGuardResult(
        final_bid=final,
        original_bid=bid,
        was_clipped=was_clipped,
        clipped_by=bid - ceiling if was_clipped else 0.0,
        ceiling=ceiling,
        reason=reason,
    )


def guard_bid(
    bid: float, inputs: MaxBidInputs, config: Optional[MaxBidConfig] = None
) -> Tuple[MaxBidResult, BidGuardResult]:
    config = coerce_config(config, MaxBidConfig)
    result = compute_max_bid(inputs, config)
    return result, apply_bid_guard(bid, result.ceiling, config)


def break_even_cpc(price: float, margin_potential: float, expected_cvr: float) -> float:
    """CPC at which one conversion's gross margin exactly pays for the clicks"""
    return price * margin_potential * expected_cvr


def cpc_utilization(bid: float, ceiling: float) -> float:
    if ceiling <= 0:
        return math.inf if bid > 0 else 0.0
    return bid / ceiling


def cpc_headroom(bid: float, ceiling: float) -> float:
    return ceiling - bid


def is_bid_within_limit(
    bid: float,
    price: float,
    ratio: float,
    expected_cvr: float,
    config: Optional[MaxBidConfig] = None,
) -> bool:
    config = coerce_config(config, MaxBidConfig)
    _, ceiling = hard_ceiling(price, ratio, expected_cvr, config.safety_factor)
    return bid <= ceiling
