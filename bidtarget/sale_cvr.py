"""
Expected CVR during a main sale.

The prior is the normal CVR scaled by an hour-banded uplift schedule
(conversion spikes at the start and the end of an event). Once sale clicks
arrive, the observed CVR is blended in:

    w        = max(min_live_weight, min(1, clicks / base_clicks))
    expected = min((1 - w) x prior + w x observed, normal x max_uplift)
"""

import math
from typing import List, Optional, Sequence, Tuple

from .config import SaleCvrConfig, UpliftBand, coerce_config, validate_uplift_schedule
from .logger import get_logger
from .models import SaleCvrBreakdown, SaleCvrResult, SalePhase

logger = get_logger(__name__)


def uplift_for_hour(hours_since_start: float, schedule: Sequence[UpliftBand]) -> float:
    """Uplift of the band containing the hour; 1.0 before the sale or past the last band"""
    if hours_since_start < 0:
        return 1.0
    for band in schedule:
        if band.start_hour <= hours_since_start < band.end_hour:
            return band.uplift
    return 1.0


def live_weight(clicks: float, config: SaleCvrConfig) -> Tuple[float, float, float]:
    """Return (raw, clipped to 1, floored at min_live_weight)"""
    raw = clicks / config.base_clicks
    clipped = min(1.0, raw)
    return raw, clipped, max(config.min_live_weight, clipped)


def compute_sale_cvr(
    normal_cvr: float,
    hours_since_start: float,
    clicks: float,
    observed_cvr: float,
    config: Optional[SaleCvrConfig] = None,
) -> SaleCvrResult:
    config = coerce_config(config, SaleCvrConfig)

    uplift = uplift_for_hour(hours_since_start, config.uplift_schedule)
    ceiling = normal_cvr * config.max_uplift
    prior_raw = normal_cvr * uplift
    prior = min(prior_raw, ceiling)

    w_raw, w_clipped, w = live_weight(clicks, config)
    blended = (1 - w) * prior + w * observed_cvr

    expected = min(blended, ceiling)
    if not math.isfinite(expected) or expected < 0:
        logger.warning(
            f"Sale CVR degenerate ({expected}) for normal={normal_cvr} "
            f"observed={observed_cvr}; using 0"
        )
        expected = 0.0

    return SaleCvrResult(
        expected_cvr=expected,
        breakdown=SaleCvrBreakdown(
            normal_cvr=normal_cvr,
            uplift=uplift,
            prior_cvr_raw=prior_raw,
            prior_cvr=prior,
            live_weight_raw=w_raw,
            live_weight_clipped=w_clipped,
            live_weight=w,
            blended_cvr_raw=blended,
            was_max_uplift_applied=blended > ceiling,
        ),
    )


def expected_cvr_for_phase(
    sale_phase: SalePhase,
    normal_cvr: float,
    hours_since_start: Optional[float] = None,
    clicks: float = 0,
    observed_cvr: float = 0.0,
    config: Optional[SaleCvrConfig] = None,
) -> Tuple[float, Optional[SaleCvrResult]]:
    """
    CVR to bid with in the given phase. Only MAIN_SALE with a known sale
    clock switches to the sale estimate; the second element is then its
    result, otherwise None.
    """
    if SalePhase(sale_phase) is not SalePhase.MAIN_SALE or hours_since_start is None:
        return normal_cvr, None

    result = compute_sale_cvr(normal_cvr, hours_since_start, clicks, observed_cvr, config)
    return result.expected_cvr, result


def is_near_sale_end(
    hours_since_start: float,
    sale_duration_hours: Optional[float] = None,
    hours_before_end: float = 5,
    config: Optional[SaleCvrConfig] = None,
) -> bool:
    """Within the last hours of the event; duration defaults to config.sale_duration_hours"""
    if sale_duration_hours is None:
        sale_duration_hours = coerce_config(config, SaleCvrConfig).sale_duration_hours
    remaining = sale_duration_hours - hours_since_start
    return 0 <= remaining <= hours_before_end


def build_uplift_schedule(
    sale_duration_hours: float,
    launch_uplift: float = 1.8,
    early_uplift: float = 1.3,
    mid_uplift: float = 1.1,
    final_uplift: float = 1.7,
    hours_before_end: float = 5,
) -> List[UpliftBand]:
    """
    Uplift schedule for an event of arbitrary length. Events shorter than
    12 hours have no middle band.
    """
    launch_end = min(2, sale_duration_hours)
    mid_end = max(sale_duration_hours - hours_before_end, launch_end)

    if sale_duration_hours < 12:
        bands = [
            (0, launch_end, launch_uplift),
            (2, mid_end, early_uplift),
            (mid_end, sale_duration_hours, final_uplift),
        ]
    else:
        mid_end = max(mid_end, 12)
        bands = [
            (0, 2, launch_uplift),
            (2, 12, early_uplift),
            (12, mid_end, mid_uplift),
            (mid_end, sale_duration_hours, final_uplift),
        ]

    return [
        UpliftBand(start_hour=start, end_hour=end, uplift=uplift)
        for start, end, uplift in bands
        if start < end
    ]


__all__ = [
    "uplift_for_hour",
    "live_weight",
    "compute_sale_cvr",
    "expected_cvr_for_phase",
    "is_near_sale_end",
    "build_uplift_schedule",
    "validate_uplift_schedule",
]
