"""
Profit-maximizing TACOS estimation
Bins daily history by ad-cost ratio and picks the bin that earned the most
"""

from typing import Iterable, List, Mapping, Optional, Union

import pandas as pd

from .config import EstimatorConfig, coerce_config
from .logger import get_logger
from .models import Confidence, DailyMetric, OptimalRatioEstimate, RatioBin

logger = get_logger(__name__)

MetricLike = Union[DailyMetric, Mapping]


def estimate_optimal_ratio(
    metrics: Iterable[MetricLike],
    config: Optional[EstimatorConfig] = None,
) -> OptimalRatioEstimate:
    """
    Estimate the ad-cost ratio that historically maximized profit.

    1. Keep days with revenue > 0, spend >= 0 and min_ratio <= ratio <= max_ratio
    2. Profit per day = revenue x (g - ratio)
    3. Bin by ratio; bins with fewer than min_days_per_bin days are ignored
    4. The bin with the largest total profit wins; its average ratio is returned

    Falls back to config.fallback_ratio (confidence LOW) when there is
    nothing to estimate from.
    """
    config = coerce_config(config, EstimatorConfig)
    days = [as_daily_metric(m) for m in metrics]

    valid = [
        (d, d.ad_spend / d.revenue)
        for d in days
        if d.revenue > 0
        and d.ad_spend >= 0
        and config.min_ratio <= d.ad_spend / d.revenue <= config.max_ratio
    ]

    if not valid:
        logger.debug(f"No usable days out of {len(days)}; using fallback ratio")
        return OptimalRatioEstimate(
            ratio=config.fallback_ratio,
            confidence=Confidence.LOW,
            used_fallback=True,
            valid_days_used=0,
            valid_bin_count=0,
            note="no days with revenue > 0 and ratio inside the evaluated range; fallback used",
        )

    points = [
        (ratio, d.revenue * (config.margin_potential - ratio)) for d, ratio in valid
    ]
    bins = build_ratio_bins(points, config)
    valid_bins = [b for b in bins if b.days >= config.min_days_per_bin]

    if not valid_bins:
        logger.debug(
            f"{len(valid)} usable days but no bin reached {config.min_days_per_bin} days; "
            "using fallback ratio"
        )
        return OptimalRatioEstimate(
            ratio=config.fallback_ratio,
            confidence=Confidence.LOW,
            used_fallback=True,
            valid_days_used=len(valid),
            valid_bin_count=0,
            note=f"no bin has at least {config.min_days_per_bin} days; fallback used",
        )

    # Strict comparison keeps the lowest-ratio bin on ties
    best = valid_bins[0]
    for candidate in valid_bins[1:]:
        if candidate.total_profit > best.total_profit:
            best = candidate

    confidence = determine_confidence(len(valid), len(valid_bins))

    return OptimalRatioEstimate(
        ratio=best.average_ratio,
        confidence=confidence,
        used_fallback=False,
        valid_days_used=len(valid),
        valid_bin_count=len(valid_bins),
        optimal_bin_profit=best.average_profit,
        optimal_bin_ratio=best.average_ratio,
        note=(
            f"{len(valid)} days over {len(valid_bins)} valid bins; best bin "
            f"{best.lower_bound:.0%}-{best.upper_bound:.0%} averaged {best.average_ratio:.1%}"
        ),
    )


def build_ratio_bins(points, config: EstimatorConfig) -> List[RatioBin]:
    """
    Group (ratio, profit) points into [lower, upper) bins of config.bin_width,
    starting at min_ratio. Empty bins are omitted.
    """
    bins = []
    index = 0
    lower = config.min_ratio

    while lower < config.max_ratio:
        upper = min(config.min_ratio + (index + 1) * config.bin_width, config.max_ratio)
        members = [(r, p) for r, p in points if lower <= r < upper]

        if members:
            total_profit = sum(p for _, p in members)
            bins.append(
                RatioBin(
                    lower_bound=lower,
                    upper_bound=upper,
                    days=len(members),
                    average_ratio=sum(r for r, _ in members) / len(members),
                    total_profit=total_profit,
                    average_profit=total_profit / len(members),
                )
            )

        index += 1
        lower = config.min_ratio + index * config.bin_width

    return bins


def determine_confidence(valid_days: int, valid_bins: int) -> Confidence:
    if valid_days >= 90 and valid_bins >= 5:
        return Confidence.HIGH
    if valid_days >= 30 and valid_bins >= 3:
        return Confidence.MEDIUM
    return Confidence.LOW


def net_margin(margin_potential: float, ratio: float) -> float:
    """g - ratio: margin left once ads are paid for"""
    return margin_potential - ratio


def daily_net_profit(revenue: float, ad_spend: float, margin_potential: float) -> float:
    if revenue <= 0:
        return 0.0
    return revenue * (margin_potential - ad_spend / revenue)


def period_net_profit(metrics: Iterable[MetricLike], margin_potential: float) -> float:
    return sum(
        daily_net_profit(m.revenue, m.ad_spend, margin_potential)
        for m in map(as_daily_metric, metrics)
    )


def metrics_from_frame(frame: pd.DataFrame) -> List[DailyMetric]:
    """
    Convert a warehouse DataFrame into DailyMetric records.
    Expects `date`, `revenue` and `ad_spend` (or `adSpend`) columns.
    """
    spend_col = "ad_spend" if "ad_spend" in frame.columns else "adSpend"
    missing = [c for c in ("date", "revenue", spend_col) if c not in frame.columns]
    if missing:
        raise ValueError(f"daily metrics frame is missing columns: {missing}")

    df = frame[["date", "revenue", spend_col]].dropna(subset=["date", "revenue"])
    df = df.assign(
        date=pd.to_datetime(df["date"]).dt.date,
        revenue=df["revenue"].astype(float),
        spend=df[spend_col].fillna(0).astype(float),
    ).sort_values("date")

    return [
        DailyMetric(date=row.date, revenue=row.revenue, ad_spend=row.spend)
        for row in df.itertuples(index=False)
    ]


def as_daily_metric(item: MetricLike) -> DailyMetric:
    if isinstance(item, DailyMetric):
        return item
    return DailyMetric.model_validate(dict(item))
