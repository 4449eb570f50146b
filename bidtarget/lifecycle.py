"""
Lifecycle TACOS targets
Turns the optimal ratio into launch / grow / harvest targets and measures
how much was invested above the steady-state ratio during launch.
"""

from typing import Iterable, Optional, Union

from .config import LifecycleConfig, coerce_config
from .logger import get_logger
from .models import LaunchInvestment, LifecycleStage, LifecycleTargets
from .optimal_ratio import MetricLike, as_daily_metric

logger = get_logger(__name__)

StageLike = Union[LifecycleStage, str, None]


def resolve_lifecycle_targets(
    ratio: float,
    margin_potential: float,
    stage: StageLike = None,
    config: Optional[LifecycleConfig] = None,
) -> LifecycleTargets:
    """
    launch  = min(g, ratio x (1 + alpha_launch))
    grow    = ratio
    harvest = max(0, ratio x (1 - alpha_harvest))

    LAUNCH_SOFT scales alpha_launch by soft_factor. An unknown or missing
    stage selects the grow target.
    """
    config = coerce_config(config, LifecycleConfig)
    current_stage = LifecycleStage.parse(stage)

    launch = min(margin_potential, ratio * (1 + config.alpha_launch))
    grow = ratio
    harvest = max(0.0, ratio * (1 - config.alpha_harvest))

    if current_stage is LifecycleStage.LAUNCH_HARD:
        current = launch
    elif current_stage is LifecycleStage.LAUNCH_SOFT:
        current = min(margin_potential, ratio * (1 + config.alpha_launch * config.soft_factor))
    elif current_stage is LifecycleStage.HARVEST:
        current = harvest
    else:
        if stage is not None and current_stage is None:
            logger.warning(f"Unknown lifecycle stage {stage!r}; using grow target")
        current = grow

    return LifecycleTargets(
        launch_target=launch,
        grow_target=grow,
        harvest_target=harvest,
        current_target=current,
        current_stage=current_stage,
        source_ratio=ratio,
        margin_potential=margin_potential,
    )


def target_for_stage(targets: LifecycleTargets, stage: StageLike) -> float:
    """
    Target for any stage, not only the one the targets were resolved for.
    LAUNCH_SOFT is the resolved soft target when available, otherwise the
    midpoint between launch and grow.
    """
    parsed = LifecycleStage.parse(stage)

    if parsed is LifecycleStage.LAUNCH_HARD:
        return targets.launch_target
    if parsed is LifecycleStage.LAUNCH_SOFT:
        if targets.current_stage is LifecycleStage.LAUNCH_SOFT:
            return targets.current_target
        return (targets.launch_target + targets.grow_target) / 2
    if parsed is LifecycleStage.HARVEST:
        return targets.harvest_target
    return targets.grow_target


def calculate_launch_investment(
    launch_metrics: Iterable[MetricLike],
    ratio: float,
    margin_potential: float,
) -> LaunchInvestment:
    """
    Ad spend above the steady-state ratio during the launch window:

        investment = max(0, sales x (average_ratio - ratio))

    plus the sales volume needed to earn it back at net margin g - ratio.
    """
    days = [as_daily_metric(m) for m in launch_metrics]
    valid = [d for d in days if d.revenue > 0]

    if not valid:
        note = "no launch period data" if not days else "no launch day with revenue"
        return LaunchInvestment(
            investment_total=0.0,
            sales_total=0.0,
            average_ratio=0.0,
            note=note,
        )

    sales_total = sum(d.revenue for d in valid)
    spend_total = sum(d.ad_spend for d in valid)
    average_ratio = spend_total / sales_total
    raw_investment = sales_total * (average_ratio - ratio)

    margin = margin_potential - ratio
    recovery_sales = None
    recovery_profit = None
    if margin > 0 and raw_investment > 0:
        recovery_sales = raw_investment / margin
        recovery_profit = raw_investment

    return LaunchInvestment(
        investment_total=max(0.0, raw_investment),
        sales_total=sales_total,
        average_ratio=average_ratio,
        recovery_sales=recovery_sales,
        recovery_profit=recovery_profit,
        note=(
            f"{len(valid)} launch days, sales {sales_total:,.0f}, "
            f"average ratio {average_ratio:.1%}, invested {raw_investment:,.0f} above target"
        ),
    )
