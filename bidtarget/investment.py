"""
Investment health (loss budget) evaluation

Compares a product's actual profit with the profit it would have made at
the optimal ratio, and classifies the shortfall against a per-stage budget:

    target_profit = S x (g - r)
    actual_profit = S x g - A
    profit_gap    = target_profit - actual_profit        (> 0 = underperforming)
    budget        = max(target_profit x multiple_stage, 1% of S, 1)
    ratio         = 0 if profit_gap <= 0 else profit_gap / budget

ratio < safe_below -> SAFE, < watch_below -> WATCH, <= 1.0 -> LIMIT, else BREACH
"""

import math
from datetime import date
from typing import Callable, Dict, Iterable, Optional

from .config import LossBudgetConfig, LossBudgetStateConfig, coerce_config
from .lifecycle import StageLike
from .logger import get_logger
from .models import (
    InvestmentState,
    LifecycleStage,
    LossBudgetAlert,
    LossBudgetMetrics,
    LossBudgetState,
    LossBudgetSummary,
    PeriodPerformance,
)

logger = get_logger(__name__)

# Budget never drops below this share of revenue
MIN_BUDGET_REVENUE_SHARE = 0.01


def classify_investment_state(
    ratio: float, config: Optional[LossBudgetConfig] = None
) -> InvestmentState:
    config = coerce_config(config, LossBudgetConfig)

    if ratio < config.safe_below:
        return InvestmentState.SAFE
    if ratio < config.watch_below:
        return InvestmentState.WATCH
    if ratio <= 1.0:
        return InvestmentState.LIMIT
    return InvestmentState.BREACH


def evaluate_loss_budget(
    revenue: float,
    ad_spend: float,
    stage: StageLike,
    margin_potential: float,
    ratio: float,
    config: Optional[LossBudgetConfig] = None,
    product_id: Optional[str] = None,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> LossBudgetMetrics:
    """Evaluate one product over one window against its stage loss budget"""
    config = coerce_config(config, LossBudgetConfig)
    parsed_stage = LifecycleStage.parse(stage)

    target_net_margin = margin_potential - ratio
    target_profit = revenue * target_net_margin
    actual_profit = revenue * margin_potential - ad_spend
    profit_gap = target_profit - actual_profit

    multiple = config.multiples.for_stage(parsed_stage)
    budget = max(target_profit * multiple, revenue * MIN_BUDGET_REVENUE_SHARE, 1.0)

    consumption = 0.0 if profit_gap <= 0 else profit_gap / budget
    state = classify_investment_state(consumption, config)

    if state >= InvestmentState.LIMIT:
        logger.warning(
            f"Loss budget {state.value} for {product_id or 'product'}: "
            f"{consumption:.1%} of {budget:,.0f} consumed",
            extra={"product_id": product_id, "investment_state": state.value},
        )

    return LossBudgetMetrics(
        product_id=product_id,
        stage=parsed_stage,
        margin_potential=margin_potential,
        source_ratio=ratio,
        revenue=revenue,
        ad_spend=ad_spend,
        target_net_margin=target_net_margin,
        target_profit=target_profit,
        actual_profit=actual_profit,
        profit_gap=profit_gap,
        budget_multiple=multiple,
        budget=budget,
        ratio=consumption,
        state=state,
        period_start=period_start,
        period_end=period_end,
        note=(
            f"sales={revenue:,.0f} ad={ad_spend:,.0f} g={margin_potential:.1%} "
            f"r={ratio:.1%} gap={profit_gap:,.0f} budget={budget:,.0f} "
            f"ratio={consumption:.1%}"
        ),
    )


def evaluate_many(
    performances: Iterable[PeriodPerformance],
    margin_for: Callable[[str], float],
    ratio_for: Callable[[str], float],
    config: Optional[LossBudgetConfig] = None,
) -> Dict[str, LossBudgetMetrics]:
    """
    Evaluate a batch of products. The returned dict belongs to the caller;
    a later entry for the same product replaces the earlier one.
    """
    config = coerce_config(config, LossBudgetConfig)
    results = {}

    for perf in performances:
        results[perf.product_id] = evaluate_loss_budget(
            revenue=perf.revenue,
            ad_spend=perf.ad_spend,
            stage=perf.stage,
            margin_potential=margin_for(perf.product_id),
            ratio=ratio_for(perf.product_id),
            config=config,
            product_id=perf.product_id,
            period_start=perf.period_start,
            period_end=perf.period_end,
        )

    return results


# =============================================================================
# State helpers
# =============================================================================

def is_warning_state(state: InvestmentState) -> bool:
    return state >= InvestmentState.WATCH


def is_critical_state(state: InvestmentState) -> bool:
    return state >= InvestmentState.LIMIT


def should_consider_transition(stage: StageLike, state: InvestmentState) -> bool:
    """A breached launch should move towards GROW, a breached GROW towards HARVEST"""
    parsed = LifecycleStage.parse(stage)
    if state is not InvestmentState.BREACH or parsed is None:
        return False
    return parsed.is_launch or parsed is LifecycleStage.GROW


def build_alert(metrics: LossBudgetMetrics) -> LossBudgetAlert:
    """Alert payload for the notification collaborator"""
    state = metrics.state
    if state is InvestmentState.SAFE:
        return LossBudgetAlert(should_alert=False, level="info", message="")

    stage = metrics.stage.value if metrics.stage else "UNKNOWN"
    pct = f"{metrics.ratio * 100:.1f}%"
    product = metrics.product_id or "product"

    if state is InvestmentState.WATCH:
        return LossBudgetAlert(
            should_alert=True,
            level="info",
            message=(
                f"[WATCH] {product} ({stage}): loss budget {pct} used "
                f"({metrics.profit_gap:,.0f}/{metrics.budget:,.0f})"
            ),
        )
    if state is InvestmentState.LIMIT:
        return LossBudgetAlert(
            should_alert=True,
            level="warning",
            message=f"[LIMIT] {product} ({stage}): loss budget {pct} used, increases restricted",
        )
    return LossBudgetAlert(
        should_alert=True,
        level="critical",
        message=f"[BREACH] {product} ({stage}): loss budget exceeded at {pct}, strategy review needed",
    )


# =============================================================================
# Three-state rollup
# =============================================================================

def to_loss_budget_state(state: InvestmentState) -> LossBudgetState:
    if state is InvestmentState.SAFE:
        return LossBudgetState.SAFE
    if state is InvestmentState.BREACH:
        return LossBudgetState.CRITICAL
    return LossBudgetState.WARNING


def resolve_loss_budget_state(
    rolling_consumption: Optional[float],
    launch_consumption: Optional[float],
    launch_invest_usage: Optional[float],
    config: Optional[LossBudgetStateConfig] = None,
) -> LossBudgetState:
    """
    Classify by the worst of the rolling window, the full launch window and
    launch investment usage. Missing or NaN inputs count as zero.
    """
    config = coerce_config(config, LossBudgetStateConfig)
    rolling = _zero_if_missing(rolling_consumption)
    launch = _zero_if_missing(launch_consumption)
    invest = _zero_if_missing(launch_invest_usage)
    worst = max(rolling, launch, invest)

    if worst >= config.critical_threshold or invest >= config.launch_invest_critical_threshold:
        return LossBudgetState.CRITICAL
    if worst >= config.warning_threshold or invest >= config.launch_invest_warning_threshold:
        return LossBudgetState.WARNING
    return LossBudgetState.SAFE


def summarize_loss_budget(
    rolling_consumption: Optional[float],
    launch_consumption: Optional[float],
    launch_invest_usage: Optional[float],
    config: Optional[LossBudgetStateConfig] = None,
    product_id: Optional[str] = None,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> LossBudgetSummary:
    rolling = _zero_if_missing(rolling_consumption)
    launch = _zero_if_missing(launch_consumption)
    invest = _zero_if_missing(launch_invest_usage)

    return LossBudgetSummary(
        product_id=product_id,
        rolling_consumption=rolling,
        launch_consumption=launch,
        launch_invest_usage=invest,
        max_consumption=max(rolling, launch, invest),
        state=resolve_loss_budget_state(rolling, launch, invest, config),
        period_start=period_start,
        period_end=period_end,
    )


def _zero_if_missing(value: Optional[float]) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return float(value)
