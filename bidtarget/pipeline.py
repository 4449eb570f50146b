"""
Per-product orchestration
Runs the six steps in dependency order for one product:

    estimate -> lifecycle targets -> {loss budget, target ACOS}
             -> {action constraints, max CPC}
"""

from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import pandas as pd

from .action_constraints import resolve_action_constraints
from .config import PipelineConfig, coerce_config
from .investment import evaluate_loss_budget, summarize_loss_budget
from .lifecycle import StageLike, calculate_launch_investment, resolve_lifecycle_targets
from .logger import get_logger
from .max_bid import apply_bid_guard, compute_max_bid
from .models import (
    BidTargetEvaluation,
    InvestmentState,
    LifecycleStage,
    MaxBidInputs,
    SaleEvent,
    SalePhase,
    TargetAcosInputs,
)
from .optimal_ratio import MetricLike, as_daily_metric, estimate_optimal_ratio
from .sale_calendar import hours_since_sale_start, now_in, resolve_sale_phase
from .sale_cvr import expected_cvr_for_phase
from .target_acos import compute_target_acos

logger = get_logger(__name__)


class BidTargetCalculator:
    """
    Computes a bounded bid target for one product at a time.
    Holds only configuration and the sale calendar; every call is independent.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        events: Sequence[SaleEvent] = (),
        timezone: Optional[str] = None,
    ):
        self.config = coerce_config(config, PipelineConfig)
        self.events = tuple(events)
        self.timezone = timezone or self.config.timezone

    def evaluate(
        self,
        product_id: str,
        metrics: Iterable[MetricLike],
        stage: StageLike,
        price: float,
        expected_cvr: float,
        base_ltv_acos: float,
        sales_total_30d: float = 0.0,
        ad_sales_30d: float = 0.0,
        ltv_hard_cap: Optional[float] = None,
        window_revenue: Optional[float] = None,
        window_ad_spend: Optional[float] = None,
        sale_phase: Optional[SalePhase] = None,
        at: Optional[datetime] = None,
        sale_hours_elapsed: Optional[float] = None,
        sale_clicks: float = 0,
        sale_observed_cvr: float = 0.0,
        launch_metrics: Optional[Iterable[MetricLike]] = None,
        launch_investment_limit: Optional[float] = None,
        proposed_bid: Optional[float] = None,
    ) -> BidTargetEvaluation:
        """
        Main entry point.

        Without an explicit window, the loss budget is evaluated over the last
        evaluation_window_days of `metrics`. Without an explicit sale phase, it
        is resolved from the calendar at `at`, which is then required. Naive
        values of `at` are read in the calculator timezone.
        """
        cfg = self.config
        days = sorted((as_daily_metric(m) for m in metrics), key=lambda d: d.date)
        parsed_stage = LifecycleStage.parse(stage)
        g = cfg.estimator.margin_potential

        # 1. Optimal ratio
        estimate = estimate_optimal_ratio(days, cfg.estimator)

        # 2. Lifecycle targets
        targets = resolve_lifecycle_targets(estimate.ratio, g, stage, cfg.lifecycle)

        # 3. Loss budget over the rolling window
        if window_revenue is None or window_ad_spend is None:
            window = days[-cfg.loss_budget.evaluation_window_days:]
            window_revenue = sum(d.revenue for d in window)
            window_ad_spend = sum(d.ad_spend for d in window)
            period_start = window[0].date if window else None
            period_end = window[-1].date if window else None
        else:
            period_start = period_end = None

        loss_budget = evaluate_loss_budget(
            revenue=window_revenue,
            ad_spend=window_ad_spend,
            stage=parsed_stage,
            margin_potential=g,
            ratio=estimate.ratio,
            config=cfg.loss_budget,
            product_id=product_id,
            period_start=period_start,
            period_end=period_end,
        )

        launch_investment = None
        launch_consumption = None
        launch_usage = None
        if launch_metrics is not None:
            launch_days = [as_daily_metric(m) for m in launch_metrics]
            launch_investment = calculate_launch_investment(launch_days, estimate.ratio, g)
            launch_consumption = evaluate_loss_budget(
                revenue=sum(d.revenue for d in launch_days),
                ad_spend=sum(d.ad_spend for d in launch_days),
                stage=parsed_stage,
                margin_potential=g,
                ratio=estimate.ratio,
                config=cfg.loss_budget,
                product_id=product_id,
            ).ratio
            if launch_investment_limit:
                launch_usage = launch_investment.investment_total / launch_investment_limit

        rollup = summarize_loss_budget(
            loss_budget.ratio,
            launch_consumption,
            launch_usage,
            cfg.loss_budget_state,
            product_id=product_id,
            period_start=period_start,
            period_end=period_end,
        )

        # 4. Action constraints
        constraints = resolve_action_constraints(parsed_stage, loss_budget.state)

        # 5. Target ACOS
        sale_event = None
        if sale_phase is None:
            if at is None:
                raise ValueError(
                    f"{product_id}: `at` is required when the sale phase comes from the calendar"
                )
            resolution = resolve_sale_phase(
                now_in(self.timezone, at), self.events, cfg.cool_down_days
            )
            sale_phase = resolution.phase
            sale_event = resolution.event
        sale_phase = SalePhase(sale_phase)

        acos_inputs = TargetAcosInputs(
            targets=targets,
            stage=parsed_stage,
            sale_phase=sale_phase,
            sales_total_30d=sales_total_30d,
            ad_sales_30d=ad_sales_30d,
            base_ltv_acos=base_ltv_acos,
            ltv_hard_cap=ltv_hard_cap,
        )
        target_acos = compute_target_acos(acos_inputs, cfg.target_acos)

        # 6. Max CPC
        if sale_hours_elapsed is None and sale_event is not None:
            sale_hours_elapsed = hours_since_sale_start(now_in(self.timezone, at), sale_event)

        cvr_used, sale_cvr = expected_cvr_for_phase(
            sale_phase,
            expected_cvr,
            hours_since_start=sale_hours_elapsed,
            clicks=sale_clicks,
            observed_cvr=sale_observed_cvr,
            config=cfg.sale_cvr,
        )

        if sale_phase is SalePhase.MAIN_SALE:
            normal_target = compute_target_acos(
                acos_inputs.model_copy(update={"sale_phase": SalePhase.NORMAL}),
                cfg.target_acos,
            )
            bid_inputs = MaxBidInputs(
                price=price,
                ratio_target=normal_target.final_target,
                expected_cvr=expected_cvr,
                sale_phase=sale_phase,
                sale_ratio_target=target_acos.final_target,
                sale_expected_cvr=cvr_used,
            )
        else:
            bid_inputs = MaxBidInputs(
                price=price,
                ratio_target=target_acos.final_target,
                expected_cvr=expected_cvr,
                sale_phase=sale_phase,
            )
        max_bid = compute_max_bid(bid_inputs, cfg.max_bid)

        bid_guard = None
        if proposed_bid is not None:
            bid_guard = apply_bid_guard(proposed_bid, max_bid.ceiling, cfg.max_bid)

        evaluation = BidTargetEvaluation(
            product_id=product_id,
            stage=parsed_stage,
            sale_phase=sale_phase,
            estimate=estimate,
            targets=targets,
            loss_budget=loss_budget,
            constraints=constraints,
            target_acos=target_acos,
            max_bid=max_bid,
            launch_investment=launch_investment,
            bid_guard=bid_guard,
            loss_budget_summary=rollup,
            sale_cvr=sale_cvr,
        )

        logger.info(f"Evaluated {product_id}", extra=evaluation.summary())
        return evaluation


class EvaluationBook:
    """
    Latest evaluation per product, owned by whoever runs the batch.
    Nothing in the core keeps one globally.
    """

    def __init__(self):
        self._evaluations: Dict[str, BidTargetEvaluation] = {}

    def record(self, evaluation: BidTargetEvaluation) -> None:
        self._evaluations[evaluation.product_id] = evaluation

    def get(self, product_id: str) -> Optional[BidTargetEvaluation]:
        return self._evaluations.get(product_id)

    def remove(self, product_id: str) -> None:
        self._evaluations.pop(product_id, None)

    def clear(self) -> None:
        self._evaluations.clear()

    def __len__(self) -> int:
        return len(self._evaluations)

    def __contains__(self, product_id) -> bool:
        return product_id in self._evaluations

    def __iter__(self) -> Iterator[BidTargetEvaluation]:
        return iter(list(self._evaluations.values()))

    def in_state(self, state: InvestmentState) -> List[BidTargetEvaluation]:
        return [e for e in self if e.loss_budget.state is InvestmentState(state)]

    def at_or_above(self, state: InvestmentState) -> List[BidTargetEvaluation]:
        """Products whose investment state is at least as severe as `state`"""
        return [e for e in self if e.loss_budget.state >= InvestmentState(state)]

    def to_frame(self) -> pd.DataFrame:
        """One summary row per product, for the persistence collaborator"""
        rows = [e.summary() for e in self]
        if not rows:
            return pd.DataFrame(columns=["product_id"])
        return pd.DataFrame(rows).sort_values("product_id").reset_index(drop=True)
