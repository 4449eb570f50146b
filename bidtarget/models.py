"""
Records and enumerations shared across the bid target pipeline.

Every result is an immutable pydantic model created fresh on each
evaluation. Enumerations are ``str`` valued so they serialize as their
names in logs and JSON.
"""

from __future__ import annotations

from datetime import date as Date
from datetime import datetime
from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# Enumerations
# =============================================================================

class LifecycleStage(str, Enum):
    """Commercial phase of a product"""

    LAUNCH_HARD = "LAUNCH_HARD"
    LAUNCH_SOFT = "LAUNCH_SOFT"
    GROW = "GROW"
    HARVEST = "HARVEST"

    @property
    def is_launch(self) -> bool:
        return self in (LifecycleStage.LAUNCH_HARD, LifecycleStage.LAUNCH_SOFT)

    @classmethod
    def parse(cls, value) -> Optional["LifecycleStage"]:
        """Lenient conversion; unknown values map to None"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return None
        return None


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class InvestmentState(str, Enum):
    """
    Loss budget health, ordered by severity:
    SAFE < WATCH < LIMIT < BREACH
    """

    SAFE = "SAFE"
    WATCH = "WATCH"
    LIMIT = "LIMIT"
    BREACH = "BREACH"

    @property
    def severity(self) -> int:
        return _INVESTMENT_SEVERITY[self.value]

    def __lt__(self, other):
        if not isinstance(other, InvestmentState):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other):
        if not isinstance(other, InvestmentState):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other):
        if not isinstance(other, InvestmentState):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other):
        if not isinstance(other, InvestmentState):
            return NotImplemented
        return self.severity >= other.severity


_INVESTMENT_SEVERITY = {"SAFE": 0, "WATCH": 1, "LIMIT": 2, "BREACH": 3}


class LossBudgetState(str, Enum):
    """Three-state rollup consumed by keyword-level collaborators"""

    SAFE = "SAFE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class BidAction(str, Enum):
    STRONG_UP = "STRONG_UP"
    UP = "UP"
    KEEP = "KEEP"
    DOWN = "DOWN"
    STRONG_DOWN = "STRONG_DOWN"
    STOP = "STOP"
    NEG = "NEG"


class SalePhase(str, Enum):
    """Position relative to a scheduled sales event"""

    NORMAL = "NORMAL"
    PRE_SALE = "PRE_SALE"
    MAIN_SALE = "MAIN_SALE"
    COOL_DOWN = "COOL_DOWN"


# =============================================================================
# Inputs
# =============================================================================

class DailyMetric(_Record):
    """One product-day of revenue and ad spend, as supplied by the warehouse"""

    date: Date
    revenue: float
    ad_spend: float = Field(validation_alias=AliasChoices("ad_spend", "adSpend"))


# =============================================================================
# Optimal ratio estimation
# =============================================================================

class RatioBin(_Record):
    lower_bound: float
    upper_bound: float
    days: int
    average_ratio: float
    total_profit: float
    average_profit: float


class OptimalRatioEstimate(_Record):
    ratio: float
    confidence: Confidence
    used_fallback: bool
    valid_days_used: int
    valid_bin_count: int
    optimal_bin_profit: Optional[float] = None
    optimal_bin_ratio: Optional[float] = None
    note: str = ""


# =============================================================================
# Lifecycle
# =============================================================================

class LifecycleTargets(_Record):
    launch_target: float
    grow_target: float
    harvest_target: float
    current_target: float
    current_stage: Optional[LifecycleStage]
    source_ratio: float
    margin_potential: float


class LaunchInvestment(_Record):
    investment_total: float
    sales_total: float
    average_ratio: float
    recovery_sales: Optional[float] = None
    recovery_profit: Optional[float] = None
    note: str = ""


# =============================================================================
# Investment state
# =============================================================================

class PeriodPerformance(_Record):
    """Revenue and ad spend of one product over an evaluation window"""

    product_id: str
    revenue: float
    ad_spend: float
    stage: Optional[LifecycleStage] = None
    period_start: Optional[Date] = None
    period_end: Optional[Date] = None


class LossBudgetMetrics(_Record):
    product_id: Optional[str] = None
    stage: Optional[LifecycleStage]
    margin_potential: float
    source_ratio: float
    revenue: float
    ad_spend: float
    target_net_margin: float
    target_profit: float
    actual_profit: float
    profit_gap: float
    budget_multiple: float
    budget: float
    ratio: float
    state: InvestmentState
    period_start: Optional[Date] = None
    period_end: Optional[Date] = None
    note: str = ""


class LossBudgetSummary(_Record):
    product_id: Optional[str] = None
    rolling_consumption: float
    launch_consumption: float
    launch_invest_usage: float
    max_consumption: float
    state: LossBudgetState
    period_start: Optional[Date] = None
    period_end: Optional[Date] = None


class LossBudgetAlert(_Record):
    should_alert: bool
    level: str  # info | warning | critical
    message: str


# =============================================================================
# Action constraints
# =============================================================================

class ActionConstraints(_Record):
    allow_strong_up: bool = True
    allow_up: bool = True
    allow_down: bool = True
    allow_strong_down: bool = True
    allow_stop: bool = True
    allow_neg: bool = True
    max_increase_multiplier: float = 1.3
    max_decrease_multiplier: float = 0.15
    strong_up_threshold_multiplier: float = 1.0
    stage_adjustment_factor: float = 1.0
    reason: str = "unrestricted"

    def permits(self, action: BidAction) -> bool:
        """Whether a bid action is allowed under these constraints"""
        return {
            BidAction.STRONG_UP: self.allow_strong_up,
            BidAction.UP: self.allow_up,
            BidAction.KEEP: True,
            BidAction.DOWN: self.allow_down,
            BidAction.STRONG_DOWN: self.allow_strong_down,
            BidAction.STOP: self.allow_stop,
            BidAction.NEG: self.allow_neg,
        }[BidAction(action)]


# =============================================================================
# Target ACOS
# =============================================================================

class TargetAcosInputs(_Record):
    """Context for integrating the ratio model with the LTV model"""

    targets: LifecycleTargets
    stage: Optional[LifecycleStage]
    sale_phase: SalePhase = SalePhase.NORMAL
    sales_total_30d: float
    ad_sales_30d: float
    base_ltv_acos: float
    ltv_hard_cap: Optional[float] = None


class TargetAcosBreakdown(_Record):
    stage_ratio: float
    sale_ratio: float
    stage_ratio_used: float
    raw_ad_sales_share: float
    effective_ad_sales_share: float
    base_ltv_acos: float
    adjusted_ltv_acos: float
    capped_ltv_acos: float
    pre_clip_target: float
    was_clipped: bool


class TargetAcosResult(_Record):
    final_target: float
    from_ratio_model: float
    from_value_model: float
    stage_ratio_used: float
    ad_sales_share_used: float
    ratio_model_selected: bool
    was_clipped: bool
    breakdown: TargetAcosBreakdown


# =============================================================================
# Max bid
# =============================================================================

class MaxBidInputs(_Record):
    price: float
    ratio_target: float
    expected_cvr: float
    sale_phase: SalePhase = SalePhase.NORMAL
    sale_ratio_target: Optional[float] = None
    sale_expected_cvr: Optional[float] = None


class MaxBidBreakdown(_Record):
    price: float
    ratio_used: float
    expected_cvr_used: float
    hard_ceiling: float
    ceiling_with_safety: float
    pre_cap_ceiling: Optional[float] = None


class MaxBidResult(_Record):
    ceiling: float
    normal_ceiling: float
    was_uplift_capped: bool
    breakdown: MaxBidBreakdown


class BidGuardResult(_Record):
    final_bid: float
    original_bid: float
    was_clipped: bool
    clipped_by: float
    ceiling: float
    reason: Optional[str] = None


# =============================================================================
# Promotional CVR
# =============================================================================

class SaleCvrBreakdown(_Record):
    normal_cvr: float
    uplift: float
    prior_cvr_raw: float
    prior_cvr: float
    live_weight_raw: float
    live_weight_clipped: float
    live_weight: float
    blended_cvr_raw: float
    was_max_uplift_applied: bool


class SaleCvrResult(_Record):
    expected_cvr: float
    breakdown: SaleCvrBreakdown


# =============================================================================
# Sale calendar
# =============================================================================

class SaleEvent(_Record):
    """A scheduled sales event in its local timezone"""

    id: str
    label: str
    grade: Literal["S", "A", "B"] = "S"
    timezone: str = "Asia/Tokyo"
    start: datetime
    end: datetime
    prep_days: int = Field(default=3, ge=0)
    affects_bidding: bool = True

    @model_validator(mode="after")
    def _check_window(self):
        if self.end <= self.start:
            raise ValueError(f"event {self.id}: end must be after start")
        return self


class SalePhaseResolution(_Record):
    phase: SalePhase
    event: Optional[SaleEvent] = None


# =============================================================================
# Full evaluation
# =============================================================================

class BidTargetEvaluation(_Record):
    product_id: str
    stage: Optional[LifecycleStage]
    sale_phase: SalePhase
    estimate: OptimalRatioEstimate
    targets: LifecycleTargets
    loss_budget: LossBudgetMetrics
    constraints: ActionConstraints
    target_acos: TargetAcosResult
    max_bid: MaxBidResult
    launch_investment: Optional[LaunchInvestment] = None
    bid_guard: Optional[BidGuardResult] = None
    loss_budget_summary: Optional[LossBudgetSummary] = None
    sale_cvr: Optional[SaleCvrResult] = None

    def summary(self) -> Dict[str, object]:
        """Flat view for logging and persistence collaborators"""
        return {
            "product_id": self.product_id,
            "stage": self.stage.value if self.stage else None,
            "sale_phase": self.sale_phase.value,
            "ratio_estimate": self.estimate.ratio,
            "confidence": self.estimate.confidence.value,
            "used_fallback": self.estimate.used_fallback,
            "stage_target": self.targets.current_target,
            "investment_state": self.loss_budget.state.value,
            "target_acos": self.target_acos.final_target,
            "max_cpc": self.max_bid.ceiling,
            "constraint_reason": self.constraints.reason,
            "loss_budget_state": (
                self.loss_budget_summary.state.value if self.loss_budget_summary else None
            ),
            "final_bid": self.bid_guard.final_bid if self.bid_guard else None,
        }
