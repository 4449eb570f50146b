# Re-export the public entry points of the bid target core
from .action_constraints import ACTION_CONSTRAINT_TABLE, resolve_action_constraints
from .config import (
    EstimatorConfig,
    LifecycleConfig,
    LossBudgetConfig,
    LossBudgetStateConfig,
    MaxBidConfig,
    PipelineConfig,
    SaleCvrConfig,
    Settings,
    TargetAcosConfig,
)
from .investment import (
    build_alert,
    classify_investment_state,
    evaluate_loss_budget,
    evaluate_many,
    resolve_loss_budget_state,
    summarize_loss_budget,
)
from .lifecycle import calculate_launch_investment, resolve_lifecycle_targets
from .logger import get_logger
from .max_bid import apply_bid_guard, compute_max_bid, guard_bid
from .models import (
    BidAction,
    Confidence,
    DailyMetric,
    InvestmentState,
    LifecycleStage,
    LossBudgetState,
    SaleEvent,
    SalePhase,
)
from .optimal_ratio import estimate_optimal_ratio, metrics_from_frame
from .pipeline import BidTargetCalculator, EvaluationBook
from .sale_calendar import resolve_sale_phase
from .sale_cvr import compute_sale_cvr, expected_cvr_for_phase
from .target_acos import compute_target_acos, compute_target_acos_simple

__version__ = "1.0.0"

__all__ = [
    "ACTION_CONSTRAINT_TABLE",
    "resolve_action_constraints",
    "EstimatorConfig",
    "LifecycleConfig",
    "LossBudgetConfig",
    "LossBudgetStateConfig",
    "MaxBidConfig",
    "PipelineConfig",
    "SaleCvrConfig",
    "Settings",
    "TargetAcosConfig",
    "build_alert",
    "classify_investment_state",
    "evaluate_loss_budget",
    "evaluate_many",
    "resolve_loss_budget_state",
    "summarize_loss_budget",
    "calculate_launch_investment",
    "resolve_lifecycle_targets",
    "get_logger",
    "apply_bid_guard",
    "compute_max_bid",
    "guard_bid",
    "BidAction",
    "Confidence",
    "DailyMetric",
    "InvestmentState",
    "LifecycleStage",
    "LossBudgetState",
    "SaleEvent",
    "SalePhase",
    "estimate_optimal_ratio",
    "metrics_from_frame",
    "BidTargetCalculator",
    "EvaluationBook",
    "resolve_sale_phase",
    "compute_sale_cvr",
    "expected_cvr_for_phase",
    "compute_target_acos",
    "compute_target_acos_simple",
]
