"""
Configuration for the bid target core.

Each pipeline step takes an explicit, fully-defaulted config record. Invalid
combinations fail when the record is built (pydantic ValidationError), so a
bad bin width or inverted range never reaches the numeric code.

``Settings`` loads the same knobs from the environment for the orchestrating
caller; the core functions themselves never read it.
"""

from typing import Any, List, Optional, Type, TypeVar

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import LifecycleStage

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class _Config(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class EstimatorConfig(_Config):
    """Binned search for the profit-maximizing TACOS"""

    # Gross margin before ad cost (g)
    margin_potential: float = Field(default=0.55, gt=0, le=1)
    bin_width: float = Field(default=0.03, gt=0)
    min_ratio: float = Field(default=0.02, ge=0)
    max_ratio: float = Field(default=0.60, gt=0)
    min_days_per_bin: int = Field(default=3, ge=1)
    fallback_ratio: float = Field(default=0.15, ge=0)

    @model_validator(mode="after")
    def _check_range(self):
        if self.min_ratio >= self.max_ratio:
            raise ValueError(
                f"min_ratio ({self.min_ratio}) must be below max_ratio ({self.max_ratio})"
            )
        if self.bin_width > self.max_ratio - self.min_ratio:
            raise ValueError(
                f"bin_width ({self.bin_width}) is wider than the ratio range "
                f"[{self.min_ratio}, {self.max_ratio})"
            )
        return self


class LifecycleConfig(_Config):
    alpha_launch: float = Field(default=0.30, ge=0)
    alpha_harvest: float = Field(default=0.25, ge=0, le=1)
    # LAUNCH_SOFT applies alpha_launch * soft_factor
    soft_factor: float = Field(default=0.5, ge=0, le=1)


class StageMultiples(_Config):
    """Loss budget as a multiple of target profit, per lifecycle stage"""

    launch_hard: float = Field(default=2.5, gt=0)
    launch_soft: float = Field(default=2.0, gt=0)
    grow: float = Field(default=1.5, gt=0)
    harvest: float = Field(default=0.8, gt=0)

    def for_stage(self, stage: Optional[LifecycleStage]) -> float:
        if stage is LifecycleStage.LAUNCH_HARD:
            return self.launch_hard
        if stage is LifecycleStage.LAUNCH_SOFT:
            return self.launch_soft
        if stage is LifecycleStage.HARVEST:
            return self.harvest
        return self.grow


class LossBudgetConfig(_Config):
    evaluation_window_days: int = Field(default=30, ge=1)
    multiples: StageMultiples = StageMultiples()
    safe_below: float = Field(default=0.5, gt=0)
    watch_below: float = Field(default=0.8, gt=0)

    @model_validator(mode="after")
    def _check_thresholds(self):
        if not self.safe_below < self.watch_below <= 1.0:
            raise ValueError(
                "thresholds must satisfy safe_below < watch_below <= 1.0, got "
                f"{self.safe_below} / {self.watch_below}"
            )
        return self


class LossBudgetStateConfig(_Config):
    """Thresholds of the three-state SAFE / WARNING / CRITICAL rollup"""

    warning_threshold: float = Field(default=0.5, gt=0)
    critical_threshold: float = Field(default=0.9, gt=0)
    launch_invest_warning_threshold: float = Field(default=0.5, gt=0)
    launch_invest_critical_threshold: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _check_order(self):
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError("warning_threshold must be below critical_threshold")
        if self.launch_invest_warning_threshold >= self.launch_invest_critical_threshold:
            raise ValueError(
                "launch_invest_warning_threshold must be below launch_invest_critical_threshold"
            )
        return self


class LtvStageFactors(_Config):
    """Scales the LTV-based ACOS ceiling per stage"""

    launch: float = Field(default=1.1, gt=0)
    grow: float = Field(default=1.0, gt=0)
    harvest: float = Field(default=0.9, gt=0)

    def for_stage(self, stage: Optional[LifecycleStage]) -> float:
        if stage is not None and stage.is_launch:
            return self.launch
        if stage is LifecycleStage.HARVEST:
            return self.harvest
        return self.grow


class TargetAcosConfig(_Config):
    # TACOS multiplier during MAIN_SALE
    sale_multiplier: float = Field(default=1.3, gt=0)
    ad_share_default: float = Field(default=0.3, gt=0, le=1)
    ad_share_min: float = Field(default=0.1, gt=0, le=1)
    # Below this 30d total, the raw ad share is not trusted
    sales_floor: float = Field(default=100_000, ge=0)
    stage_factors: LtvStageFactors = LtvStageFactors()
    global_min: float = Field(default=0.05, ge=0)
    global_max: float = Field(default=0.80, gt=0)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.global_min > self.global_max:
            raise ValueError(
                f"global_min ({self.global_min}) exceeds global_max ({self.global_max})"
            )
        return self


class MaxBidConfig(_Config):
    safety_factor: float = Field(default=1.15, gt=0)
    # Promotional ceiling may be at most this multiple of the normal one
    uplift_cap: float = Field(default=2.0, ge=1)
    # Decimal places of the smallest currency unit (0 = yen, 2 = cents)
    bid_precision: int = Field(default=0, ge=0, le=4)


class UpliftBand(_Config):
    start_hour: float = Field(ge=0)
    end_hour: float
    uplift: float = Field(gt=0)


def validate_uplift_schedule(schedule: List[UpliftBand]) -> List[str]:
    """Return a list of problems with an hour-banded uplift schedule"""
    errors = []

    if not schedule:
        errors.append("uplift schedule is empty")
        return errors

    for i, band in enumerate(schedule):
        if band.start_hour >= band.end_hour:
            errors.append(
                f"band {i}: start_hour ({band.start_hour}) >= end_hour ({band.end_hour})"
            )
        if i > 0 and band.start_hour < schedule[i - 1].end_hour:
            errors.append(
                f"band {i}: start_hour ({band.start_hour}) overlaps band {i - 1} "
                f"ending at {schedule[i - 1].end_hour}"
            )

    return errors


def _default_schedule() -> List[UpliftBand]:
    return [
        UpliftBand(start_hour=0, end_hour=2, uplift=1.8),
        UpliftBand(start_hour=2, end_hour=12, uplift=1.3),
        UpliftBand(start_hour=12, end_hour=43, uplift=1.1),
        UpliftBand(start_hour=43, end_hour=48, uplift=1.7),
    ]


class SaleCvrConfig(_Config):
    """Expected CVR during a main sale event"""

    uplift_schedule: List[UpliftBand] = Field(default_factory=_default_schedule)
    max_uplift: float = Field(default=2.5, ge=1)
    base_clicks: float = Field(default=50, gt=0)
    min_live_weight: float = Field(default=0.3, ge=0, le=1)
    sale_duration_hours: float = Field(default=48, gt=0)

    @model_validator(mode="after")
    def _check_schedule(self):
        errors = validate_uplift_schedule(self.uplift_schedule)
        if errors:
            raise ValueError("; ".join(errors))
        return self


class PipelineConfig(_Config):
    """Every step's config, bundled for one product evaluation"""

    estimator: EstimatorConfig = EstimatorConfig()
    lifecycle: LifecycleConfig = LifecycleConfig()
    loss_budget: LossBudgetConfig = LossBudgetConfig()
    loss_budget_state: LossBudgetStateConfig = LossBudgetStateConfig()
    target_acos: TargetAcosConfig = TargetAcosConfig()
    max_bid: MaxBidConfig = MaxBidConfig()
    sale_cvr: SaleCvrConfig = SaleCvrConfig()
    # Days after a sale event still treated as COOL_DOWN
    cool_down_days: int = Field(default=2, ge=0)
    # Zone used to read naive evaluation times
    timezone: str = "Asia/Tokyo"

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value):
        if value not in pytz.all_timezones_set:
            raise ValueError(f"unknown timezone: {value}")
        return value


def coerce_config(value: Any, config_cls: Type[ConfigT]) -> ConfigT:
    """
    Accept None, a config instance or a plain dict.
    Dicts are validated here so bad values fail at call time.
    """
    if value is None:
        return config_cls()
    if isinstance(value, config_cls):
        return value
    if isinstance(value, dict):
        return config_cls.model_validate(value)
    raise TypeError(
        f"expected {config_cls.__name__} or dict, got {type(value).__name__}"
    )


class Settings(BaseSettings):
    """Environment overrides for the orchestrating caller"""

    model_config = SettingsConfigDict(populate_by_name=True, case_sensitive=False)

    # Estimator
    margin_potential: float = Field(default=0.55, alias="BT_MARGIN_POTENTIAL")
    bin_width: float = Field(default=0.03, alias="BT_BIN_WIDTH")
    min_ratio: float = Field(default=0.02, alias="BT_MIN_RATIO")
    max_ratio: float = Field(default=0.60, alias="BT_MAX_RATIO")
    min_days_per_bin: int = Field(default=3, alias="BT_MIN_DAYS_PER_BIN")
    fallback_ratio: float = Field(default=0.15, alias="BT_FALLBACK_RATIO")

    # Lifecycle
    alpha_launch: float = Field(default=0.30, alias="BT_ALPHA_LAUNCH")
    alpha_harvest: float = Field(default=0.25, alias="BT_ALPHA_HARVEST")
    soft_factor: float = Field(default=0.5, alias="BT_SOFT_FACTOR")

    # Target ACOS
    sale_multiplier: float = Field(default=1.3, alias="BT_SALE_MULTIPLIER")
    global_acos_min: float = Field(default=0.05, alias="BT_GLOBAL_ACOS_MIN")
    global_acos_max: float = Field(default=0.80, alias="BT_GLOBAL_ACOS_MAX")

    # Max bid
    safety_factor: float = Field(default=1.15, alias="BT_SAFETY_FACTOR")
    uplift_cap: float = Field(default=2.0, alias="BT_UPLIFT_CAP")
    bid_precision: int = Field(default=0, alias="BT_BID_PRECISION")

    # Sale calendar
    timezone: str = Field(default="Asia/Tokyo", alias="BT_TIMEZONE")
    cool_down_days: int = Field(default=2, alias="BT_COOL_DOWN_DAYS")

    def pipeline_config(self, **overrides: Any) -> PipelineConfig:
        """Build a validated PipelineConfig from these settings"""
        payload = {
            "estimator": {
                "margin_potential": self.margin_potential,
                "bin_width": self.bin_width,
                "min_ratio": self.min_ratio,
                "max_ratio": self.max_ratio,
                "min_days_per_bin": self.min_days_per_bin,
                "fallback_ratio": self.fallback_ratio,
            },
            "lifecycle": {
                "alpha_launch": self.alpha_launch,
                "alpha_harvest": self.alpha_harvest,
                "soft_factor": self.soft_factor,
            },
            "target_acos": {
                "sale_multiplier": self.sale_multiplier,
                "global_min": self.global_acos_min,
                "global_max": self.global_acos_max,
            },
            "max_bid": {
                "safety_factor": self.safety_factor,
                "uplift_cap": self.uplift_cap,
                "bid_precision": self.bid_precision,
            },
            "cool_down_days": self.cool_down_days,
            "timezone": self.timezone,
        }
        payload.update(overrides)
        return PipelineConfig.model_validate(payload)


__all__ = [
    "EstimatorConfig",
    "LifecycleConfig",
    "StageMultiples",
    "LossBudgetConfig",
    "LossBudgetStateConfig",
    "LtvStageFactors",
    "TargetAcosConfig",
    "MaxBidConfig",
    "UpliftBand",
    "SaleCvrConfig",
    "PipelineConfig",
    "Settings",
    "coerce_config",
    "validate_uplift_schedule",
]
