"""
Target ACOS integration
Converts the stage TACOS target into an ACOS target and takes the stricter
of it and the LTV-based ceiling, then clips to the global bounds.
"""

from typing import Optional, Tuple

from .config import TargetAcosConfig, coerce_config
from .lifecycle import StageLike, resolve_lifecycle_targets
from .logger import get_logger
from .models import (
    LifecycleStage,
    LifecycleTargets,
    SalePhase,
    TargetAcosBreakdown,
    TargetAcosInputs,
    TargetAcosResult,
)

logger = get_logger(__name__)


def stage_ratio(targets: LifecycleTargets, stage: StageLike) -> float:
    """Both launch stages use the launch target; unknown stages use grow"""
    parsed = LifecycleStage.parse(stage)
    if parsed is not None and parsed.is_launch:
        return targets.launch_target
    if parsed is LifecycleStage.HARVEST:
        return targets.harvest_target
    return targets.grow_target


def sale_adjusted_ratio(
    ratio: float, sale_phase: SalePhase, config: TargetAcosConfig
) -> Tuple[float, float]:
    """Return (ratio actually used, ratio under MAIN_SALE)"""
    sale_ratio = ratio * config.sale_multiplier
    used = sale_ratio if SalePhase(sale_phase) is SalePhase.MAIN_SALE else ratio
    return used, sale_ratio


def ad_sales_share(
    sales_total_30d: float, ad_sales_30d: float, config: TargetAcosConfig
) -> Tuple[float, float]:
    """
    Return (raw share, effective share).
    Below the sales floor the raw share is not trusted and the default is used.
    """
    if sales_total_30d < config.sales_floor or sales_total_30d <= 0:
        return 0.0, config.ad_share_default

    raw = ad_sales_30d / sales_total_30d
    return raw, max(raw, config.ad_share_min)


def ratio_to_acos(ratio: float, share: float) -> float:
    """TACOS / ad share; 0 when the share is not positive"""
    if share <= 0:
        return 0.0
    return ratio / share


def ltv_ceiling(
    base_ltv_acos: float,
    stage: StageLike,
    ltv_hard_cap: Optional[float],
    config: TargetAcosConfig,
) -> Tuple[float, float]:
    """Return (stage-adjusted LTV ACOS, same value clipped to the hard cap)"""
    adjusted = base_ltv_acos * config.stage_factors.for_stage(LifecycleStage.parse(stage))
    capped = adjusted if ltv_hard_cap is None else min(adjusted, ltv_hard_cap)
    return adjusted, capped


def compute_target_acos(
    inputs: TargetAcosInputs, config: Optional[TargetAcosConfig] = None
) -> TargetAcosResult:
    config = coerce_config(config, TargetAcosConfig)

    # (a) stage target, promoted during the main sale
    base_ratio = stage_ratio(inputs.targets, inputs.stage)
    ratio_used, sale_ratio = sale_adjusted_ratio(base_ratio, inputs.sale_phase, config)

    # (b) + (c) TACOS -> ACOS
    raw_share, share = ad_sales_share(inputs.sales_total_30d, inputs.ad_sales_30d, config)
    from_ratio = ratio_to_acos(ratio_used, share)

    # (d) LTV model
    adjusted_ltv, capped_ltv = ltv_ceiling(
        inputs.base_ltv_acos, inputs.stage, inputs.ltv_hard_cap, config
    )

    # (e) stricter model wins
    pre_clip = min(from_ratio, capped_ltv)
    ratio_model_selected = from_ratio <= capped_ltv

    # (f) global bounds
    final = min(max(pre_clip, config.global_min), config.global_max)
    was_clipped = final != pre_clip

    if was_clipped:
        logger.debug(
            f"Target ACOS {pre_clip:.4f} clipped to {final:.4f} "
            f"[{config.global_min}, {config.global_max}]"
        )

    breakdown = TargetAcosBreakdown(
        stage_ratio=base_ratio,
        sale_ratio=sale_ratio,
        stage_ratio_used=ratio_used,
        raw_ad_sales_share=raw_share,
        effective_ad_sales_share=share,
        base_ltv_acos=inputs.base_ltv_acos,
        adjusted_ltv_acos=adjusted_ltv,
        capped_ltv_acos=capped_ltv,
        pre_clip_target=pre_clip,
        was_clipped=was_clipped,
    )

    return TargetAcosResult(
        final_target=final,
        from_ratio_model=from_ratio,
        from_value_model=capped_ltv,
        stage_ratio_used=ratio_used,
        ad_sales_share_used=share,
        ratio_model_selected=ratio_model_selected,
        was_clipped=was_clipped,
        breakdown=breakdown,
    )


def compute_target_acos_simple(
    ratio: float,
    margin_potential: float,
    stage: StageLike,
    sale_phase: SalePhase,
    sales_total_30d: float,
    ad_sales_30d: float,
    base_ltv_acos: float,
    config: Optional[TargetAcosConfig] = None,
) -> float:
    """Final target ACOS straight from an optimal ratio, with default lifecycle offsets"""
    targets = resolve_lifecycle_targets(ratio, margin_potential, stage)
    result = compute_target_acos(
        TargetAcosInputs(
            targets=targets,
            stage=LifecycleStage.parse(stage),
            sale_phase=sale_phase,
            sales_total_30d=sales_total_30d,
            ad_sales_30d=ad_sales_30d,
            base_ltv_acos=base_ltv_acos,
        ),
        config,
    )
    return result.final_target
