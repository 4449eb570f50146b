"""
Permitted bid actions per lifecycle stage and investment state.
The table is built once at import and is read-only afterwards.
"""

from types import MappingProxyType
from typing import Mapping

from .lifecycle import StageLike
from .models import ActionConstraints, InvestmentState, LifecycleStage

DEFAULT_CONSTRAINTS = ActionConstraints()

# Launch never cuts hard, stops or negates: the product is still gathering data
_LAUNCH_BASE = {
    "allow_strong_down": False,
    "allow_stop": False,
    "allow_neg": False,
}

# Harvest is already conservative on increases
_HARVEST_BASE = {
    "max_increase_multiplier": 1.15,
    "strong_up_threshold_multiplier": 1.3,
}


def _cell(stage: LifecycleStage, state: InvestmentState, text: str, **fields) -> ActionConstraints:
    return DEFAULT_CONSTRAINTS.model_copy(
        update={**fields, "reason": f"{stage.value}/{state.value}: {text}"}
    )


def _launch_row(stage: LifecycleStage) -> Mapping[InvestmentState, ActionConstraints]:
    return MappingProxyType({
        InvestmentState.SAFE: _cell(
            stage, InvestmentState.SAFE,
            "normal actions allowed, STOP/NEG sealed",
            **_LAUNCH_BASE,
        ),
        InvestmentState.WATCH: _cell(
            stage, InvestmentState.WATCH,
            "moderate increases",
            **_LAUNCH_BASE,
            max_increase_multiplier=1.2,
            strong_up_threshold_multiplier=1.2,
        ),
        InvestmentState.LIMIT: _cell(
            stage, InvestmentState.LIMIT,
            "STRONG_UP forbidden, UP limited",
            **_LAUNCH_BASE,
            allow_strong_up=False,
            max_increase_multiplier=1.1,
            stage_adjustment_factor=0.9,
        ),
        InvestmentState.BREACH: _cell(
            stage, InvestmentState.BREACH,
            "UP actions forbidden, consider moving to GROW",
            **_LAUNCH_BASE,
            allow_strong_up=False,
            allow_up=False,
            stage_adjustment_factor=0.8,
        ),
    })


_GROW_ROW = MappingProxyType({
    InvestmentState.SAFE: _cell(
        LifecycleStage.GROW, InvestmentState.SAFE, "all actions allowed"
    ),
    InvestmentState.WATCH: _cell(
        LifecycleStage.GROW, InvestmentState.WATCH,
        "moderate increases",
        max_increase_multiplier=1.2,
        strong_up_threshold_multiplier=1.2,
    ),
    InvestmentState.LIMIT: _cell(
        LifecycleStage.GROW, InvestmentState.LIMIT,
        "STRONG_UP forbidden, DOWN slightly more aggressive",
        allow_strong_up=False,
        max_increase_multiplier=1.1,
        max_decrease_multiplier=0.2,
    ),
    InvestmentState.BREACH: _cell(
        LifecycleStage.GROW, InvestmentState.BREACH,
        "UP actions forbidden, consider shrinking ad scale",
        allow_strong_up=False,
        allow_up=False,
        max_decrease_multiplier=0.25,
        stage_adjustment_factor=0.9,
    ),
})

_HARVEST_ROW = MappingProxyType({
    InvestmentState.SAFE: _cell(
        LifecycleStage.HARVEST, InvestmentState.SAFE,
        "limited increases allowed",
        **_HARVEST_BASE,
    ),
    InvestmentState.WATCH: _cell(
        LifecycleStage.HARVEST, InvestmentState.WATCH,
        "STRONG_UP forbidden",
        **{**_HARVEST_BASE, "max_increase_multiplier": 1.1},
        allow_strong_up=False,
    ),
    InvestmentState.LIMIT: _cell(
        LifecycleStage.HARVEST, InvestmentState.LIMIT,
        "UP actions forbidden, secure profit with DOWN",
        **_HARVEST_BASE,
        allow_strong_up=False,
        allow_up=False,
        max_decrease_multiplier=0.2,
    ),
    InvestmentState.BREACH: _cell(
        LifecycleStage.HARVEST, InvestmentState.BREACH,
        "ad scale reduction mode",
        **_HARVEST_BASE,
        allow_strong_up=False,
        allow_up=False,
        max_decrease_multiplier=0.3,
    ),
})

ACTION_CONSTRAINT_TABLE: Mapping[LifecycleStage, Mapping[InvestmentState, ActionConstraints]] = MappingProxyType({
    LifecycleStage.LAUNCH_HARD: _launch_row(LifecycleStage.LAUNCH_HARD),
    LifecycleStage.LAUNCH_SOFT: _launch_row(LifecycleStage.LAUNCH_SOFT),
    LifecycleStage.GROW: _GROW_ROW,
    LifecycleStage.HARVEST: _HARVEST_ROW,
})


def resolve_action_constraints(stage: StageLike, state: InvestmentState) -> ActionConstraints:
    """
    Look up the constraints for a stage and investment state.
    Unknown stages get the permissive default.
    """
    row = ACTION_CONSTRAINT_TABLE.get(LifecycleStage.parse(stage))
    if row is None:
        return DEFAULT_CONSTRAINTS
    return row[InvestmentState(state)]
