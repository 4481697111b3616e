"""Services for scheduling logic."""

from .constraints import can_assign_operator, eligible_operators, soft_rule_breaks
from .objectives import ObjectiveState, ObjectiveVector, calculate_objectives, combine_scores, dominates
from .requirements import HeadcountGroup, Slot, build_groups_for_day, build_requirements_for_day
from .scoring import calculate_operator_score, jitter

__all__ = [
    "can_assign_operator",
    "eligible_operators",
    "soft_rule_breaks",
    "ObjectiveState",
    "ObjectiveVector",
    "calculate_objectives",
    "combine_scores",
    "dominates",
    "HeadcountGroup",
    "Slot",
    "build_groups_for_day",
    "build_requirements_for_day",
    "calculate_operator_score",
    "jitter",
]
