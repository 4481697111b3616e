"""Eligibility predicates and soft rotation rules."""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence, Tuple

from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    Operator,
    OperatorType,
    RequirementType,
    ScheduleRequest,
    Task,
)

CONSECUTIVE_SAME_TASK = "consecutive_same_task"
CONSECUTIVE_HEAVY = "consecutive_heavy"


def can_assign_operator(
    operator: Operator,
    task: Task,
    day: str,
    cfg: SchedulerConfig,
    slot_type: Optional[RequirementType] = None,
) -> bool:
    """
    Check if an operator can fill a unit of a task on a day under the hard constraints.

    Args:
        operator: Operator to check
        task: Task to assign
        day: Weekday name
        cfg: SchedulerConfig (strict_skill_matching)
        slot_type: Type the unit asks for; None skips the type check

    Returns:
        True if the operator is eligible, False otherwise
    """
    # 1. Status and availability
    if not operator.is_active or not operator.is_available(day):
        return False

    # 2. Skill
    if cfg.strict_skill_matching and not operator.has_skill(task.required_skill):
        return False

    # 3. Coordinator rules apply both ways
    if not coordinator_rule_ok(operator, task):
        return False

    # 4. Type slot
    if slot_type is not None and not slot_type.accepts(operator.type):
        return False

    return True


def coordinator_rule_ok(operator: Operator, task: Task) -> bool:
    is_coordinator = operator.type is OperatorType.COORDINATOR
    return is_coordinator == task.coordinator_only


def eligible_operators(
    request: ScheduleRequest,
    task: Task,
    day: str,
    cfg: SchedulerConfig,
    slot_type: Optional[RequirementType] = None,
) -> List[Operator]:
    """Eligible operators in declaration order."""
    return [
        op for op in request.operators
        if can_assign_operator(op, task, day, cfg, slot_type)
    ]


def rotation_exempt(operator: Operator) -> bool:
    """
    Operators with at most one skill skip the rotation rules.

    Applies to every operator type, not only Flex: a single-skill Regular or
    Coordinator has nothing else to rotate to either.
    """
    return len(operator.skills) <= 1


def streak_before(day_tasks: Sequence[Optional[str]], day_index: int, task_id: str) -> int:
    """Number of consecutive days immediately before ``day_index`` spent on ``task_id``."""
    streak = 0
    i = day_index - 1
    while i >= 0 and day_tasks[i] == task_id:
        streak += 1
        i -= 1
    return streak


def soft_rule_breaks(
    operator: Operator,
    day_tasks: Sequence[Optional[str]],
    days: Sequence[str],
    tasks: Mapping[str, Task],
    cfg: SchedulerConfig,
) -> List[Tuple[str, str, str]]:
    """
    Find rotation rule breaks in one operator's week.

    Args:
        operator: Operator whose week is checked
        day_tasks: task id (or None) per day, aligned with ``days``
        days: Ordered weekday names
        tasks: task_id -> Task lookup
        cfg: SchedulerConfig (max_consecutive_days_on_task, allow_consecutive_heavy_shifts)

    Returns:
        List of (rule, day, detail)
    """
    if rotation_exempt(operator):
        return []

    breaks: List[Tuple[str, str, str]] = []
    limit = cfg.max_consecutive_days_on_task
    streak = 0
    for i, task_id in enumerate(day_tasks):
        if task_id is None:
            streak = 0
            continue
        streak = streak + 1 if i > 0 and day_tasks[i - 1] == task_id else 1
        if limit > 0 and streak > limit:
            breaks.append(
                (CONSECUTIVE_SAME_TASK, days[i], f"{operator.operator_id} on {task_id} for {streak} consecutive days")
            )
        if not cfg.allow_consecutive_heavy_shifts and i > 0 and day_tasks[i - 1] is not None:
            prev_task = tasks.get(day_tasks[i - 1])
            task = tasks.get(task_id)
            if prev_task is not None and task is not None and prev_task.heavy and task.heavy:
                breaks.append(
                    (CONSECUTIVE_HEAVY, days[i], f"{operator.operator_id} on heavy tasks {prev_task.task_id} then {task_id}")
                )
    return breaks
