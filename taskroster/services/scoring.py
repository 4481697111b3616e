"""Scoring functions for operator fitness, fairness and rotation."""

from __future__ import annotations

import hashlib
from typing import Optional, Sequence

from taskroster.config import SchedulerConfig
from taskroster.domain.models import Operator, Task

from .constraints import rotation_exempt, streak_before


def jitter(seed: int, *parts) -> float:
    """
    Deterministic pseudo-random value in [0, 1) for a seed and a slot identity.

    The same (seed, parts) always produce the same value across runs and processes.
    """
    key = "|".join([str(seed)] + [str(p) for p in parts]).encode("utf-8")
    digest = hashlib.sha256(key).digest()
    return int.from_bytes(digest[:8], "big") / float(1 << 64)


def calculate_operator_score(
    operator: Operator,
    task: Task,
    day_index: int,
    day_tasks: Sequence[Optional[str]],
    workload: int,
    cfg: SchedulerConfig,
    previous_task: Optional[Task] = None,
    seed: Optional[int] = None,
) -> float:
    """
    Calculate overall score for assigning an operator to a task on one day.

    Higher score = better candidate.

    Args:
        operator: Operator to score
        task: Task to assign
        day_index: Position of the day in the request's day list
        day_tasks: The operator's task id (or None) per day so far
        workload: Operator's assignments so far this week
        cfg: SchedulerConfig with scoring weights, rotation rules and jitter settings
        previous_task: Task the operator worked the previous day, if any
        seed: Jitter seed (defaults to cfg.random_seed)

    Returns:
        Overall score (higher is better)
    """
    w = cfg.scoring
    score = w.preference * preference_fit(operator, task)
    score += w.skill * skill_fit(operator, task)
    # Fairness deficit: favour operators with fewer assignments so far
    score += w.fairness / (1.0 + workload)
    score -= w.rotation_penalty * rotation_penalty(operator, task, day_index, day_tasks, cfg, previous_task)
    if cfg.randomization > 0:
        score += cfg.randomization * jitter(
            cfg.random_seed if seed is None else seed, operator.operator_id, task.task_id, day_index
        )
    return score


def preference_fit(operator: Operator, task: Task) -> float:
    """1.0 for the first preference, decaying for later ones, 0 when not preferred."""
    rank = operator.preference_rank(task.task_id)
    if rank is None:
        return 0.0
    return 1.0 / (1.0 + rank)


def skill_fit(operator: Operator, task: Task) -> float:
    """
    Skill-match quality in [0, 1].

    Holding the skill scores 0.5 plus a specialist bonus that shrinks with the number
    of other skills, so generalists stay free for scarcer tasks.
    """
    if not operator.has_skill(task.required_skill):
        return 0.0
    return 0.5 + 0.5 / len(operator.skills)


def rotation_penalty(
    operator: Operator,
    task: Task,
    day_index: int,
    day_tasks: Sequence[Optional[str]],
    cfg: SchedulerConfig,
    previous_task: Optional[Task] = None,
) -> float:
    """Number of rotation rules the assignment would break (0, 1 or 2)."""
    if rotation_exempt(operator):
        return 0.0
    penalty = 0.0
    limit = cfg.max_consecutive_days_on_task
    if limit > 0 and streak_before(day_tasks, day_index, task.task_id) >= limit:
        penalty += 1.0
    if (
        not cfg.allow_consecutive_heavy_shifts
        and task.heavy
        and previous_task is not None
        and previous_task.heavy
    ):
        penalty += 1.0
    return penalty
