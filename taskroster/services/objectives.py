"""Objective vector, Pareto dominance and incremental objective bookkeeping."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from taskroster.config import ObjectiveWeights, SchedulerConfig
from taskroster.domain.models import AssignmentCell, ScheduleRequest

from .constraints import soft_rule_breaks

MINIMIZE = "min"
MAXIMIZE = "max"

OBJECTIVE_DIRECTIONS: Dict[str, str] = {
    "fairness": MINIMIZE,
    "workload_balance": MINIMIZE,
    "skill_match": MAXIMIZE,
    "preference": MAXIMIZE,
    "variety": MAXIMIZE,
}


@dataclass(frozen=True)
class ObjectiveVector:
    fairness: float  # std dev of per-operator workload
    workload_balance: float  # max - min workload among working operators
    skill_match: float  # % of assignments where the operator holds the skill
    preference: float  # % of assignments (of operators with preferences) on a preferred task
    variety: float  # average unique tasks per working operator

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def dominates(a: ObjectiveVector, b: ObjectiveVector) -> bool:
    """True if ``a`` is at least as good as ``b`` everywhere and strictly better somewhere."""
    strictly_better = False
    for name, direction in OBJECTIVE_DIRECTIONS.items():
        va, vb = getattr(a, name), getattr(b, name)
        if direction == MINIMIZE:
            if va > vb:
                return False
            if va < vb:
                strictly_better = True
        else:
            if va < vb:
                return False
            if va > vb:
                strictly_better = True
    return strictly_better


def combine_scores(vector: ObjectiveVector, weights: ObjectiveWeights) -> float:
    """
    Normalise each objective to 0-100 and take the weighted mean.

    Fairness: std dev 0 -> 100, 2+ -> 0. Workload balance: 0 -> 100, 5+ -> 0.
    Variety: 1 unique task -> 0, 5+ -> 100. Percent objectives are used as is.
    """
    fairness_norm = max(0.0, 100.0 - (vector.fairness / 2.0) * 100.0)
    workload_norm = max(0.0, 100.0 - (vector.workload_balance / 5.0) * 100.0)
    variety_norm = min(100.0, max(0.0, ((vector.variety - 1.0) / 4.0) * 100.0))

    total = (
        fairness_norm * weights.fairness
        + workload_norm * weights.workload_balance
        + vector.skill_match * weights.skill_match
        + vector.preference * weights.preference
        + variety_norm * weights.variety
    )
    weight_sum = weights.total()
    return total / weight_sum if weight_sum > 0 else 0.0


class ObjectiveState:
    """
    Mutable objective bookkeeping over one weekly grid.

    ``set_task`` updates counters in O(days) so local search can score a move,
    read the new value and revert it without rebuilding the schedule.
    """

    def __init__(
        self,
        request: ScheduleRequest,
        cfg: Optional[SchedulerConfig] = None,
        cells: Iterable[AssignmentCell] = (),
    ):
        self.request = request
        self.cfg = cfg or SchedulerConfig()
        self.days = list(request.days)
        self.day_index = {d: i for i, d in enumerate(self.days)}
        self.operators = {op.operator_id: op for op in request.operators}
        self.tasks = {t.task_id: t for t in request.tasks}

        self.grid: Dict[str, List[Optional[str]]] = {
            op_id: [None] * len(self.days) for op_id in self.operators
        }
        self.workload: Dict[str, int] = {op_id: 0 for op_id in self.operators}
        self.task_counts: Dict[str, Dict[str, int]] = {op_id: {} for op_id in self.operators}
        self.soft_breaks: Dict[str, int] = {op_id: 0 for op_id in self.operators}
        self.total = 0
        self.skill_hits = 0
        self.pref_total = 0
        self.pref_hits = 0

        for cell in cells:
            if cell.task_id is not None and cell.operator_id in self.operators and cell.day in self.day_index:
                self.set_task(cell.operator_id, self.day_index[cell.day], cell.task_id)

    def _count(self, op_id: str, task_id: str, sign: int) -> None:
        op = self.operators[op_id]
        task = self.tasks.get(task_id)
        self.total += sign
        self.workload[op_id] += sign
        counts = self.task_counts[op_id]
        counts[task_id] = counts.get(task_id, 0) + sign
        if counts[task_id] == 0:
            del counts[task_id]
        if task is not None and op.has_skill(task.required_skill):
            self.skill_hits += sign
        if op.preferred_tasks:
            self.pref_total += sign
            if task_id in op.preferred_tasks:
                self.pref_hits += sign

    def set_task(self, op_id: str, day_index: int, task_id: Optional[str]) -> Optional[str]:
        """Place ``task_id`` (or clear with None) in a cell; returns the previous task id."""
        row = self.grid[op_id]
        previous = row[day_index]
        if previous == task_id:
            return previous
        if previous is not None:
            self._count(op_id, previous, -1)
        if task_id is not None:
            self._count(op_id, task_id, +1)
        row[day_index] = task_id
        self.soft_breaks[op_id] = len(
            soft_rule_breaks(self.operators[op_id], row, self.days, self.tasks, self.cfg)
        )
        return previous

    def task_at(self, op_id: str, day_index: int) -> Optional[str]:
        return self.grid[op_id][day_index]

    def vector(self) -> ObjectiveVector:
        counted = [
            self.workload[op_id]
            for op_id, op in self.operators.items()
            if op.is_active or self.workload[op_id] > 0
        ]
        if counted:
            mean = sum(counted) / len(counted)
            fairness = math.sqrt(sum((c - mean) ** 2 for c in counted) / len(counted))
        else:
            fairness = 0.0

        working = [c for c in counted if c > 0]
        workload_balance = float(max(working) - min(working)) if working else 0.0

        skill_match = 100.0 * self.skill_hits / self.total if self.total else 100.0
        preference = 100.0 * self.pref_hits / self.pref_total if self.pref_total else 100.0

        unique = [len(self.task_counts[op_id]) for op_id in self.operators if self.workload[op_id] > 0]
        variety = sum(unique) / len(unique) if unique else 0.0

        return ObjectiveVector(fairness, workload_balance, skill_match, preference, variety)

    def total_soft_breaks(self) -> int:
        return sum(self.soft_breaks.values())

    def score(self, weights: ObjectiveWeights) -> float:
        """Combined objective minus the rotation penalty per soft-rule break."""
        return combine_scores(self.vector(), weights) - (
            self.cfg.scoring.rotation_penalty * self.total_soft_breaks()
        )


def calculate_objectives(
    cells: Iterable[AssignmentCell],
    request: ScheduleRequest,
    cfg: Optional[SchedulerConfig] = None,
) -> ObjectiveVector:
    """
    Score a set of assignment cells on every objective.

    Args:
        cells: Assignment cells (empty cells are ignored)
        request: Request the cells were produced for
        cfg: SchedulerConfig (defaults when omitted)

    Returns:
        ObjectiveVector
    """
    return ObjectiveState(request, cfg, cells).vector()


def score_schedule(
    cells: Iterable[AssignmentCell],
    request: ScheduleRequest,
    cfg: SchedulerConfig,
    weights: Optional[ObjectiveWeights] = None,
) -> float:
    """Single comparable score used by local search and candidate ranking."""
    return ObjectiveState(request, cfg, cells).score(weights or cfg.weights)

