"""Greedy assigner: fast, irreversible, scarcity-ordered baseline."""

from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple

from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    Operator,
    OperatorType,
    ScheduleRequest,
    ScheduleResult,
    ScheduleStatus,
    ScheduleWarning,
    ShortfallRecord,
    WarningKind,
)
from taskroster.logger import get_logger
from taskroster.services.constraints import can_assign_operator
from taskroster.services.requirements import build_groups_for_day, build_requirements_for_day, has_open_unit
from taskroster.services.scoring import calculate_operator_score

from .base import BaseScheduler, Deadline, FixedCells, Grid, build_result, collect_fixed_cells, shortfall_warnings

logger = get_logger(__name__)


def place_fixed_cells(
    request: ScheduleRequest,
    cfg: SchedulerConfig,
    fixed: FixedCells,
    day: str,
    include_pinned: bool = True,
) -> Tuple[Dict[str, str], List[ScheduleWarning]]:
    """
    Resolve the cells fixed on one day.

    Locked cells are always kept. Pinned cells are kept, in declaration order, only
    while the operator is still eligible for the task and the task still has an open
    headcount unit for the operator's type once locked cells are counted. Dropped pins
    come back as warnings.

    Returns:
        (operator_id -> task_id kept for the day, pinned_overridden warnings)
    """
    kept = dict(fixed.locked.get(day, {}))
    warnings: List[ScheduleWarning] = []
    if not include_pinned:
        return kept, warnings

    fixed_types: Dict[str, List[OperatorType]] = {}
    for op_id, task_id in kept.items():
        op = request.operator(op_id)
        if op is not None:
            fixed_types.setdefault(task_id, []).append(op.type)

    for op_id, task_id in fixed.pinned.get(day, {}).items():
        if op_id in kept:
            continue
        op = request.operator(op_id)
        task = request.task(task_id)
        if op is None or task is None or not can_assign_operator(op, task, day, cfg):
            reason = "operator no longer eligible"
        elif not has_open_unit(
            list(build_requirements_for_day(request, task, day)),
            fixed_types.get(task_id, []),
            op.type,
        ):
            reason = "task already fully staffed"
        else:
            kept[op_id] = task_id
            fixed_types.setdefault(task_id, []).append(op.type)
            continue
        warnings.append(ScheduleWarning(
            kind=WarningKind.PINNED_OVERRIDDEN,
            message=f"Pinned cell {op_id}/{day} on {task_id} dropped: {reason}",
            day=day, operator_id=op_id, task_id=task_id,
        ))
    return kept, warnings
    for op_id, task_id in fixed.pinned.get(day, {}).items():
        if op_id in kept:
            continue
        op = request.operator(op_id)
        task = request.task(task_id)
        if op is not None and task is not None and can_assign_operator(op, task, day, cfg):
            kept[op_id] = task_id
        else:
            warnings.append(ScheduleWarning(
                kind=WarningKind.PINNED_OVERRIDDEN,
                message=f"Pinned cell {op_id}/{day} on {task_id} dropped: operator no longer eligible",
                day=day, operator_id=op_id, task_id=task_id,
            ))
    return kept, warnings


class GreedyScheduler(BaseScheduler):
    """
    Days in order; within a day, headcount groups with the fewest eligible operators first.

    Each unit goes to the top-scoring free eligible operator. Decisions are never revisited.
    """

    algorithm = "greedy"

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def make_schedule(
        self,
        request: ScheduleRequest,
        cfg: SchedulerConfig,
        deadline: Optional[Deadline] = None,
    ) -> ScheduleResult:
        deadline = self._deadline(cfg, deadline)
        seed = cfg.random_seed if self.seed is None else self.seed
        logger.info(f"Greedy: scheduling {len(request.operators)} operators over {len(request.days)} days")

        fixed = collect_fixed_cells(request, cfg)
        tasks = {t.task_id: t for t in request.tasks}
        op_index = {op.operator_id: i for i, op in enumerate(request.operators)}
        day_tasks: Dict[str, List[Optional[str]]] = {
            op.operator_id: [None] * len(request.days) for op in request.operators
        }
        workload: Dict[str, int] = {op.operator_id: 0 for op in request.operators}

        grid: Grid = {}
        warnings: List[ScheduleWarning] = []
        shortfalls: List[ShortfallRecord] = []

        for di, day in enumerate(request.days):
            kept, pin_warnings = place_fixed_cells(request, cfg, fixed, day)
            warnings.extend(pin_warnings)
            for op_id, task_id in kept.items():
                grid[(op_id, day)] = task_id
                if op_id in day_tasks:
                    day_tasks[op_id][di] = task_id
                    workload[op_id] += 1

            used: Set[str] = set(kept) | fixed.blocked.get(day, set())
            groups = build_groups_for_day(request, day, kept)

            # Static scarcity: eligible operators still free at the start of the day
            eligible: Dict[int, List[Operator]] = {}
            for g in groups:
                task = tasks[g.task_id]
                eligible[g.order] = [
                    op for op in request.operators
                    if op.operator_id not in used and can_assign_operator(op, task, day, cfg, g.type)
                ]
            ordered = sorted(groups, key=lambda g: (len(eligible[g.order]), g.order))

            for g in ordered:
                task = tasks[g.task_id]
                filled = 0
                for _ in range(g.count):
                    free = [op for op in eligible[g.order] if op.operator_id not in used]
                    if not free:
                        break
                    best = max(
                        free,
                        key=lambda op: (
                            calculate_operator_score(
                                op, task, di, day_tasks[op.operator_id], workload[op.operator_id], cfg,
                                previous_task=tasks.get(day_tasks[op.operator_id][di - 1]) if di > 0 else None,
                                seed=seed,
                            ),
                            -op_index[op.operator_id],
                        ),
                    )
                    used.add(best.operator_id)
                    grid[(best.operator_id, day)] = task.task_id
                    day_tasks[best.operator_id][di] = task.task_id
                    workload[best.operator_id] += 1
                    filled += 1
                if filled < g.count:
                    shortfalls.append(ShortfallRecord(
                        task_id=g.task_id,
                        day=day,
                        operator_type=g.type,
                        required=g.count,
                        available=len(eligible[g.order]),
                        shortfall=g.count - filled,
                    ))

        status = ScheduleStatus.COMPLETE if not shortfalls else ScheduleStatus.PARTIAL
        warnings.extend(shortfall_warnings(shortfalls))
        if shortfalls:
            logger.warning(f"Greedy: {sum(s.shortfall for s in shortfalls)} unit(s) left unfilled")
        logger.info(f"Greedy: {len(grid)} assignments ({status.value})")
        return build_result(
            request, grid, self.algorithm,
            warnings=warnings, status=status, shortfalls=shortfalls,
            stats={"elapsed_seconds": deadline.elapsed()},
        )
