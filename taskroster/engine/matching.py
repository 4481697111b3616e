"""Max-matching mode: per-day bipartite matching of headcount units to operators."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ortools.graph.python import max_flow

from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    Operator,
    ScheduleRequest,
    ScheduleResult,
    ScheduleStatus,
    ScheduleWarning,
    ShortfallRecord,
    WarningKind,
)
from taskroster.exceptions import SchedulingError
from taskroster.logger import get_logger
from taskroster.services.constraints import can_assign_operator
from taskroster.services.requirements import Slot, build_groups_for_day, expand_slots

from .base import BaseScheduler, Deadline, Grid, build_result, collect_fixed_cells, shortfall_warnings
from .greedy import place_fixed_cells

logger = get_logger(__name__)


def match_day(
    slots: List[Slot],
    candidates: List[List[int]],
    operator_count: int,
) -> Dict[int, int]:
    """
    Maximum cardinality matching of slots to operators via unit-capacity max flow.

    Args:
        slots: Headcount units of one day
        candidates: Per slot, eligible operator positions
        operator_count: Number of operators (positions 0..n-1)

    Returns:
        slot position -> operator position for every matched slot
    """
    if not slots:
        return {}

    smf = max_flow.SimpleMaxFlow()
    source = 0
    slot_node = 1
    op_node = slot_node + len(slots)
    sink = op_node + operator_count

    edges: List[Tuple[int, int, int]] = []  # (arc, slot, operator)
    for s in range(len(slots)):
        smf.add_arc_with_capacity(source, slot_node + s, 1)
        for o in candidates[s]:
            arc = smf.add_arc_with_capacity(slot_node + s, op_node + o, 1)
            edges.append((arc, s, o))
    for o in range(operator_count):
        smf.add_arc_with_capacity(op_node + o, sink, 1)

    status = smf.solve(source, sink)
    if status != smf.OPTIMAL:
        raise SchedulingError(f"Max-flow solver failed with status {status}")

    return {s: o for arc, s, o in edges if smf.flow(arc) > 0}


class MatchingScheduler(BaseScheduler):
    """
    Throughput-first mode: saturates assignment volume per day and certifies feasibility.

    Skips scoring and backtracking; unmatched units are reported as shortfalls.
    """

    algorithm = "max-matching"

    def make_schedule(
        self,
        request: ScheduleRequest,
        cfg: SchedulerConfig,
        deadline: Optional[Deadline] = None,
    ) -> ScheduleResult:
        deadline = self._deadline(cfg, deadline)
        logger.info(f"Max-matching: {len(request.operators)} operators over {len(request.days)} days")

        operators = list(request.operators)
        tasks = {t.task_id: t for t in request.tasks}
        fixed = collect_fixed_cells(request, cfg)

        grid: Grid = {}
        warnings: List[ScheduleWarning] = []
        shortfalls: List[ShortfallRecord] = []

        for day in request.days:
            pin_warnings, day_grid, day_short = self._solve_day(request, cfg, fixed, day, operators, tasks, True)
            if day_short and fixed.pinned.get(day):
                logger.warning(f"Max-matching: {day} short with pins fixed, retrying with pins released")
                pins = fixed.pinned[day]
                pin_warnings, day_grid, day_short = self._solve_day(request, cfg, fixed, day, operators, tasks, False)
                for op_id, task_id in pins.items():
                    if day_grid.get(op_id) != task_id:
                        warnings.append(ScheduleWarning(
                            kind=WarningKind.PINNED_OVERRIDDEN,
                            message=f"Pinned cell {op_id}/{day} on {task_id} overridden by matching",
                            day=day, operator_id=op_id, task_id=task_id, detail=day_grid.get(op_id),
                        ))
            else:
                warnings.extend(pin_warnings)
            for op_id, task_id in day_grid.items():
                grid[(op_id, day)] = task_id
            shortfalls.extend(day_short)

        status = ScheduleStatus.COMPLETE if not shortfalls else ScheduleStatus.INFEASIBLE
        warnings.extend(shortfall_warnings(shortfalls))
        if shortfalls:
            warnings.append(ScheduleWarning(
                kind=WarningKind.INFEASIBLE,
                message=f"Maximum matching leaves {sum(s.shortfall for s in shortfalls)} unit(s) unfilled",
            ))
        logger.info(f"Max-matching: {len(grid)} assignments ({status.value})")
        return build_result(
            request, grid, self.algorithm,
            warnings=warnings, status=status, shortfalls=shortfalls,
            stats={"elapsed_seconds": deadline.elapsed()},
        )

    def _solve_day(self, request, cfg, fixed, day, operators: List[Operator], tasks, include_pinned):
        """Returns (pin warnings, operator_id -> task_id, shortfalls) for one day."""
        kept, pin_warnings = place_fixed_cells(request, cfg, fixed, day, include_pinned)
        consumed = set(kept) | fixed.blocked.get(day, set())
        groups = build_groups_for_day(request, day, kept)
        slots = expand_slots(groups)

        candidates: List[List[int]] = []
        for slot in slots:
            task = tasks[slot.task_id]
            candidates.append([
                i for i, op in enumerate(operators)
                if op.operator_id not in consumed and can_assign_operator(op, task, day, cfg, slot.type)
            ])

        matched = match_day(slots, candidates, len(operators))

        day_grid: Dict[str, str] = dict(kept)
        for s, o in matched.items():
            day_grid[operators[o].operator_id] = slots[s].task_id

        shortfalls: List[ShortfallRecord] = []
        start = 0
        for g in groups:
            members = range(start, start + g.count)
            start += g.count
            filled = sum(1 for s in members if s in matched)
            if filled < g.count:
                shortfalls.append(ShortfallRecord(
                    task_id=g.task_id, day=day, operator_type=g.type,
                    required=g.count, available=filled, shortfall=g.count - filled,
                ))
        return pin_warnings, day_grid, shortfalls
