"""
Feasibility engine: constraint propagation + backtracking over headcount units.

One variable per unit (task, day, type, index); its domain holds the operators that
may fill it. Days share no hard constraint, so each day is searched on its own,
in order, under one deadline and one backtrack budget.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

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
from taskroster.logger import get_logger
from taskroster.services.constraints import can_assign_operator
from taskroster.services.requirements import HeadcountGroup, build_groups_for_day
from taskroster.services.scoring import calculate_operator_score

from .base import (
    BaseScheduler,
    Deadline,
    FixedCells,
    Grid,
    build_result,
    collect_fixed_cells,
    grid_from_result,
    shortfall_warnings,
)
from .greedy import GreedyScheduler, place_fixed_cells

logger = get_logger(__name__)

SOLVED = "solved"
EXHAUSTED = "exhausted"
CUTOFF = "cutoff"


def merge_shortfalls(records: List[ShortfallRecord]) -> List[ShortfallRecord]:
    """De-duplicate by (task, day, type), keeping the largest shortfall; first-seen order."""
    merged: Dict[Tuple, ShortfallRecord] = {}
    for rec in records:
        key = (rec.task_id, rec.day, rec.operator_type)
        if key not in merged or rec.shortfall > merged[key].shortfall:
            merged[key] = rec
    return list(merged.values())


@dataclass
class SearchCounters:
    nodes: int = 0
    backtracks: int = 0
    max_backtracks: int = 0

    def exhausted(self) -> bool:
        return self.max_backtracks > 0 and self.backtracks >= self.max_backtracks


class DaySearch:
    """
    CSP for one day.

    Domains are sets of operator positions. Every removal made during search is pushed
    onto ``trail`` and undone by popping back to a decision frame's mark.
    """

    def __init__(
        self,
        day: str,
        groups: List[HeadcountGroup],
        domains_by_group: List[List[int]],
        ranks_by_group: List[Dict[int, int]],
        operators: List[Operator],
    ):
        self.day = day
        self.groups = groups
        self.operators = operators
        self.ranks = ranks_by_group
        self.static_scarcity = [len(d) for d in domains_by_group]

        self.var_group: List[int] = []
        self.var_unit: List[int] = []
        self.domains: List[Set[int]] = []
        self.group_vars: List[List[int]] = []
        for gi, g in enumerate(groups):
            members = []
            for unit in range(g.count):
                members.append(len(self.var_group))
                self.var_group.append(gi)
                self.var_unit.append(unit)
                self.domains.append(set(domains_by_group[gi]))
            self.group_vars.append(members)

        self.value: List[Optional[int]] = [None] * len(self.var_group)
        self.trail: List[Tuple[int, int]] = []
        self.dead_ends: List[ShortfallRecord] = []

    # -- diagnostics -----------------------------------------------------------

    def group_record(self, gi: int, available: Optional[int] = None) -> ShortfallRecord:
        g = self.groups[gi]
        if available is None:
            pool: Set[int] = set()
            for v in self.group_vars[gi]:
                pool |= self.domains[v]
            available = len(pool)
        return ShortfallRecord(
            task_id=g.task_id,
            day=self.day,
            operator_type=g.type,
            required=g.count,
            available=available,
            shortfall=max(1, g.count - available),
        )

    # -- preprocessing ---------------------------------------------------------

    def preprocess(self) -> List[ShortfallRecord]:
        """Count checks then singleton exclusivity propagation to a fixed point."""
        records: List[ShortfallRecord] = []

        # 1. Per-group count check (type-aware: groups are typed)
        failed_tasks: Set[str] = set()
        for gi, g in enumerate(self.groups):
            if self.static_scarcity[gi] < g.count:
                records.append(self.group_record(gi, self.static_scarcity[gi]))
                failed_tasks.add(g.task_id)

        # 2. Per-task union across its typed groups
        by_task: Dict[str, List[int]] = {}
        for gi, g in enumerate(self.groups):
            by_task.setdefault(g.task_id, []).append(gi)
        for task_id, gis in by_task.items():
            if task_id in failed_tasks or len(gis) < 2:
                continue
            pool: Set[int] = set()
            for gi in gis:
                pool |= self.domains[self.group_vars[gi][0]] if self.group_vars[gi] else set()
            required = sum(self.groups[gi].count for gi in gis)
            if len(pool) < required:
                records.append(ShortfallRecord(task_id, self.day, None, required, len(pool), required - len(pool)))
                failed_tasks.add(task_id)

        # 3. Pigeonhole over the whole day
        if not records:
            pool = set()
            for d in self.domains:
                pool |= d
            if len(pool) < len(self.domains):
                records.append(ShortfallRecord(
                    None, self.day, None, len(self.domains), len(pool), len(self.domains) - len(pool)
                ))
        if records:
            return records

        # 4. Singleton exclusivity propagation
        changed = True
        while changed:
            changed = False
            for v, dom in enumerate(self.domains):
                if len(dom) != 1:
                    continue
                (op,) = dom
                for w, other in enumerate(self.domains):
                    if w != v and op in other:
                        other.discard(op)
                        changed = True
                        if not other:
                            return [self.group_record(self.var_group[w])]
        return []

    # -- search ----------------------------------------------------------------

    def _select_variable(self) -> Optional[int]:
        best = None
        best_key = None
        for v, val in enumerate(self.value):
            if val is not None:
                continue
            key = (len(self.domains[v]), self.static_scarcity[self.var_group[v]], v)
            if best_key is None or key < best_key:
                best, best_key = v, key
        return best

    def _remove(self, v: int, op: int) -> bool:
        """Remove op from v's domain; False when the domain empties."""
        dom = self.domains[v]
        if op in dom:
            dom.discard(op)
            self.trail.append((v, op))
        return bool(dom)

    def _undo(self, mark: int) -> None:
        while len(self.trail) > mark:
            v, op = self.trail.pop()
            self.domains[v].add(op)

    def _assign(self, v: int, op: int) -> bool:
        """Bind v and forward-check. False (with a dead-end recorded) on wipe-out."""
        self.value[v] = op
        gi = self.var_group[v]
        rank = self.ranks[gi]
        r = rank[op]

        for w, val in enumerate(self.value):
            if val is not None or w == v:
                continue
            if not self._remove(w, op):
                self.dead_ends.append(self.group_record(self.var_group[w]))
                return False

        # Interchangeable units of a group take operators in increasing rank
        unit = self.var_unit[v]
        for w in self.group_vars[gi]:
            if self.value[w] is not None or w == v:
                continue
            lower = self.var_unit[w] > unit
            for other in list(self.domains[w]):
                if (lower and rank[other] <= r) or (not lower and rank[other] >= r):
                    self._remove(w, other)
            if not self.domains[w]:
                self.dead_ends.append(self.group_record(gi))
                return False

        # Supply checks: each group, then the whole day
        day_pool: Set[int] = set()
        open_units = 0
        for gj, members in enumerate(self.group_vars):
            pool: Set[int] = set()
            open_here = 0
            for w in members:
                if self.value[w] is None:
                    pool |= self.domains[w]
                    open_here += 1
            if len(pool) < open_here:
                self.dead_ends.append(self.group_record(gj))
                return False
            day_pool |= pool
            open_units += open_here
        if len(day_pool) < open_units:
            self.dead_ends.append(ShortfallRecord(
                None, self.day, None, open_units, len(day_pool), open_units - len(day_pool)
            ))
            return False
        return True

    def _snapshot(self) -> Dict[int, int]:
        return {v: op for v, op in enumerate(self.value) if op is not None}

    def run(self, deadline: Deadline, counters: SearchCounters) -> Tuple[str, Dict[int, int]]:
        """
        Iterative depth-first search with MRV and forward checking.

        Returns:
            (SOLVED | EXHAUSTED | CUTOFF, var -> operator position of the most complete assignment seen)
        """
        if not self.domains:
            return SOLVED, {}

        best: Dict[int, int] = {}
        # frame: [var, ordered candidates, next position, trail mark]
        stack: List[list] = []
        v = self._select_variable()
        stack.append([v, sorted(self.domains[v], key=self.ranks[self.var_group[v]].__getitem__), 0, len(self.trail)])

        while stack:
            if deadline.expired() or counters.exhausted():
                return CUTOFF, best

            frame = stack[-1]
            var, candidates, pos, mark = frame
            self._undo(mark)
            self.value[var] = None

            if pos >= len(candidates):
                stack.pop()
                counters.backtracks += 1
                continue

            frame[2] = pos + 1
            counters.nodes += 1
            if not self._assign(var, candidates[pos]):
                counters.backtracks += 1
                continue

            bound = len(stack)
            if bound > len(best):
                best = self._snapshot()

            nxt = self._select_variable()
            if nxt is None:
                return SOLVED, self._snapshot()
            order = sorted(self.domains[nxt], key=self.ranks[self.var_group[nxt]].__getitem__)
            stack.append([nxt, order, 0, len(self.trail)])

        return EXHAUSTED, best


class FeasibilityScheduler(BaseScheduler):
    """
    Complete CSP solver.

    Finds a schedule meeting every hard staffing rule whenever one exists; otherwise
    reports (task, day, type, shortfall) diagnostics. With a deadline or backtrack cap
    hit, returns the most complete assignment seen as a partial result.
    """

    algorithm = "feasibility"

    def __init__(
        self,
        seed: Optional[int] = None,
        hint: Optional[ScheduleResult] = None,
        use_greedy_hint: bool = True,
    ):
        self.seed = seed
        self.hint = hint
        self.use_greedy_hint = use_greedy_hint

    def make_schedule(
        self,
        request: ScheduleRequest,
        cfg: SchedulerConfig,
        deadline: Optional[Deadline] = None,
    ) -> ScheduleResult:
        deadline = self._deadline(cfg, deadline)
        seed = cfg.random_seed if self.seed is None else self.seed
        logger.info(f"Feasibility: solving {len(request.days)} day(s), seed={seed}")

        hint: Grid = {}
        if self.hint is not None:
            hint = grid_from_result(self.hint)
        elif self.use_greedy_hint:
            hint = grid_from_result(GreedyScheduler(seed).make_schedule(request, cfg, deadline))

        fixed = collect_fixed_cells(request, cfg)
        counters = SearchCounters(max_backtracks=cfg.max_backtracks)
        has_pins = any(fixed.pinned.values())

        grid, status, shortfalls, warnings = self._solve(
            request, cfg, deadline, fixed, hint, seed, counters, include_pinned=True
        )

        if has_pins and status is ScheduleStatus.INFEASIBLE:
            logger.warning("Feasibility: infeasible with pinned cells fixed, retrying with pins released")
            pin_hint = dict(hint)
            for day, pins in fixed.pinned.items():
                for op_id, task_id in pins.items():
                    pin_hint[(op_id, day)] = task_id
            grid, status, shortfalls, warnings = self._solve(
                request, cfg, deadline, fixed, pin_hint, seed, counters, include_pinned=False
            )
            for day, pins in fixed.pinned.items():
                for op_id, task_id in pins.items():
                    if grid.get((op_id, day)) != task_id:
                        warnings.append(ScheduleWarning(
                            kind=WarningKind.PINNED_OVERRIDDEN,
                            message=f"Pinned cell {op_id}/{day} on {task_id} overridden to reach a feasible schedule",
                            day=day, operator_id=op_id, task_id=task_id,
                            detail=grid.get((op_id, day)),
                        ))

        warnings.extend(shortfall_warnings(shortfalls))
        if status is ScheduleStatus.PARTIAL:
            warnings.append(ScheduleWarning(
                kind=WarningKind.PARTIAL_RESULT,
                message="Search stopped at the time/backtrack budget; best partial assignment returned",
            ))
        elif status is ScheduleStatus.INFEASIBLE:
            warnings.append(ScheduleWarning(
                kind=WarningKind.INFEASIBLE,
                message=f"No schedule meets every staffing rule ({len(shortfalls)} shortfall record(s))",
            ))

        logger.info(
            f"Feasibility: {status.value} after {counters.nodes} nodes, {counters.backtracks} backtracks"
        )
        return build_result(
            request, grid, self.algorithm,
            warnings=warnings, status=status, shortfalls=shortfalls,
            stats={
                "nodes": counters.nodes,
                "backtracks": counters.backtracks,
                "elapsed_seconds": deadline.elapsed(),
            },
        )

    def _solve(
        self,
        request: ScheduleRequest,
        cfg: SchedulerConfig,
        deadline: Deadline,
        fixed: FixedCells,
        hint: Grid,
        seed: int,
        counters: SearchCounters,
        include_pinned: bool,
    ) -> Tuple[Grid, ScheduleStatus, List[ShortfallRecord], List[ScheduleWarning]]:
        operators = list(request.operators)
        tasks = {t.task_id: t for t in request.tasks}
        day_tasks: Dict[str, List[Optional[str]]] = {
            op.operator_id: [None] * len(request.days) for op in operators
        }
        workload: Dict[str, int] = {op.operator_id: 0 for op in operators}

        grid: Grid = {}
        warnings: List[ScheduleWarning] = []
        infeasible: List[ShortfallRecord] = []
        unfilled: List[ShortfallRecord] = []
        cut_off = False

        for di, day in enumerate(request.days):
            kept, pin_warnings = place_fixed_cells(request, cfg, fixed, day, include_pinned)
            warnings.extend(pin_warnings)
            for op_id, task_id in kept.items():
                grid[(op_id, day)] = task_id
                day_tasks[op_id][di] = task_id
                workload[op_id] += 1

            consumed = set(kept) | fixed.blocked.get(day, set())
            groups = build_groups_for_day(request, day, kept)

            domains: List[List[int]] = []
            ranks: List[Dict[int, int]] = []
            for g in groups:
                task = tasks[g.task_id]
                dom = [
                    i for i, op in enumerate(operators)
                    if op.operator_id not in consumed and can_assign_operator(op, task, day, cfg, g.type)
                ]
                previous = {
                    i: tasks.get(day_tasks[operators[i].operator_id][di - 1]) if di > 0 else None for i in dom
                }
                order = sorted(
                    dom,
                    key=lambda i: (
                        0 if hint.get((operators[i].operator_id, day)) == g.task_id else 1,
                        -calculate_operator_score(
                            operators[i], task, di, day_tasks[operators[i].operator_id],
                            workload[operators[i].operator_id], cfg,
                            previous_task=previous[i], seed=seed,
                        ),
                        i,
                    ),
                )
                domains.append(dom)
                ranks.append({i: r for r, i in enumerate(order)})

            search = DaySearch(day, groups, domains, ranks, operators)
            day_shortfalls = search.preprocess()
            if day_shortfalls:
                logger.warning(f"Feasibility: {day} is infeasible after propagation")
                infeasible.extend(day_shortfalls)
                continue

            if cut_off:
                outcome, values = CUTOFF, {}
            else:
                outcome, values = search.run(deadline, counters)

            for v, op_pos in values.items():
                op_id = operators[op_pos].operator_id
                task_id = groups[search.var_group[v]].task_id
                grid[(op_id, day)] = task_id
                day_tasks[op_id][di] = task_id
                workload[op_id] += 1

            if outcome == EXHAUSTED:
                logger.warning(f"Feasibility: search space exhausted on {day}")
                infeasible.extend(search.dead_ends or [
                    search.group_record(gi) for gi in range(len(groups))
                ])
            elif outcome == CUTOFF:
                cut_off = True
                unfilled.extend(_unfilled_records(day, groups, search, values))

        if infeasible:
            return grid, ScheduleStatus.INFEASIBLE, merge_shortfalls(infeasible), warnings
        if cut_off:
            logger.warning("Feasibility: budget reached before the search completed")
            return grid, ScheduleStatus.PARTIAL, merge_shortfalls(unfilled), warnings
        return grid, ScheduleStatus.COMPLETE, [], warnings


def _unfilled_records(day, groups, search: DaySearch, values: Dict[int, int]) -> List[ShortfallRecord]:
    records = []
    for gi, g in enumerate(groups):
        filled = sum(1 for v in search.group_vars[gi] if v in values)
        if filled < g.count:
            records.append(ShortfallRecord(g.task_id, day, g.type, g.count, filled, g.count - filled))
    return records
