"""Tabu search over same-day swaps, replacements and reassignments."""

from __future__ import annotations

from collections import deque
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from taskroster.config import ObjectiveWeights, SchedulerConfig
from taskroster.domain.models import AssignmentCell, ScheduleRequest, ScheduleResult, ScheduleStatus
from taskroster.logger import get_logger
from taskroster.services.constraints import can_assign_operator
from taskroster.services.objectives import ObjectiveState
from taskroster.services.requirements import build_requirements_for_day
from taskroster.validator import hard_violations, staffing_violations, validate_schedule

from .base import Deadline, build_result, collect_fixed_cells

logger = get_logger(__name__)

# (operator_id, day index, new task id or None)
Change = Tuple[str, int, Optional[str]]

SWAP = "swap"
REPLACE = "replace"
REASSIGN = "reassign"


class TabuOptimizer:
    """
    Local search that never returns a schedule scoring below its starting point.

    Moves keep every hard constraint: candidates are pre-filtered on eligibility and
    per-cell staffing, and the move picked each iteration is re-validated in full.
    """

    def __init__(self, cfg: SchedulerConfig, weights: Optional[ObjectiveWeights] = None):
        self.cfg = cfg
        self.weights = weights or cfg.weights

    def optimize(
        self,
        result: ScheduleResult,
        request: ScheduleRequest,
        deadline: Optional[Deadline] = None,
    ) -> ScheduleResult:
        """
        Improve a complete schedule.

        Args:
            result: Starting schedule (returned unchanged unless it is complete)
            request: Request the schedule was produced for
            deadline: Shared wall-clock budget

        Returns:
            Best schedule seen; the input itself when nothing scored higher
        """
        cfg = self.cfg
        deadline = deadline if deadline is not None else Deadline(cfg.time_budget_seconds)
        if result.status is not ScheduleStatus.COMPLETE:
            logger.info(f"Tabu: skipping {result.status.value} schedule")
            return result

        self.request = request
        self.days = list(request.days)
        self.fixed = collect_fixed_cells(request, cfg)
        self.operators = {op.operator_id: op for op in request.operators}
        self.tasks = {t.task_id: t for t in request.tasks}
        self.requirements = {
            (t.task_id, day): build_requirements_for_day(request, t, day)
            for t in request.tasks for day in self.days
        }

        state = ObjectiveState(request, cfg, result.cells)
        self.baseline_violations = self._hard_count(state)
        current = start = state.score(self.weights)
        best = start
        best_grid = self._snapshot(state)

        tabu: deque = deque(maxlen=max(cfg.tabu_tenure, 1))
        iterations = improvements = stagnation = 0
        stop_reason = "iterations"

        while iterations < cfg.tabu_iterations:
            if deadline.expired():
                stop_reason = "deadline"
                break
            if cfg.tabu_stagnation and stagnation >= cfg.tabu_stagnation:
                stop_reason = "stagnation"
                break

            scored = []
            for order, (kind, changes) in enumerate(self._neighbourhood(state)):
                is_tabu = cfg.tabu_tenure > 0 and any(c in tabu for c in changes)
                score = self._try(state, changes)
                # Aspiration: a tabu move is allowed when it beats the best score seen
                if is_tabu and not score > best:
                    continue
                scored.append((-score, order, kind, changes))
            if not scored:
                stop_reason = "empty neighbourhood"
                break
            scored.sort(key=lambda item: (item[0], item[1]))

            chosen = None
            for neg_score, _, kind, changes in scored:
                undo = self._apply(state, changes)
                if self._still_valid(state):
                    chosen = (-neg_score, kind, changes, undo)
                    break
                self._apply(state, undo)
            if chosen is None:
                stop_reason = "no valid move"
                break

            current, kind, changes, undo = chosen
            logger.debug(f"Tabu: iteration {iterations}: {kind} {changes} -> {current:.2f}")
            # Forbid putting operators straight back where they were
            for reverse in undo:
                tabu.append(reverse)
            iterations += 1
            if current > best:
                best = current
                best_grid = self._snapshot(state)
                improvements += 1
                stagnation = 0
            else:
                stagnation += 1

        logger.info(
            f"Tabu: {iterations} iterations, {improvements} improvements, "
            f"score {start:.2f} -> {best:.2f} (stopped: {stop_reason})"
        )
        stats = dict(result.stats)
        stats.update({
            "tabu_iterations": iterations,
            "tabu_improvements": improvements,
            "tabu_start_score": start,
            "tabu_best_score": best,
        })
        if not best > start:
            return replace(result, stats=stats)

        improved = build_result(
            request, best_grid, result.algorithm,
            warnings=result.warnings, status=result.status, shortfalls=result.shortfalls,
        )
        return replace(improved, stats=stats)

    # -- moves -----------------------------------------------------------------

    def _frozen(self, state: ObjectiveState, op_id: str, di: int) -> bool:
        return self.fixed.is_frozen(op_id, self.days[di], state.task_at(op_id, di))

    def _eligible(self, op_id: str, task_id: str, di: int) -> bool:
        task = self.tasks.get(task_id)
        return task is not None and can_assign_operator(self.operators[op_id], task, self.days[di], self.cfg)

    def _neighbourhood(self, state: ObjectiveState):
        """Yield (kind, changes) in deterministic order: day, then operator declaration."""
        op_ids = list(self.operators)
        task_ids = [t.task_id for t in self.request.active_tasks()]
        for di in range(len(self.days)):
            roster: Dict[str, List[str]] = {}
            for o in op_ids:
                task_id = state.task_at(o, di)
                if task_id is not None:
                    roster.setdefault(task_id, []).append(o)
            movable = [
                o for o in op_ids
                if state.task_at(o, di) is not None and not self._frozen(state, o, di)
            ]
            idle = [
                o for o in op_ids
                if state.task_at(o, di) is None and not self._frozen(state, o, di)
            ]
            for i, a in enumerate(movable):
                ta = state.task_at(a, di)
                for b in movable[i + 1:]:
                    tb = state.task_at(b, di)
                    if ta == tb or not self._eligible(a, tb, di) or not self._eligible(b, ta, di):
                        continue
                    changes = [(a, di, tb), (b, di, ta)]
                    if self._same_type(a, b) or self._staffing_ok(roster, di, changes):
                        yield SWAP, changes
                for c in idle:
                    if not self._eligible(c, ta, di):
                        continue
                    changes = [(a, di, None), (c, di, ta)]
                    if self._same_type(a, c) or self._staffing_ok(roster, di, changes):
                        yield REPLACE, changes
                for tb in task_ids:
                    if tb == ta or not self._eligible(a, tb, di):
                        continue
                    changes = [(a, di, tb)]
                    if self._staffing_ok(roster, di, changes):
                        yield REASSIGN, changes

    def _same_type(self, a: str, b: str) -> bool:
        # Exchanging operators of one type leaves every typed count as it was
        return self.operators[a].type is self.operators[b].type

    def _staffing_ok(self, roster: Dict[str, List[str]], di: int, changes: List[Change]) -> bool:
        """The move must not add staffing violations to any (task, day) it touches."""
        day = self.days[di]
        after: Dict[str, List[str]] = {}
        for op_id, _, new in changes:
            old = next((t for t, ops in roster.items() if op_id in ops), None)
            for task_id in (old, new):
                if task_id is not None and task_id not in after:
                    after[task_id] = list(roster.get(task_id, []))
            if old is not None:
                after[old].remove(op_id)
            if new is not None:
                after[new].append(op_id)
        for task_id, ops_after in after.items():
            counts = self.requirements.get((task_id, day), ())
            before_cells = [AssignmentCell(day, o, task_id) for o in roster.get(task_id, [])]
            after_cells = [AssignmentCell(day, o, task_id) for o in ops_after]
            before = staffing_violations(task_id, day, counts, before_cells, self.operators)
            if len(staffing_violations(task_id, day, counts, after_cells, self.operators)) > len(before):
                return False
        return True

    @staticmethod
    def _apply(state: ObjectiveState, changes: List[Change]) -> List[Change]:
        """Apply changes; returns the changes that undo them."""
        undo = []
        for op_id, di, new in changes:
            undo.append((op_id, di, state.set_task(op_id, di, new)))
        undo.reverse()
        return undo

    def _try(self, state: ObjectiveState, changes: List[Change]) -> float:
        undo = self._apply(state, changes)
        score = state.score(self.weights)
        self._apply(state, undo)
        return score

    def _hard_count(self, state: ObjectiveState) -> int:
        cells = []
        for di, day in enumerate(self.days):
            for op_id in self.operators:
                task_id = state.task_at(op_id, di)
                if task_id is None:
                    continue
                cells.append(AssignmentCell(
                    day, op_id, task_id,
                    locked=self.fixed.locked.get(day, {}).get(op_id) == task_id,
                    pinned=self.fixed.pinned.get(day, {}).get(op_id) == task_id,
                ))
        violations = validate_schedule(cells, self.request, self.cfg)
        return len([v for v in hard_violations(violations) if not v.caller_fixed])

    def _still_valid(self, state: ObjectiveState) -> bool:
        return self._hard_count(state) <= self.baseline_violations

    def _snapshot(self, state: ObjectiveState) -> Dict[Tuple[str, str], str]:
        return {
            (op_id, day): state.task_at(op_id, di)
            for di, day in enumerate(self.days)
            for op_id in self.operators
            if state.task_at(op_id, di) is not None
        }


def tabu_search(
    result: ScheduleResult,
    request: ScheduleRequest,
    cfg: SchedulerConfig,
    deadline: Optional[Deadline] = None,
    weights: Optional[ObjectiveWeights] = None,
) -> ScheduleResult:
    """Convenience wrapper around TabuOptimizer.optimize."""
    return TabuOptimizer(cfg, weights).optimize(result, request, deadline)
