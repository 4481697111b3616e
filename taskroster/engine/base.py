"""Base scheduler interface and helpers shared by every engine."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    AssignmentCell,
    ScheduleRequest,
    ScheduleResult,
    ScheduleStatus,
    ScheduleWarning,
    ShortfallRecord,
    WarningKind,
    iter_grid,
)

# (operator_id, day) -> task_id
Grid = Dict[Tuple[str, str], str]


class Deadline:
    """Wall-clock budget shared by every loop of one scheduling call."""

    def __init__(self, seconds: Optional[float]):
        self.seconds = seconds
        self.started = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def remaining(self) -> float:
        if self.seconds is None:
            return float("inf")
        return max(0.0, self.seconds - self.elapsed())

    def expired(self) -> bool:
        return self.seconds is not None and self.elapsed() >= self.seconds


@dataclass
class FixedCells:
    """Input cells the engine must (locked) or should (pinned) keep, per day."""

    locked: Dict[str, Dict[str, str]]  # day -> operator_id -> task_id
    pinned: Dict[str, Dict[str, str]]
    blocked: Dict[str, Set[str]]  # day -> operators locked to an empty cell

    def for_day(self, day: str, include_pinned: bool = True) -> Dict[str, str]:
        fixed = dict(self.locked.get(day, {}))
        if include_pinned:
            for op_id, task_id in self.pinned.get(day, {}).items():
                fixed.setdefault(op_id, task_id)
        return fixed

    def unavailable_on(self, day: str, include_pinned: bool = True) -> Set[str]:
        """Operators the search may not place on ``day``."""
        return set(self.for_day(day, include_pinned)) | self.blocked.get(day, set())

    def is_frozen(self, operator_id: str, day: str, task_id: Optional[str] = None) -> bool:
        """Locked and blocked cells always; a pin only while the operator still holds its task."""
        if operator_id in self.locked.get(day, {}) or operator_id in self.blocked.get(day, set()):
            return True
        pinned_task = self.pinned.get(day, {}).get(operator_id)
        return pinned_task is not None and (task_id is None or task_id == pinned_task)


def collect_fixed_cells(request: ScheduleRequest, cfg: SchedulerConfig) -> FixedCells:
    """
    Split the input grid into locked, pinned and blocked cells.

    Locked cells are only honoured when ``respect_locked`` is on and pinned cells
    when ``respect_pinned`` is on. With ``fill_gaps_only`` every other filled input
    cell is pinned too, so the engine only fills the gaps; everything else is free.
    """
    locked: Dict[str, Dict[str, str]] = {}
    pinned: Dict[str, Dict[str, str]] = {}
    blocked: Dict[str, Set[str]] = {}
    for cell in request.current_assignments:
        if cell.locked and cfg.respect_locked:
            if cell.task_id is None:
                blocked.setdefault(cell.day, set()).add(cell.operator_id)
            else:
                locked.setdefault(cell.day, {})[cell.operator_id] = cell.task_id
        elif cell.task_id is not None and ((cell.pinned and cfg.respect_pinned) or cfg.fill_gaps_only):
            pinned.setdefault(cell.day, {})[cell.operator_id] = cell.task_id
    return FixedCells(locked, pinned, blocked)


def build_result(
    request: ScheduleRequest,
    grid: Mapping[Tuple[str, str], str],
    algorithm: str,
    warnings: Iterable[ScheduleWarning] = (),
    status: ScheduleStatus = ScheduleStatus.COMPLETE,
    shortfalls: Iterable[ShortfallRecord] = (),
    stats: Optional[Mapping[str, float]] = None,
) -> ScheduleResult:
    """
    Assemble a ScheduleResult covering every (day, operator) cell in grid order.

    Input locked/pinned flags are carried over for cells whose task is unchanged.
    """
    flags: Dict[Tuple[str, str], AssignmentCell] = {
        (c.operator_id, c.day): c for c in request.current_assignments
    }
    cells: List[AssignmentCell] = []
    for day, op in iter_grid(request):
        key = (op.operator_id, day)
        task_id = grid.get(key)
        source = flags.get(key)
        same = source is not None and source.task_id == task_id
        cells.append(AssignmentCell(
            day=day,
            operator_id=op.operator_id,
            task_id=task_id,
            locked=bool(same and source.locked),
            pinned=bool(same and source.pinned),
        ))
    return ScheduleResult(
        cells=tuple(cells),
        warnings=tuple(warnings),
        status=status,
        shortfalls=tuple(shortfalls),
        algorithm=algorithm,
        stats=dict(stats or {}),
    )


def grid_from_result(result: ScheduleResult) -> Grid:
    return {(c.operator_id, c.day): c.task_id for c in result.cells if c.task_id is not None}


def shortfall_warnings(shortfalls: Iterable[ShortfallRecord]) -> List[ScheduleWarning]:
    return [
        ScheduleWarning(
            kind=WarningKind.UNDERSTAFFED,
            message=s.describe(),
            day=s.day,
            task_id=s.task_id,
            detail=s.operator_type.value if s.operator_type else None,
        )
        for s in shortfalls
    ]


class BaseScheduler(ABC):
    """
    Abstract base class for all scheduling engines.

    Each engine turns one immutable request into a fresh ScheduleResult.
    """

    algorithm: str | None = None  # Override in subclasses (e.g., "greedy", "feasibility")

    @abstractmethod
    def make_schedule(
        self,
        request: ScheduleRequest,
        cfg: SchedulerConfig,
        deadline: Optional[Deadline] = None,
    ) -> ScheduleResult:
        """
        Generate a schedule for the request.

        Args:
            request: Finalised, validated schedule request
            cfg: SchedulerConfig with hard-constraint toggles and budgets
            deadline: Shared wall-clock budget (a fresh one from cfg when omitted)

        Returns:
            ScheduleResult; infeasible and partial outcomes are statuses, not exceptions
        """
        pass

    def get_algorithm_name(self) -> str:
        """Get the algorithm this engine implements."""
        return self.algorithm or "unknown"

    @staticmethod
    def _deadline(cfg: SchedulerConfig, deadline: Optional[Deadline]) -> Deadline:
        return deadline if deadline is not None else Deadline(cfg.time_budget_seconds)
