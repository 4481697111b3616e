"""Domain entities for warehouse task rostering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from taskroster.exceptions import (
    InfeasibleScheduleError,
    InvalidRequestError,
    PartialScheduleError,
)

WEEKDAYS: Tuple[str, ...] = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")


class OperatorType(str, Enum):
    REGULAR = "Regular"
    FLEX = "Flex"
    COORDINATOR = "Coordinator"


class RequirementType(str, Enum):
    """Operator type a headcount unit asks for. ANY accepts every type the task allows."""

    REGULAR = "Regular"
    FLEX = "Flex"
    COORDINATOR = "Coordinator"
    ANY = "Any"

    def accepts(self, operator_type: OperatorType) -> bool:
        return self is RequirementType.ANY or self.value == operator_type.value


class OperatorStatus(str, Enum):
    ACTIVE = "Active"
    LEAVE = "Leave"
    SICK = "Sick"


@dataclass(frozen=True)
class Operator:
    """Operator with a type tag, capability tags and weekly availability."""

    operator_id: str
    name: str
    type: OperatorType = OperatorType.REGULAR
    status: OperatorStatus = OperatorStatus.ACTIVE
    skills: frozenset = frozenset()
    availability: Mapping[str, bool] = field(default_factory=dict, hash=False)
    preferred_tasks: Tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status is OperatorStatus.ACTIVE

    def is_available(self, day: str) -> bool:
        return bool(self.availability.get(day, False))

    def has_skill(self, skill: str) -> bool:
        return skill in self.skills

    def preference_rank(self, task_id: str) -> Optional[int]:
        """0 for the most preferred task, None when the task is not preferred."""
        try:
            return self.preferred_tasks.index(task_id)
        except ValueError:
            return None

    def __repr__(self) -> str:
        return f"<Operator(id={self.operator_id!r}, name={self.name!r}, type={self.type.value})>"


@dataclass(frozen=True)
class Task:
    """Task needing one capability tag."""

    task_id: str
    name: str
    required_skill: str
    heavy: bool = False  # fatigue-sensitive
    coordinator_only: bool = False

    def __repr__(self) -> str:
        return f"<Task(id={self.task_id!r}, name={self.name!r}, skill={self.required_skill!r})>"


@dataclass(frozen=True)
class TypeCount:
    type: RequirementType
    count: int


@dataclass(frozen=True)
class StaffingRequirement:
    """Exact headcount per day for one task, split by operator type."""

    task_id: str
    default: Tuple[TypeCount, ...] = ()
    overrides: Mapping[str, Tuple[TypeCount, ...]] = field(default_factory=dict, hash=False)
    enabled: bool = True

    def for_day(self, day: str) -> Tuple[TypeCount, ...]:
        if not self.enabled:
            return ()
        if day in self.overrides:
            return tuple(self.overrides[day])
        return tuple(self.default)

    def total_for_day(self, day: str) -> int:
        return sum(tc.count for tc in self.for_day(day))


@dataclass(frozen=True)
class AssignmentCell:
    """One (day, operator) cell of the weekly grid. ``task_id`` None means unassigned."""

    day: str
    operator_id: str
    task_id: Optional[str] = None
    locked: bool = False
    pinned: bool = False

    @property
    def is_empty(self) -> bool:
        return self.task_id is None


class WarningKind(str, Enum):
    UNDERSTAFFED = "understaffed"
    OVERSTAFFED = "overstaffed"
    SKILL_MISMATCH = "skill_mismatch"
    UNAVAILABLE_OPERATOR = "unavailable_operator"
    DOUBLE_ASSIGNMENT = "double_assignment"
    LOCKED_VIOLATED = "locked_violated"
    SOFT_RULE_BROKEN = "soft_rule_broken"
    PINNED_OVERRIDDEN = "pinned_overridden"
    PARTIAL_RESULT = "partial_result"
    INFEASIBLE = "infeasible"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ScheduleWarning:
    kind: WarningKind
    message: str
    day: Optional[str] = None
    operator_id: Optional[str] = None
    task_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class ShortfallRecord:
    """
    Diagnostic for a headcount group that cannot be filled.

    ``task_id`` None describes a whole-day shortage (more units than free operators).
    """

    task_id: Optional[str]
    day: str
    operator_type: Optional[RequirementType]
    required: int
    available: int
    shortfall: int

    def describe(self) -> str:
        type_label = self.operator_type.value if self.operator_type else "any"
        if self.task_id is None:
            return (
                f"{self.day} needs {self.required} operator(s) in total "
                f"but only {self.available} can work (short by {self.shortfall})"
            )
        return (
            f"Task {self.task_id} on {self.day} needs {self.required} {type_label} operator(s) "
            f"but only {self.available} eligible (short by {self.shortfall})"
        )


class ScheduleStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    INFEASIBLE = "infeasible"


@dataclass(frozen=True)
class ScheduleResult:
    """Full weekly grid plus typed warnings. Produced fresh for every request."""

    cells: Tuple[AssignmentCell, ...]
    warnings: Tuple[ScheduleWarning, ...] = ()
    status: ScheduleStatus = ScheduleStatus.COMPLETE
    shortfalls: Tuple[ShortfallRecord, ...] = ()
    algorithm: str = ""
    fallback_used: bool = False
    stats: Mapping[str, float] = field(default_factory=dict, compare=False, repr=False, hash=False)

    @property
    def is_complete(self) -> bool:
        return self.status is ScheduleStatus.COMPLETE

    def assignments(self) -> List[AssignmentCell]:
        """Non-empty cells in grid order."""
        return [c for c in self.cells if c.task_id is not None]

    def task_for(self, operator_id: str, day: str) -> Optional[str]:
        for c in self.cells:
            if c.operator_id == operator_id and c.day == day and c.task_id is not None:
                return c.task_id
        return None

    def cell_map(self) -> Dict[Tuple[str, str], AssignmentCell]:
        """(operator_id, day) -> cell. Later cells win on duplicates."""
        return {(c.operator_id, c.day): c for c in self.cells}

    def warnings_of(self, kind: WarningKind) -> List[ScheduleWarning]:
        return [w for w in self.warnings if w.kind is kind]

    def to_frame(self) -> pd.DataFrame:
        """Assignments as a DataFrame (one row per non-empty cell)."""
        rows = [
            {
                "day": c.day,
                "operator_id": c.operator_id,
                "task_id": c.task_id,
                "locked": c.locked,
                "pinned": c.pinned,
            }
            for c in self.assignments()
        ]
        return pd.DataFrame(rows, columns=["day", "operator_id", "task_id", "locked", "pinned"])

    def raise_for_status(self) -> "ScheduleResult":
        """Raise if the result is not complete; return self otherwise."""
        if self.status is ScheduleStatus.INFEASIBLE:
            details = "; ".join(s.describe() for s in self.shortfalls) or "no detail"
            raise InfeasibleScheduleError(f"Schedule is infeasible: {details}", self.shortfalls)
        if self.status is ScheduleStatus.PARTIAL:
            raise PartialScheduleError(
                "Schedule is incomplete (time budget reached or best-effort output)", self.shortfalls
            )
        return self


@dataclass(frozen=True)
class ScheduleRequest:
    """Finalised snapshot handed to the engine by the surrounding application."""

    operators: Tuple[Operator, ...]
    tasks: Tuple[Task, ...]
    days: Tuple[str, ...] = WEEKDAYS
    requirements: Tuple[StaffingRequirement, ...] = ()
    current_assignments: Tuple[AssignmentCell, ...] = ()
    excluded_tasks: frozenset = frozenset()

    def __post_init__(self):
        # Normalise any iterables to tuples so the request stays immutable
        object.__setattr__(self, "operators", tuple(self.operators))
        object.__setattr__(self, "tasks", tuple(self.tasks))
        object.__setattr__(self, "days", tuple(self.days))
        object.__setattr__(self, "requirements", tuple(self.requirements))
        object.__setattr__(self, "current_assignments", tuple(self.current_assignments))
        object.__setattr__(self, "excluded_tasks", frozenset(self.excluded_tasks))

    def operator(self, operator_id: str) -> Optional[Operator]:
        for op in self.operators:
            if op.operator_id == operator_id:
                return op
        return None

    def task(self, task_id: str) -> Optional[Task]:
        for t in self.tasks:
            if t.task_id == task_id:
                return t
        return None

    def is_excluded(self, task: Task) -> bool:
        return task.task_id in self.excluded_tasks or task.name in self.excluded_tasks

    def active_tasks(self) -> List[Task]:
        """Tasks not excluded for this period, in declaration order."""
        return [t for t in self.tasks if not self.is_excluded(t)]

    def requirement_for(self, task_id: str) -> Optional[StaffingRequirement]:
        for req in self.requirements:
            if req.task_id == task_id and req.enabled:
                return req
        return None

    def fixed_cells(self, include_pinned: bool = True) -> List[AssignmentCell]:
        """Locked (and optionally pinned) non-empty cells from the input grid."""
        return [
            c for c in self.current_assignments
            if c.task_id is not None and (c.locked or (include_pinned and c.pinned))
        ]

    def blocked_cells(self) -> List[AssignmentCell]:
        """Locked empty cells: the operator must stay unassigned that day."""
        return [c for c in self.current_assignments if c.locked and c.task_id is None]

    def validate(self) -> "ScheduleRequest":
        """
        Check referential integrity of the request.

        Returns:
            self, so calls can be chained

        Raises:
            InvalidRequestError: On duplicate ids, unknown references or negative counts
        """
        errors: List[str] = []

        op_ids = [op.operator_id for op in self.operators]
        task_ids = [t.task_id for t in self.tasks]
        for label, ids in (("operator", op_ids), ("task", task_ids)):
            seen = set()
            for item in ids:
                if item in seen:
                    errors.append(f"Duplicate {label} id '{item}'")
                seen.add(item)
        if len(set(self.days)) != len(self.days):
            errors.append("Duplicate day in day list")

        known_ops, known_tasks, known_days = set(op_ids), set(task_ids), set(self.days)

        for req in self.requirements:
            if req.task_id not in known_tasks:
                errors.append(f"Requirement references unknown task '{req.task_id}'")
            for day in req.overrides:
                if day not in known_days:
                    errors.append(f"Requirement for '{req.task_id}' overrides unknown day '{day}'")
            all_counts = list(req.default) + [tc for tcs in req.overrides.values() for tc in tcs]
            for tc in all_counts:
                if tc.count < 0:
                    errors.append(f"Requirement for '{req.task_id}' has negative count {tc.count}")

        fixed: Dict[Tuple[str, str], str] = {}
        for cell in self.current_assignments:
            if cell.operator_id not in known_ops:
                errors.append(f"Assignment references unknown operator '{cell.operator_id}'")
            if cell.day not in known_days:
                errors.append(f"Assignment references unknown day '{cell.day}'")
            if cell.task_id is not None and cell.task_id not in known_tasks:
                errors.append(f"Assignment references unknown task '{cell.task_id}'")
            if cell.task_id is not None and (cell.locked or cell.pinned):
                key = (cell.operator_id, cell.day)
                if key in fixed and fixed[key] != cell.task_id:
                    errors.append(
                        f"Operator '{cell.operator_id}' has conflicting fixed cells on {cell.day}"
                    )
                fixed[key] = cell.task_id

        if errors:
            raise InvalidRequestError("Invalid schedule request: " + "; ".join(errors))
        return self


def iter_grid(request: ScheduleRequest) -> Iterable[Tuple[str, Operator]]:
    """Yield (day, operator) pairs in canonical grid order: day, then operator declaration."""
    for day in request.days:
        for op in request.operators:
            yield day, op
