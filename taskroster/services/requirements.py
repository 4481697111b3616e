"""Daily requirements calculation and headcount unit expansion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from taskroster.domain.models import (
    OperatorType,
    RequirementType,
    ScheduleRequest,
    Task,
    TypeCount,
)


@dataclass(frozen=True)
class HeadcountGroup:
    """Interchangeable units of one (task, day, type) that still need an operator."""

    task_id: str
    day: str
    type: RequirementType
    count: int
    order: int  # declaration order across the day's groups

    @property
    def key(self) -> Tuple[str, str, RequirementType]:
        return (self.task_id, self.day, self.type)


@dataclass(frozen=True)
class Slot:
    """A single headcount unit (task, day, type, index)."""

    task_id: str
    day: str
    type: RequirementType
    index: int

    @property
    def group_key(self) -> Tuple[str, str, RequirementType]:
        return (self.task_id, self.day, self.type)


def build_requirements_for_day(request: ScheduleRequest, task: Task, day: str) -> Tuple[TypeCount, ...]:
    """
    Resolve the typed headcount a task needs on one day.

    Args:
        request: Schedule request holding the staffing requirements
        task: Task to resolve
        day: Weekday name

    Returns:
        Tuple of TypeCount (override for the day when present, default otherwise).
        Empty when the task is excluded or has no enabled requirement.
    """
    if request.is_excluded(task):
        return ()
    req = request.requirement_for(task.task_id)
    if req is None:
        return ()
    return tuple(tc for tc in req.for_day(day) if tc.count > 0)


def consume_fixed(
    counts: List[TypeCount],
    fixed_types: List[OperatorType],
) -> Tuple[List[TypeCount], int]:
    """
    Deduct operators already fixed to a cell from its typed counts.

    Typed units are filled by their own type first; surplus operators fill ``Any`` units.

    Returns:
        (remaining counts, number of fixed operators that found no unit)
    """
    remaining: Dict[RequirementType, int] = {}
    for tc in counts:
        remaining[tc.type] = remaining.get(tc.type, 0) + tc.count

    leftovers: List[OperatorType] = []
    for op_type in fixed_types:
        own = RequirementType(op_type.value)
        if remaining.get(own, 0) > 0:
            remaining[own] -= 1
        else:
            leftovers.append(op_type)

    surplus = 0
    for _ in leftovers:
        if remaining.get(RequirementType.ANY, 0) > 0:
            remaining[RequirementType.ANY] -= 1
        else:
            surplus += 1

    ordered: List[TypeCount] = []
    seen = set()
    for tc in counts:
        if tc.type in seen:
            continue
        seen.add(tc.type)
        ordered.append(TypeCount(tc.type, remaining[tc.type]))
    return ordered, surplus


def has_open_unit(
    counts: List[TypeCount],
    fixed_types: List[OperatorType],
    op_type: OperatorType,
) -> bool:
    """True when one more ``op_type`` operator fits the counts without adding surplus."""
    _, before = consume_fixed(counts, fixed_types)
    _, after = consume_fixed(counts, fixed_types + [op_type])
    return after == before


def build_groups_for_day(
    request: ScheduleRequest,
    day: str,
    fixed: Optional[Mapping[str, str]] = None,
) -> List[HeadcountGroup]:
    """
    Expand a day's requirements into open headcount groups.

    Args:
        request: Schedule request
        day: Weekday name
        fixed: operator_id -> task_id for cells already decided that day (locked/pinned)

    Returns:
        Groups with a positive open count, in task then requirement declaration order
    """
    fixed = fixed or {}
    fixed_types_by_task: Dict[str, List[OperatorType]] = {}
    for op_id, task_id in fixed.items():
        op = request.operator(op_id)
        if op is not None:
            fixed_types_by_task.setdefault(task_id, []).append(op.type)

    groups: List[HeadcountGroup] = []
    for task in request.active_tasks():
        counts = list(build_requirements_for_day(request, task, day))
        if not counts:
            continue
        remaining, _ = consume_fixed(counts, fixed_types_by_task.get(task.task_id, []))
        for tc in remaining:
            if tc.count > 0:
                groups.append(HeadcountGroup(task.task_id, day, tc.type, tc.count, len(groups)))
    return groups


def expand_slots(groups: List[HeadcountGroup]) -> List[Slot]:
    """One Slot per headcount unit, preserving group order."""
    slots: List[Slot] = []
    for group in groups:
        for i in range(group.count):
            slots.append(Slot(group.task_id, group.day, group.type, i))
    return slots
