"""Schedule validation: structured hard/soft violations, invariant guard and summaries."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    AssignmentCell,
    OperatorType,
    RequirementType,
    ScheduleRequest,
    ScheduleResult,
    ScheduleStatus,
)
from taskroster.exceptions import ConstraintViolationDetected
from taskroster.logger import get_logger
from taskroster.services.constraints import coordinator_rule_ok, soft_rule_breaks
from taskroster.services.requirements import build_requirements_for_day

logger = get_logger(__name__)

PINNED_OVERRIDDEN = "pinned_overridden"
SOFT_SKILL_MISMATCH = "skill_mismatch"


class ViolationKind(str, Enum):
    DOUBLE_ASSIGNMENT = "double_assignment"
    SKILL_MISMATCH = "skill_mismatch"
    UNAVAILABLE_OPERATOR = "unavailable_operator"
    UNDERSTAFFED = "understaffed"
    OVERSTAFFED = "overstaffed"
    LOCKED_VIOLATED = "locked_violated"
    SOFT_RULE_BROKEN = "soft_rule_broken"


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    message: str
    day: Optional[str] = None
    operator_id: Optional[str] = None
    task_id: Optional[str] = None
    operator_type: Optional[RequirementType] = None
    shortfall: int = 0
    rule: Optional[str] = None
    detail: Optional[str] = None
    caller_fixed: bool = False  # caused by a locked input cell

    @property
    def is_hard(self) -> bool:
        return self.kind is not ViolationKind.SOFT_RULE_BROKEN


def validate_schedule(
    schedule: Union[ScheduleResult, Iterable[AssignmentCell]],
    request: ScheduleRequest,
    cfg: Optional[SchedulerConfig] = None,
) -> List[Violation]:
    """
    Re-check a schedule against every hard constraint and the soft rotation rules.

    Performs no search; runs in time linear in the number of cells.

    Args:
        schedule: ScheduleResult or plain iterable of AssignmentCell
        request: Request the schedule was produced for
        cfg: SchedulerConfig (defaults when omitted)

    Returns:
        List of Violation, hard ones first in grid order, soft rule breaks last
    """
    cfg = cfg or SchedulerConfig()
    cells = list(schedule.cells if isinstance(schedule, ScheduleResult) else schedule)
    operators = {op.operator_id: op for op in request.operators}
    tasks = {t.task_id: t for t in request.tasks}
    day_pos = {d: i for i, d in enumerate(request.days)}

    violations: List[Violation] = []
    soft: List[Violation] = []

    # 1. One task per operator per day
    by_op_day: Dict[Tuple[str, str], List[AssignmentCell]] = defaultdict(list)
    for cell in cells:
        if cell.task_id is not None:
            by_op_day[(cell.operator_id, cell.day)].append(cell)
    for (op_id, day), day_cells in by_op_day.items():
        if len(day_cells) > 1:
            violations.append(Violation(
                ViolationKind.DOUBLE_ASSIGNMENT,
                f"Operator {op_id} has {len(day_cells)} assignments on {day}",
                day=day,
                operator_id=op_id,
                caller_fixed=all(c.locked for c in day_cells),
            ))

    # 2. Per-cell eligibility
    for cell in cells:
        if cell.task_id is None:
            continue
        op = operators.get(cell.operator_id)
        task = tasks.get(cell.task_id)
        if op is None or task is None:
            violations.append(Violation(
                ViolationKind.SKILL_MISMATCH,
                f"Cell references unknown operator/task ({cell.operator_id}, {cell.task_id})",
                day=cell.day, operator_id=cell.operator_id, task_id=cell.task_id,
            ))
            continue
        if not op.is_active or not op.is_available(cell.day):
            reason = op.status.value if not op.is_active else "unavailable"
            violations.append(Violation(
                ViolationKind.UNAVAILABLE_OPERATOR,
                f"Operator {op.operator_id} assigned on {cell.day} while {reason}",
                day=cell.day, operator_id=op.operator_id, task_id=task.task_id,
                caller_fixed=cell.locked,
            ))
        if not coordinator_rule_ok(op, task):
            violations.append(Violation(
                ViolationKind.SKILL_MISMATCH,
                f"Operator {op.operator_id} ({op.type.value}) cannot work {task.task_id}",
                day=cell.day, operator_id=op.operator_id, task_id=task.task_id,
                detail="coordinator rule", caller_fixed=cell.locked,
            ))
        if not op.has_skill(task.required_skill):
            if cfg.strict_skill_matching:
                violations.append(Violation(
                    ViolationKind.SKILL_MISMATCH,
                    f"Operator {op.operator_id} lacks skill '{task.required_skill}' for {task.task_id}",
                    day=cell.day, operator_id=op.operator_id, task_id=task.task_id,
                    caller_fixed=cell.locked,
                ))
            else:
                soft.append(Violation(
                    ViolationKind.SOFT_RULE_BROKEN,
                    f"Operator {op.operator_id} works {task.task_id} without '{task.required_skill}'",
                    day=cell.day, operator_id=op.operator_id, task_id=task.task_id,
                    rule=SOFT_SKILL_MISMATCH, detail=task.required_skill,
                ))

    # 3. Locked and pinned input cells
    output_task = {k: v[0].task_id for k, v in by_op_day.items()}
    for cell in request.current_assignments:
        key = (cell.operator_id, cell.day)
        if cell.locked and cfg.respect_locked:
            if output_task.get(key) != cell.task_id:
                violations.append(Violation(
                    ViolationKind.LOCKED_VIOLATED,
                    f"Locked cell {cell.operator_id}/{cell.day} changed "
                    f"from {cell.task_id} to {output_task.get(key)}",
                    day=cell.day, operator_id=cell.operator_id, task_id=cell.task_id,
                ))
        elif cell.pinned and cell.task_id is not None and output_task.get(key) != cell.task_id:
            soft.append(Violation(
                ViolationKind.SOFT_RULE_BROKEN,
                f"Pinned cell {cell.operator_id}/{cell.day} moved from {cell.task_id}",
                day=cell.day, operator_id=cell.operator_id, task_id=cell.task_id,
                rule=PINNED_OVERRIDDEN, detail=str(output_task.get(key)),
            ))

    # 4. Staffing counts per (task, day), typed units first then Any
    assigned: Dict[Tuple[str, str], List[AssignmentCell]] = defaultdict(list)
    for cell in cells:
        if cell.task_id is not None and cell.operator_id in operators:
            assigned[(cell.task_id, cell.day)].append(cell)

    for day in request.days:
        for task in request.tasks:
            day_cells = assigned.get((task.task_id, day), [])
            # Staffing the caller fixed entirely by hand is taken as intended
            if day_cells and all(c.locked for c in day_cells):
                continue
            counts = build_requirements_for_day(request, task, day)
            violations.extend(staffing_violations(task.task_id, day, counts, day_cells, operators))

    # 5. Rotation rules
    rows: Dict[str, List[Optional[str]]] = {
        op_id: [None] * len(request.days) for op_id in operators
    }
    for (op_id, day), day_cells in by_op_day.items():
        if op_id in rows and day in day_pos:
            rows[op_id][day_pos[day]] = day_cells[0].task_id
    for op in request.operators:
        for rule, day, detail in soft_rule_breaks(op, rows[op.operator_id], request.days, tasks, cfg):
            soft.append(Violation(
                ViolationKind.SOFT_RULE_BROKEN,
                detail,
                day=day, operator_id=op.operator_id, rule=rule, detail=detail,
            ))

    return violations + soft


def staffing_violations(task_id, day, counts, day_cells, operators) -> List[Violation]:
    by_type: Dict[OperatorType, int] = defaultdict(int)
    for cell in day_cells:
        by_type[operators[cell.operator_id].type] += 1
    fixed_present = any(c.locked for c in day_cells)

    out: List[Violation] = []
    surplus = 0
    typed_seen = set()
    any_needed = 0
    for tc in counts:
        if tc.type is RequirementType.ANY:
            any_needed += tc.count
            continue
        op_type = OperatorType(tc.type.value)
        typed_seen.add(op_type)
        have = by_type.get(op_type, 0)
        if have < tc.count:
            out.append(_understaffed(task_id, day, tc.type, tc.count, have))
        else:
            surplus += have - tc.count
    for op_type, have in by_type.items():
        if op_type not in typed_seen:
            surplus += have

    if any_needed:
        if surplus < any_needed:
            out.append(_understaffed(task_id, day, RequirementType.ANY, any_needed, surplus))
            surplus = 0
        else:
            surplus -= any_needed

    if surplus > 0:
        required = sum(tc.count for tc in counts)
        out.append(Violation(
            ViolationKind.OVERSTAFFED,
            f"Task {task_id} on {day} has {len(day_cells)} operator(s) for {required} unit(s)",
            day=day, task_id=task_id, shortfall=-surplus, caller_fixed=fixed_present,
        ))
    return out


def _understaffed(task_id, day, req_type, required, have) -> Violation:
    return Violation(
        ViolationKind.UNDERSTAFFED,
        f"Task {task_id} on {day} needs {required} {req_type.value} but has {have}",
        day=day, task_id=task_id, operator_type=req_type, shortfall=required - have,
    )


def hard_violations(violations: Iterable[Violation]) -> List[Violation]:
    return [v for v in violations if v.is_hard]


def check_invariants(
    result: ScheduleResult,
    request: ScheduleRequest,
    cfg: Optional[SchedulerConfig] = None,
) -> List[Violation]:
    """
    Guard an engine-produced schedule.

    Understaffing is tolerated for partial/infeasible results; violations caused by
    caller-fixed cells are reported but not raised.

    Returns:
        Every violation found (hard and soft)

    Raises:
        ConstraintViolationDetected: If the engine produced a hard violation
    """
    violations = validate_schedule(result, request, cfg)
    offending = [
        v for v in hard_violations(violations)
        if not v.caller_fixed
        and not (v.kind is ViolationKind.UNDERSTAFFED and result.status is not ScheduleStatus.COMPLETE)
    ]
    if offending:
        for v in offending:
            logger.error(f"Invariant violated ({v.kind.value}): {v.message}")
        raise ConstraintViolationDetected(
            f"{len(offending)} hard constraint violation(s) in {result.algorithm or 'engine'} output",
            offending,
        )
    return violations


def violations_frame(violations: Iterable[Violation]) -> pd.DataFrame:
    rows = [
        {
            "kind": v.kind.value,
            "hard": v.is_hard,
            "day": v.day,
            "operator_id": v.operator_id,
            "task_id": v.task_id,
            "rule": v.rule,
            "message": v.message,
        }
        for v in violations
    ]
    return pd.DataFrame(rows, columns=["kind", "hard", "day", "operator_id", "task_id", "rule", "message"])


def summarize_schedule(result: ScheduleResult, request: ScheduleRequest) -> str:
    """Render coverage per day per task and workload per operator."""
    df = result.to_frame()
    if df.empty:
        return "No assignments."

    coverage = df.groupby(["day", "task_id"]).size().unstack(fill_value=0)
    coverage = coverage.reindex([d for d in request.days if d in coverage.index])
    workload = (
        df.groupby("operator_id").size()
        .reindex([op.operator_id for op in request.operators], fill_value=0)
    )

    lines = [f"Status: {result.status.value} ({result.algorithm or 'unknown'})"]
    lines.append("")
    lines.append("Coverage per day per task:")
    lines.append(coverage.to_string())
    lines.append("")
    lines.append("Assignments per operator (week):")
    lines.append(workload.to_string())
    if result.warnings:
        lines.append("")
        lines.append(f"Warnings ({len(result.warnings)}):")
        for w in result.warnings:
            lines.append(f"  [{w.kind.value}] {w.message}")
    return "\n".join(lines)


def print_validation_report(violations: List[Violation]) -> None:
    """Print validation results in a readable format."""
    hard = hard_violations(violations)
    soft = [v for v in violations if not v.is_hard]
    print("\n" + "=" * 70)
    print("VALIDATION REPORT")
    print("=" * 70)
    print("Status: VALID" if not hard else "Status: INVALID")
    if hard:
        print(f"\nErrors ({len(hard)}):")
        for v in hard:
            print(f"  x [{v.kind.value}] {v.message}")
    if soft:
        print(f"\nWarnings ({len(soft)}):")
        for v in soft:
            print(f"  ! [{v.rule}] {v.message}")
    print("=" * 70)
