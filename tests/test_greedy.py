"""Tests for the greedy assigner."""

from conftest import make_operator, need
from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    AssignmentCell,
    OperatorType,
    ScheduleRequest,
    ScheduleStatus,
    Task,
    WarningKind,
)
from taskroster.engine.greedy import GreedyScheduler
from taskroster.validator import hard_violations, validate_schedule


def test_single_operator_every_day(single_operator_request, cfg):
    result = GreedyScheduler().make_schedule(single_operator_request, cfg)
    assert result.status is ScheduleStatus.COMPLETE
    assert len(result.assignments()) == 5
    assert result.warnings == ()
    assert len(result.cells) == 5


def test_result_covers_full_grid(warehouse_request, cfg):
    result = GreedyScheduler().make_schedule(warehouse_request, cfg)
    assert len(result.cells) == len(warehouse_request.days) * len(warehouse_request.operators)
    assert result.algorithm == "greedy"


def test_never_breaks_eligibility(warehouse_request, cfg):
    result = GreedyScheduler().make_schedule(warehouse_request, cfg)
    kinds = {v.kind.value for v in hard_violations(validate_schedule(result, warehouse_request, cfg))}
    assert kinds <= {"understaffed"}


def test_scarce_group_filled_first():
    # Declared first, PICK would take R1; scarcity ordering saves R1 for LOAD
    request = ScheduleRequest(
        operators=[
            make_operator("R1", ["picking", "loading"]),
            make_operator("R2", ["picking"]),
        ],
        tasks=[Task("PICK", "Picking", "picking"), Task("LOAD", "Loading", "loading")],
        days=("Monday",),
        requirements=[need("PICK", Regular=1), need("LOAD", Regular=1)],
    )
    result = GreedyScheduler().make_schedule(request, SchedulerConfig(randomization=0.0))
    assert result.status is ScheduleStatus.COMPLETE
    assert result.task_for("R1", "Monday") == "LOAD"
    assert result.task_for("R2", "Monday") == "PICK"


def test_shortfall_reported_as_partial(infeasible_request, cfg):
    result = GreedyScheduler().make_schedule(infeasible_request, cfg)
    assert result.status is ScheduleStatus.PARTIAL
    assert [(s.task_id, s.day, s.shortfall) for s in result.shortfalls] == [("T", "Monday", 1)]
    assert result.warnings_of(WarningKind.UNDERSTAFFED)


def test_flex_fills_any_unit():
    request = ScheduleRequest(
        operators=[make_operator("R1", ["picking"]), make_operator("F1", ["picking"], OperatorType.FLEX)],
        tasks=[Task("PICK", "Picking", "picking")],
        days=("Monday",),
        requirements=[need("PICK", Regular=1, Any=1)],
    )
    result = GreedyScheduler().make_schedule(request, SchedulerConfig())
    assert result.is_complete
    assert {c.operator_id for c in result.assignments()} == {"R1", "F1"}


def test_locked_and_pinned_cells_kept(locked_request, cfg):
    result = GreedyScheduler().make_schedule(locked_request, cfg)
    monday = result.cell_map()[("R3", "Monday")]
    assert monday.task_id == "LOAD" and monday.locked
    assert result.task_for("R1", "Tuesday") == "PACK"


def test_blocked_cell_stays_empty(single_operator_request, cfg):
    request = ScheduleRequest(
        operators=single_operator_request.operators,
        tasks=single_operator_request.tasks,
        requirements=single_operator_request.requirements,
        current_assignments=[AssignmentCell("Wednesday", "O1", None, locked=True)],
    )
    result = GreedyScheduler().make_schedule(request, cfg)
    assert result.task_for("O1", "Wednesday") is None
    assert result.status is ScheduleStatus.PARTIAL


def test_pin_on_ineligible_operator_is_dropped(single_operator_request, cfg):
    request = ScheduleRequest(
        operators=[make_operator("O1", ["Troubleshooter"], days=("Monday", "Tuesday"))],
        tasks=single_operator_request.tasks,
        days=("Monday", "Tuesday", "Wednesday"),
        requirements=single_operator_request.requirements,
        current_assignments=[AssignmentCell("Wednesday", "O1", "T1", pinned=True)],
    )
    result = GreedyScheduler().make_schedule(request, cfg)
    assert result.task_for("O1", "Wednesday") is None
    assert [w.day for w in result.warnings_of(WarningKind.PINNED_OVERRIDDEN)] == ["Wednesday"]


def test_surplus_pins_released_when_task_fully_staffed(cfg):
    request = ScheduleRequest(
        operators=[make_operator("R1", ["packing"]), make_operator("R2", ["packing"])],
        tasks=[Task("P", "Packing", "packing")],
        days=("Monday",),
        requirements=[need("P", Regular=1)],
        current_assignments=[
            AssignmentCell("Monday", "R1", "P", pinned=True),
            AssignmentCell("Monday", "R2", "P", pinned=True),
        ],
    )
    result = GreedyScheduler().make_schedule(request, cfg)
    assert result.is_complete
    assert result.task_for("R1", "Monday") == "P"
    assert result.task_for("R2", "Monday") is None
    [dropped] = result.warnings_of(WarningKind.PINNED_OVERRIDDEN)
    assert dropped.operator_id == "R2"
    assert "fully staffed" in dropped.message
    assert hard_violations(validate_schedule(result.cells, request, cfg)) == []


def test_pin_fills_any_unit_after_locked_cell(cfg):
    request = ScheduleRequest(
        operators=[make_operator("R1", ["packing"]), make_operator("F1", ["packing"], OperatorType.FLEX)],
        tasks=[Task("P", "Packing", "packing")],
        days=("Monday",),
        requirements=[need("P", Regular=1, Any=1)],
        current_assignments=[
            AssignmentCell("Monday", "R1", "P", locked=True),
            AssignmentCell("Monday", "F1", "P", pinned=True),
        ],
    )
    result = GreedyScheduler().make_schedule(request, cfg)
    assert result.is_complete
    assert result.task_for("F1", "Monday") == "P"
    assert result.warnings_of(WarningKind.PINNED_OVERRIDDEN) == []


def test_same_seed_same_output(warehouse_request, cfg):
    a = GreedyScheduler().make_schedule(warehouse_request, cfg)
    b = GreedyScheduler().make_schedule(warehouse_request, cfg)
    assert a == b
