"""Tests for the feasibility engine (CSP search)."""

import pytest

from conftest import make_operator, need
from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    AssignmentCell,
    OperatorType,
    RequirementType,
    ScheduleRequest,
    ScheduleStatus,
    ShortfallRecord,
    Task,
    WarningKind,
)
from taskroster.engine.feasibility import FeasibilityScheduler, merge_shortfalls
from taskroster.engine.greedy import GreedyScheduler
from taskroster.validator import hard_violations, validate_schedule


def test_single_operator_every_day(single_operator_request, cfg):
    result = FeasibilityScheduler().make_schedule(single_operator_request, cfg)
    assert result.status is ScheduleStatus.COMPLETE
    assert len(result.assignments()) == 5
    assert result.warnings == ()


def test_finds_feasible_schedule(warehouse_request, cfg):
    result = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    assert result.status is ScheduleStatus.COMPLETE
    assert hard_violations(validate_schedule(result, warehouse_request, cfg)) == []
    friday_load = [c.operator_id for c in result.assignments() if c.day == "Friday" and c.task_id == "LOAD"]
    assert len(friday_load) == 2


def test_finds_schedule_without_greedy_hint(warehouse_request, cfg):
    result = FeasibilityScheduler(use_greedy_hint=False).make_schedule(warehouse_request, cfg)
    assert result.is_complete
    assert hard_violations(validate_schedule(result, warehouse_request, cfg)) == []


def test_propagation_forces_unique_assignment():
    request = ScheduleRequest(
        operators=[
            make_operator("R1", ["picking", "loading"], preferred_tasks=("PICK",)),
            make_operator("R2", ["picking", "packing"]),
            make_operator("R3", ["packing"]),
        ],
        tasks=[
            Task("PICK", "Picking", "picking"),
            Task("PACK", "Packing", "packing"),
            Task("LOAD", "Loading", "loading"),
        ],
        days=("Monday",),
        requirements=[need("PICK", Regular=1), need("PACK", Regular=1), need("LOAD", Regular=1)],
    )
    cfg = SchedulerConfig(randomization=0.0)
    result = FeasibilityScheduler(use_greedy_hint=False).make_schedule(request, cfg)
    assert result.is_complete
    assert result.task_for("R1", "Monday") == "LOAD"
    assert result.task_for("R2", "Monday") == "PICK"
    assert result.task_for("R3", "Monday") == "PACK"


def test_infeasible_reports_typed_shortfall(infeasible_request, cfg):
    result = FeasibilityScheduler().make_schedule(infeasible_request, cfg)
    assert result.status is ScheduleStatus.INFEASIBLE
    assert result.shortfalls == (
        ShortfallRecord("T", "Monday", RequirementType.REGULAR, required=2, available=1, shortfall=1),
    )
    assert result.warnings_of(WarningKind.INFEASIBLE)


def test_task_union_shortfall():
    request = ScheduleRequest(
        operators=[make_operator("R1", ["picking"])],
        tasks=[Task("T", "Picking", "picking")],
        days=("Monday",),
        requirements=[need("T", Regular=1, Any=1)],
    )
    result = FeasibilityScheduler().make_schedule(request, SchedulerConfig())
    assert result.status is ScheduleStatus.INFEASIBLE
    assert [(s.task_id, s.operator_type, s.required, s.available, s.shortfall) for s in result.shortfalls] == [
        ("T", None, 2, 1, 1)
    ]


def test_day_pigeonhole_shortfall():
    request = ScheduleRequest(
        operators=[make_operator("R1", ["picking", "packing"])],
        tasks=[Task("P", "Picking", "picking"), Task("Q", "Packing", "packing")],
        days=("Monday",),
        requirements=[need("P", Regular=1), need("Q", Regular=1)],
    )
    result = FeasibilityScheduler().make_schedule(request, SchedulerConfig())
    assert result.status is ScheduleStatus.INFEASIBLE
    assert [(s.task_id, s.day, s.shortfall) for s in result.shortfalls] == [(None, "Monday", 1)]
    assert "only 1 can work" in result.shortfalls[0].describe()


def test_tiny_budget_returns_partial(warehouse_request):
    cfg = SchedulerConfig(time_budget_seconds=1e-9)
    result = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    assert result.status is ScheduleStatus.PARTIAL
    assert result.warnings_of(WarningKind.PARTIAL_RESULT)
    assert result.shortfalls


def test_pin_released_when_it_blocks_feasibility():
    request = ScheduleRequest(
        operators=[make_operator("R1", ["picking", "loading"]), make_operator("R2", ["picking"])],
        tasks=[Task("PICK", "Picking", "picking"), Task("LOAD", "Loading", "loading")],
        days=("Monday",),
        requirements=[need("PICK", Regular=1), need("LOAD", Regular=1)],
        current_assignments=[AssignmentCell("Monday", "R1", "PICK", pinned=True)],
    )
    cfg = SchedulerConfig()
    assert GreedyScheduler().make_schedule(request, cfg).status is ScheduleStatus.PARTIAL

    result = FeasibilityScheduler().make_schedule(request, cfg)
    assert result.is_complete
    assert result.task_for("R1", "Monday") == "LOAD"
    overridden = result.warnings_of(WarningKind.PINNED_OVERRIDDEN)
    assert [(w.operator_id, w.day, w.detail) for w in overridden] == [("R1", "Monday", "LOAD")]


def test_locked_cell_never_released(locked_request, cfg):
    result = FeasibilityScheduler().make_schedule(locked_request, cfg)
    cell = result.cell_map()[("R3", "Monday")]
    assert cell.task_id == "LOAD" and cell.locked
    assert result.task_for("R1", "Tuesday") == "PACK"


def test_locked_cell_counts_toward_staffing(locked_request, cfg):
    result = FeasibilityScheduler().make_schedule(locked_request, cfg)
    monday_load = [c.operator_id for c in result.assignments() if c.day == "Monday" and c.task_id == "LOAD"]
    assert monday_load == ["R3"]


def test_coordinator_task_needs_coordinator(cfg):
    request = ScheduleRequest(
        operators=[make_operator("R1", ["coordination"]), make_operator("F1", ["coordination"], OperatorType.FLEX)],
        tasks=[Task("COORD", "Coordination", "coordination", coordinator_only=True)],
        days=("Monday",),
        requirements=[need("COORD", Any=1)],
    )
    result = FeasibilityScheduler().make_schedule(request, cfg)
    assert result.status is ScheduleStatus.INFEASIBLE
    assert result.assignments() == []


def test_same_seed_same_output(warehouse_request, cfg):
    a = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    b = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    assert a == b


def test_merge_shortfalls_keeps_largest():
    small = ShortfallRecord("T", "Monday", RequirementType.REGULAR, 2, 1, 1)
    large = ShortfallRecord("T", "Monday", RequirementType.REGULAR, 3, 1, 2)
    other = ShortfallRecord("U", "Monday", RequirementType.FLEX, 1, 0, 1)
    assert merge_shortfalls([small, other, large]) == [large, other]


@pytest.mark.slow
def test_larger_week_is_complete():
    skills = ["picking", "packing", "loading", "sorting"]
    operators = [
        make_operator(f"R{i}", [skills[i % 4], skills[(i + 1) % 4]]) for i in range(16)
    ] + [
        make_operator(f"F{i}", [skills[i % 4]], OperatorType.FLEX) for i in range(4)
    ]
    tasks = [Task(s.upper(), s.title(), s) for s in skills]
    requirements = [need(t.task_id, Regular=3, Any=1) for t in tasks]
    request = ScheduleRequest(operators=operators, tasks=tasks, requirements=requirements)
    cfg = SchedulerConfig(random_seed=3, time_budget_seconds=60.0)
    result = FeasibilityScheduler(use_greedy_hint=False).make_schedule(request, cfg)
    assert result.is_complete
    assert hard_violations(validate_schedule(result, request, cfg)) == []
