"""Tests for the max-matching mode."""

from conftest import make_operator, need
from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    AssignmentCell,
    RequirementType,
    ScheduleRequest,
    ScheduleStatus,
    Task,
    WarningKind,
)
from taskroster.engine.matching import MatchingScheduler, match_day
from taskroster.services.requirements import Slot
from taskroster.validator import hard_violations, validate_schedule


def test_match_day_maximum_cardinality():
    slots = [Slot("A", "Monday", RequirementType.REGULAR, 0), Slot("B", "Monday", RequirementType.REGULAR, 0)]
    # Slot A could take either operator; B only operator 0
    matched = match_day(slots, [[0, 1], [0]], 2)
    assert matched == {0: 1, 1: 0}


def test_match_day_empty():
    assert match_day([], [], 3) == {}


def test_complete_week(warehouse_request, cfg):
    result = MatchingScheduler().make_schedule(warehouse_request, cfg)
    assert result.status is ScheduleStatus.COMPLETE
    assert result.algorithm == "max-matching"
    assert hard_violations(validate_schedule(result, warehouse_request, cfg)) == []


def test_unmatched_units_are_infeasible(infeasible_request, cfg):
    result = MatchingScheduler().make_schedule(infeasible_request, cfg)
    assert result.status is ScheduleStatus.INFEASIBLE
    assert [(s.task_id, s.day, s.operator_type, s.shortfall) for s in result.shortfalls] == [
        ("T", "Monday", RequirementType.REGULAR, 1)
    ]
    assert result.warnings_of(WarningKind.INFEASIBLE)


def test_locked_cells_kept(locked_request, cfg):
    result = MatchingScheduler().make_schedule(locked_request, cfg)
    assert result.task_for("R3", "Monday") == "LOAD"
    assert result.task_for("R1", "Tuesday") == "PACK"


def test_pin_released_when_day_comes_up_short():
    request = ScheduleRequest(
        operators=[make_operator("R1", ["picking", "loading"]), make_operator("R2", ["picking"])],
        tasks=[Task("PICK", "Picking", "picking"), Task("LOAD", "Loading", "loading")],
        days=("Monday",),
        requirements=[need("PICK", Regular=1), need("LOAD", Regular=1)],
        current_assignments=[AssignmentCell("Monday", "R1", "PICK", pinned=True)],
    )
    result = MatchingScheduler().make_schedule(request, SchedulerConfig())
    assert result.is_complete
    assert result.task_for("R1", "Monday") == "LOAD"
    assert [w.operator_id for w in result.warnings_of(WarningKind.PINNED_OVERRIDDEN)] == ["R1"]
