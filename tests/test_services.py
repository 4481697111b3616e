"""Tests for eligibility, scoring and objective services."""

import pytest

from conftest import make_operator
from taskroster.config import ObjectiveWeights, SchedulerConfig
from taskroster.domain.models import AssignmentCell, OperatorStatus, OperatorType, RequirementType, Task, TypeCount
from taskroster.services.constraints import can_assign_operator, eligible_operators, rotation_exempt, streak_before
from taskroster.services.objectives import (
    ObjectiveState,
    ObjectiveVector,
    calculate_objectives,
    combine_scores,
    dominates,
)
from taskroster.services.requirements import has_open_unit
from taskroster.services.scoring import calculate_operator_score, jitter, preference_fit, skill_fit


PICK = Task("PICK", "Picking", "picking")
COORD = Task("COORD", "Coordination", "coordination", coordinator_only=True)


class TestEligibility:
    def test_skill_and_availability(self):
        cfg = SchedulerConfig()
        op = make_operator("R1", ["picking"], days=("Monday",))
        assert can_assign_operator(op, PICK, "Monday", cfg)
        assert not can_assign_operator(op, PICK, "Tuesday", cfg)
        assert not can_assign_operator(make_operator("R2", ["packing"]), PICK, "Monday", cfg)
        assert can_assign_operator(
            make_operator("R2", ["packing"]), PICK, "Monday", SchedulerConfig(strict_skill_matching=False)
        )

    def test_inactive_operator_never_eligible(self):
        op = make_operator("R1", ["picking"], status=OperatorStatus.LEAVE)
        assert not can_assign_operator(op, PICK, "Monday", SchedulerConfig())

    def test_coordinator_rule_both_ways(self):
        cfg = SchedulerConfig()
        coordinator = make_operator("C1", ["picking", "coordination"], OperatorType.COORDINATOR)
        regular = make_operator("R1", ["coordination"])
        assert not can_assign_operator(coordinator, PICK, "Monday", cfg)
        assert can_assign_operator(coordinator, COORD, "Monday", cfg)
        assert not can_assign_operator(regular, COORD, "Monday", cfg)

    def test_slot_type(self):
        cfg = SchedulerConfig()
        flex = make_operator("F1", ["picking"], OperatorType.FLEX)
        assert can_assign_operator(flex, PICK, "Monday", cfg, RequirementType.ANY)
        assert not can_assign_operator(flex, PICK, "Monday", cfg, RequirementType.REGULAR)

    def test_eligible_operators_keeps_declaration_order(self, warehouse_request):
        ops = eligible_operators(warehouse_request, warehouse_request.task("PICK"), "Monday", SchedulerConfig())
        assert [op.operator_id for op in ops] == ["R1", "R2", "R4", "F1"]


def test_streak_before():
    assert streak_before(["A", "A", "B", None], 2, "A") == 2
    assert streak_before(["A", "A", "B", None], 3, "B") == 1
    assert streak_before(["A"], 0, "A") == 0


def test_rotation_exempt_covers_every_single_skill_type():
    assert rotation_exempt(make_operator("R1", ["picking"]))
    assert rotation_exempt(make_operator("F1", ["picking"], OperatorType.FLEX))
    assert rotation_exempt(make_operator("C1", ["coordination"], OperatorType.COORDINATOR))
    assert not rotation_exempt(make_operator("R2", ["picking", "packing"]))


def test_has_open_unit():
    counts = [TypeCount(RequirementType.REGULAR, 1), TypeCount(RequirementType.ANY, 1)]
    regular, flex = OperatorType.REGULAR, OperatorType.FLEX
    assert has_open_unit(counts, [], flex)
    assert has_open_unit(counts, [regular], regular)
    assert not has_open_unit(counts, [regular, flex], regular)
    assert not has_open_unit([], [], regular)


class TestScoring:
    def test_jitter_is_deterministic_and_bounded(self):
        a = jitter(3, "R1", "PICK", 0)
        assert a == jitter(3, "R1", "PICK", 0)
        assert a != jitter(4, "R1", "PICK", 0)
        assert 0.0 <= a < 1.0

    def test_preference_and_skill_fit(self):
        op = make_operator("R1", ["picking", "packing"], preferred_tasks=("PACK", "PICK"))
        assert preference_fit(op, PICK) == pytest.approx(0.5)
        assert skill_fit(op, PICK) == pytest.approx(0.75)
        assert skill_fit(make_operator("R2", ["packing"]), PICK) == 0.0

    def test_fewer_assignments_score_higher(self):
        cfg = SchedulerConfig(randomization=0.0)
        op = make_operator("R1", ["picking"])
        rested = calculate_operator_score(op, PICK, 0, [None] * 5, 0, cfg)
        busy = calculate_operator_score(op, PICK, 0, [None] * 5, 3, cfg)
        assert rested > busy

    def test_rotation_penalty_lowers_score(self):
        cfg = SchedulerConfig(randomization=0.0, max_consecutive_days_on_task=2)
        op = make_operator("R1", ["picking", "packing"])
        fresh = calculate_operator_score(op, PICK, 2, [None, None, None], 2, cfg)
        repeated = calculate_operator_score(op, PICK, 2, ["PICK", "PICK", None], 2, cfg)
        assert fresh - repeated == pytest.approx(cfg.scoring.rotation_penalty)


class TestObjectives:
    def test_dominance(self):
        a = ObjectiveVector(0.5, 1, 100, 80, 2)
        b = ObjectiveVector(0.5, 1, 100, 60, 2)
        assert dominates(a, b)
        assert not dominates(b, a)
        assert not dominates(a, a)
        c = ObjectiveVector(0.1, 1, 100, 60, 2)
        assert not dominates(a, c) and not dominates(c, a)

    def test_combine_scores_perfect_vector(self):
        perfect = ObjectiveVector(0.0, 0.0, 100.0, 100.0, 5.0)
        assert combine_scores(perfect, ObjectiveWeights()) == pytest.approx(100.0)

    def test_calculate_objectives(self, warehouse_request):
        cells = [
            AssignmentCell("Monday", "R1", "PICK"),
            AssignmentCell("Tuesday", "R1", "PACK"),
            AssignmentCell("Monday", "R2", "PICK"),
        ]
        vec = calculate_objectives(cells, warehouse_request)
        assert vec.workload_balance == 1.0
        assert vec.skill_match == 100.0
        # R1 prefers PICK (1 of 2), R2 prefers LOAD (0 of 1)
        assert vec.preference == pytest.approx(100.0 / 3)
        assert vec.variety == pytest.approx(1.5)

    def test_empty_schedule(self, warehouse_request):
        vec = calculate_objectives([], warehouse_request)
        assert vec == ObjectiveVector(0.0, 0.0, 100.0, 100.0, 0.0)

    def test_incremental_state_matches_rebuild(self, warehouse_request):
        cfg = SchedulerConfig()
        state = ObjectiveState(warehouse_request, cfg, [AssignmentCell("Monday", "R1", "PICK")])
        previous = state.set_task("R1", 0, "PACK")
        assert previous == "PICK"
        state.set_task("R2", 1, "LOAD")
        rebuilt = calculate_objectives(
            [AssignmentCell("Monday", "R1", "PACK"), AssignmentCell("Tuesday", "R2", "LOAD")],
            warehouse_request, cfg,
        )
        assert state.vector() == rebuilt
        state.set_task("R2", 1, None)
        assert state.total == 1
