"""Tests for tabu search."""

from conftest import make_operator, need
from taskroster.config import WEIGHT_VARIATIONS, SchedulerConfig
from taskroster.domain.models import ScheduleRequest, ScheduleStatus, Task
from taskroster.engine.feasibility import FeasibilityScheduler
from taskroster.engine.greedy import GreedyScheduler
from taskroster.engine.tabu import TabuOptimizer, tabu_search
from taskroster.services.objectives import calculate_objectives, score_schedule
from taskroster.validator import hard_violations, validate_schedule


def _preference_request():
    """Two interchangeable operators and tasks; only R1 has a preference."""
    return ScheduleRequest(
        operators=[
            make_operator("R1", ["a", "b"], preferred_tasks=("A",)),
            make_operator("R2", ["a", "b"]),
        ],
        tasks=[Task("A", "Task A", "a"), Task("B", "Task B", "b")],
        requirements=[need("A", Regular=1), need("B", Regular=1)],
    )


def test_never_regresses(warehouse_request, cfg):
    start = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    improved = TabuOptimizer(cfg).optimize(start, warehouse_request)
    assert score_schedule(improved.cells, warehouse_request, cfg) >= score_schedule(
        start.cells, warehouse_request, cfg
    )
    assert improved.stats["tabu_best_score"] >= improved.stats["tabu_start_score"]


def test_keeps_hard_constraints(warehouse_request, cfg):
    start = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    improved = TabuOptimizer(cfg).optimize(start, warehouse_request)
    assert improved.status is ScheduleStatus.COMPLETE
    assert hard_violations(validate_schedule(improved, warehouse_request, cfg)) == []


def test_locked_cells_never_move(locked_request, cfg):
    start = FeasibilityScheduler().make_schedule(locked_request, cfg)
    improved = TabuOptimizer(cfg).optimize(start, locked_request)
    cell = improved.cell_map()[("R3", "Monday")]
    assert cell.task_id == "LOAD" and cell.locked
    assert improved.task_for("R1", "Tuesday") == "PACK"


def test_preference_not_worse_than_greedy():
    request = _preference_request()
    cfg = SchedulerConfig(
        random_seed=5,
        max_consecutive_days_on_task=0,
        weights=WEIGHT_VARIATIONS["preference-first"],
    )
    greedy = GreedyScheduler().make_schedule(request, cfg)
    start = FeasibilityScheduler().make_schedule(request, cfg)
    improved = tabu_search(start, request, cfg)

    baseline = calculate_objectives(greedy.cells, request, cfg).preference
    after = calculate_objectives(improved.cells, request, cfg).preference
    assert after >= baseline
    assert after == 100.0


def test_incomplete_input_returned_unchanged(infeasible_request, cfg):
    start = FeasibilityScheduler().make_schedule(infeasible_request, cfg)
    assert TabuOptimizer(cfg).optimize(start, infeasible_request) is start


def test_zero_iterations_returns_input(warehouse_request):
    cfg = SchedulerConfig(tabu_iterations=0)
    start = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    improved = TabuOptimizer(cfg).optimize(start, warehouse_request)
    assert improved == start
    assert improved.stats["tabu_iterations"] == 0


def test_deterministic(warehouse_request, cfg):
    start = FeasibilityScheduler().make_schedule(warehouse_request, cfg)
    a = TabuOptimizer(cfg).optimize(start, warehouse_request)
    b = TabuOptimizer(cfg).optimize(start, warehouse_request)
    assert a == b
