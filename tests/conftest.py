"""Pytest configuration and shared fixtures."""

import pytest

from taskroster.config import SchedulerConfig
from taskroster.domain.models import (
    WEEKDAYS,
    AssignmentCell,
    Operator,
    OperatorType,
    RequirementType,
    ScheduleRequest,
    StaffingRequirement,
    Task,
    TypeCount,
)


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def make_operator(op_id, skills, op_type=OperatorType.REGULAR, days=WEEKDAYS, **kwargs):
    return Operator(
        operator_id=op_id,
        name=kwargs.pop("name", op_id),
        type=op_type,
        skills=frozenset(skills),
        availability={d: d in days for d in WEEKDAYS},
        **kwargs,
    )


def need(task_id, overrides=None, **counts):
    """StaffingRequirement from keyword counts, e.g. need("T1", Regular=2)."""
    default = tuple(TypeCount(RequirementType(name), n) for name, n in counts.items())
    return StaffingRequirement(task_id=task_id, default=default, overrides=overrides or {})


@pytest.fixture
def cfg():
    """Deterministic config with a generous budget."""
    return SchedulerConfig(random_seed=7, time_budget_seconds=30.0)


@pytest.fixture
def single_operator_request():
    """One Troubleshooter covering one task every day."""
    return ScheduleRequest(
        operators=[make_operator("O1", ["Troubleshooter"])],
        tasks=[Task("T1", "Troubleshooting", "Troubleshooter")],
        requirements=[need("T1", Regular=1)],
    )


@pytest.fixture
def infeasible_request():
    """Task needs two Regulars on Monday, only one eligible Regular exists."""
    return ScheduleRequest(
        operators=[
            make_operator("R1", ["picking"]),
            make_operator("R2", ["packing"]),
            make_operator("F1", ["picking"], OperatorType.FLEX),
        ],
        tasks=[Task("T", "Picking", "picking")],
        days=("Monday",),
        requirements=[need("T", Regular=2)],
    )


@pytest.fixture
def warehouse_request():
    """Mixed-type week with an Any unit, a heavy task and a coordinator task."""
    operators = [
        make_operator("R1", ["picking", "packing"], preferred_tasks=("PICK",)),
        make_operator("R2", ["picking", "loading"], preferred_tasks=("LOAD",)),
        make_operator("R3", ["packing", "loading"]),
        make_operator("R4", ["picking", "packing", "loading"], preferred_tasks=("PACK", "PICK")),
        make_operator("F1", ["picking", "packing"], OperatorType.FLEX),
        make_operator("F2", ["loading", "packing"], OperatorType.FLEX, days=WEEKDAYS[:3]),
        make_operator("C1", ["coordination"], OperatorType.COORDINATOR),
    ]
    tasks = [
        Task("PICK", "Picking", "picking"),
        Task("PACK", "Packing", "packing"),
        Task("LOAD", "Loading", "loading", heavy=True),
        Task("COORD", "Shift coordination", "coordination", coordinator_only=True),
    ]
    requirements = [
        need("PICK", Regular=1, Any=1),
        need("PACK", Regular=1),
        need("LOAD", Regular=1, overrides={"Friday": (TypeCount(RequirementType.REGULAR, 2),)}),
        need("COORD", Coordinator=1),
    ]
    return ScheduleRequest(operators=operators, tasks=tasks, requirements=requirements)


@pytest.fixture
def locked_request(warehouse_request):
    """Warehouse week with R3 locked to LOAD on Monday and R1 pinned to PACK on Tuesday."""
    return ScheduleRequest(
        operators=warehouse_request.operators,
        tasks=warehouse_request.tasks,
        requirements=warehouse_request.requirements,
        current_assignments=[
            AssignmentCell("Monday", "R3", "LOAD", locked=True),
            AssignmentCell("Tuesday", "R1", "PACK", pinned=True),
        ],
    )
