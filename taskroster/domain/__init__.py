"""Domain models shared by every engine component."""

from .models import (
    WEEKDAYS,
    AssignmentCell,
    Operator,
    OperatorStatus,
    OperatorType,
    RequirementType,
    ScheduleRequest,
    ScheduleResult,
    ScheduleStatus,
    ScheduleWarning,
    ShortfallRecord,
    StaffingRequirement,
    Task,
    TypeCount,
    WarningKind,
    iter_grid,
)

__all__ = [
    "WEEKDAYS",
    "AssignmentCell",
    "Operator",
    "OperatorStatus",
    "OperatorType",
    "RequirementType",
    "ScheduleRequest",
    "ScheduleResult",
    "ScheduleStatus",
    "ScheduleWarning",
    "ShortfallRecord",
    "StaffingRequirement",
    "Task",
    "TypeCount",
    "WarningKind",
    "iter_grid",
]
