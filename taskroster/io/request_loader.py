"""Load schedule requests from YAML/JSON and move assignment grids through CSV."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import pandas as pd
import yaml

from taskroster.domain.models import (
    WEEKDAYS,
    AssignmentCell,
    Operator,
    OperatorStatus,
    OperatorType,
    RequirementType,
    ScheduleRequest,
    ScheduleResult,
    StaffingRequirement,
    Task,
    TypeCount,
)
from taskroster.exceptions import InvalidRequestError
from taskroster.logger import get_logger

logger = get_logger(__name__)

ASSIGNMENT_COLUMNS = ["day", "operator_id", "task_id", "locked", "pinned"]


def _enum(cls, value: Any, field_name: str):
    try:
        return cls(str(value).strip().title())
    except ValueError as e:
        allowed = ", ".join(m.value for m in cls)
        raise InvalidRequestError(f"Invalid {field_name} '{value}'. Expected one of: {allowed}") from e


def _type_counts(raw: Any, where: str) -> Tuple[TypeCount, ...]:
    """``{Regular: 2, Any: 1}`` -> TypeCount tuple in the given order."""
    if raw is None:
        return ()
    if not isinstance(raw, Mapping):
        raise InvalidRequestError(f"Counts for {where} must be a mapping of type -> count")
    counts = []
    for type_name, count in raw.items():
        try:
            n = int(count)
        except (TypeError, ValueError) as e:
            raise InvalidRequestError(f"Count for {type_name} in {where} is not an integer: {count!r}") from e
        counts.append(TypeCount(_enum(RequirementType, type_name, "requirement type"), n))
    return tuple(counts)


def _availability(raw: Any, days: Tuple[str, ...]) -> Dict[str, bool]:
    # Omitted means available every day; a list names the available days
    if raw is None:
        return {d: True for d in days}
    if isinstance(raw, Mapping):
        return {str(d): bool(v) for d, v in raw.items()}
    return {str(d): True for d in raw}


def _operator(raw: Mapping[str, Any], days: Tuple[str, ...]) -> Operator:
    try:
        op_id = str(raw["id"])
    except KeyError as e:
        raise InvalidRequestError(f"Operator entry without 'id': {dict(raw)}") from e
    return Operator(
        operator_id=op_id,
        name=str(raw.get("name", op_id)),
        type=_enum(OperatorType, raw.get("type", "Regular"), "operator type"),
        status=_enum(OperatorStatus, raw.get("status", "Active"), "operator status"),
        skills=frozenset(str(s) for s in raw.get("skills", ()) or ()),
        availability=_availability(raw.get("availability"), days),
        preferred_tasks=tuple(str(t) for t in raw.get("preferred_tasks", ()) or ()),
    )


def _task(raw: Mapping[str, Any]) -> Task:
    try:
        task_id = str(raw["id"])
        skill = str(raw["required_skill"])
    except KeyError as e:
        raise InvalidRequestError(f"Task entry missing {e}: {dict(raw)}") from e
    return Task(
        task_id=task_id,
        name=str(raw.get("name", task_id)),
        required_skill=skill,
        heavy=bool(raw.get("heavy", False)),
        coordinator_only=bool(raw.get("coordinator_only", False)),
    )


def _requirement(raw: Mapping[str, Any]) -> StaffingRequirement:
    try:
        task_id = str(raw["task"])
    except KeyError as e:
        raise InvalidRequestError(f"Requirement entry without 'task': {dict(raw)}") from e
    overrides = {
        str(day): _type_counts(counts, f"{task_id}/{day}")
        for day, counts in (raw.get("overrides") or {}).items()
    }
    return StaffingRequirement(
        task_id=task_id,
        default=_type_counts(raw.get("default"), task_id),
        overrides=overrides,
        enabled=bool(raw.get("enabled", True)),
    )


def _cell(raw: Mapping[str, Any]) -> AssignmentCell:
    try:
        op_id, day = str(raw["operator"]), str(raw["day"])
    except KeyError as e:
        raise InvalidRequestError(f"Assignment entry missing {e}: {dict(raw)}") from e
    task_id = raw.get("task")
    return AssignmentCell(
        day=day,
        operator_id=op_id,
        task_id=None if task_id is None else str(task_id),
        locked=bool(raw.get("locked", False)),
        pinned=bool(raw.get("pinned", False)),
    )


def request_from_dict(data: Mapping[str, Any]) -> ScheduleRequest:
    """
    Build and validate a ScheduleRequest from plain data.

    Expected keys: ``operators``, ``tasks``, and optionally ``days``,
    ``requirements``, ``current_assignments`` and ``excluded_tasks``.

    Raises:
        InvalidRequestError: On missing fields, bad enum values or broken references
    """
    if not isinstance(data, Mapping):
        raise InvalidRequestError("Request must be a mapping at top level")
    days = tuple(str(d) for d in data.get("days") or WEEKDAYS)
    request = ScheduleRequest(
        operators=[_operator(o, days) for o in data.get("operators") or ()],
        tasks=[_task(t) for t in data.get("tasks") or ()],
        days=days,
        requirements=[_requirement(r) for r in data.get("requirements") or ()],
        current_assignments=[_cell(c) for c in data.get("current_assignments") or ()],
        excluded_tasks=frozenset(str(t) for t in data.get("excluded_tasks") or ()),
    )
    return request.validate()


def load_request(path: str | Path) -> ScheduleRequest:
    """
    Load a request from a ``.yaml``/``.yml`` or ``.json`` file.

    Args:
        path: Request file

    Returns:
        Validated ScheduleRequest
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidRequestError(f"Cannot read request file {path}: {e}") from e
    try:
        raw = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InvalidRequestError(f"Cannot parse request file {path}: {e}") from e

    request = request_from_dict(raw or {})
    logger.info(
        f"Loaded request from {path}: {len(request.operators)} operators, "
        f"{len(request.tasks)} tasks, {len(request.days)} days"
    )
    return request


def import_assignments_csv(csv_path: str | Path) -> List[AssignmentCell]:
    """
    Read an assignments CSV (as written by ``export_assignments_csv``).

    Args:
        csv_path: Path to the CSV

    Returns:
        Assignment cells in file order
    """
    df = pd.read_csv(csv_path, dtype={"day": str, "operator_id": str, "task_id": str})
    df.columns = df.columns.str.lower().str.strip()
    missing = {"day", "operator_id", "task_id"} - set(df.columns)
    if missing:
        raise InvalidRequestError(f"Assignments CSV {csv_path} lacks columns: {', '.join(sorted(missing))}")

    cells = []
    for _, row in df.iterrows():
        cells.append(AssignmentCell(
            day=row["day"],
            operator_id=row["operator_id"],
            task_id=row["task_id"] if pd.notna(row["task_id"]) else None,
            locked=bool(row["locked"]) if "locked" in df.columns and pd.notna(row["locked"]) else False,
            pinned=bool(row["pinned"]) if "pinned" in df.columns and pd.notna(row["pinned"]) else False,
        ))
    logger.info(f"Imported {len(cells)} assignment(s) from {csv_path}")
    return cells


def export_assignments_csv(result: ScheduleResult, csv_path: str | Path) -> int:
    """
    Write the non-empty cells of a schedule to CSV.

    Args:
        result: Schedule to export
        csv_path: Output path

    Returns:
        Number of rows written
    """
    df = result.to_frame()
    df.to_csv(csv_path, index=False, columns=ASSIGNMENT_COLUMNS)
    logger.info(f"Exported {len(df)} assignment(s) to {csv_path}")
    return len(df)
