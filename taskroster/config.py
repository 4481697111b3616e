"""Scheduler configuration: one immutable value threaded through every call."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .exceptions import ConfigurationError


class Algorithm(str, Enum):
    """Closed set of engine pipelines the orchestrator can dispatch to."""

    GREEDY = "greedy"
    FEASIBILITY = "feasibility"
    GREEDY_TABU = "greedy-tabu"
    MULTI_OBJECTIVE = "multi-objective"
    MAX_MATCHING = "max-matching"

    @classmethod
    def parse(cls, value: "str | Algorithm") -> "Algorithm":
        if isinstance(value, Algorithm):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        aliases = {"feasibility-only": "feasibility", "csp": "feasibility", "tabu": "greedy-tabu"}
        normalized = aliases.get(normalized, normalized)
        for member in cls:
            if member.value == normalized:
                return member
        raise ConfigurationError(
            f"Unknown algorithm '{value}'. Expected one of: {', '.join(m.value for m in cls)}"
        )


@dataclass(frozen=True)
class ObjectiveWeights:
    """Weights for combining the objective vector into a single 0-100 score."""

    fairness: float = 0.25
    workload_balance: float = 0.25
    skill_match: float = 0.20
    preference: float = 0.15
    variety: float = 0.15

    def total(self) -> float:
        return self.fairness + self.workload_balance + self.skill_match + self.preference + self.variety


@dataclass(frozen=True)
class ScoringWeights:
    """Weights for ranking candidate operators for a single headcount slot."""

    preference: float = 3.0
    skill: float = 2.0
    fairness: float = 4.0
    rotation_penalty: float = 5.0


# Weight vectors the multi-objective generator rotates through
WEIGHT_VARIATIONS: Dict[str, ObjectiveWeights] = {
    "fairness-first": ObjectiveWeights(0.40, 0.30, 0.10, 0.10, 0.10),
    "skill-first": ObjectiveWeights(0.10, 0.15, 0.50, 0.15, 0.10),
    "preference-first": ObjectiveWeights(0.15, 0.15, 0.15, 0.45, 0.10),
    "variety-first": ObjectiveWeights(0.15, 0.15, 0.15, 0.15, 0.40),
}


@dataclass(frozen=True)
class SchedulerConfig:
    # Hard-constraint toggles
    strict_skill_matching: bool = True
    respect_locked: bool = True
    respect_pinned: bool = True
    # Keep every filled input cell as a pin; only empty cells are scheduled
    fill_gaps_only: bool = False
    # Rotation rules (scored as soft rules)
    max_consecutive_days_on_task: int = 2
    allow_consecutive_heavy_shifts: bool = False

    algorithm: Algorithm = Algorithm.GREEDY_TABU

    # Budgets
    time_budget_seconds: float = 5.0
    max_backtracks: int = 200_000
    tabu_iterations: int = 100
    tabu_tenure: int = 20
    tabu_stagnation: int = 20
    candidate_count: int = 5
    max_workers: int = 1

    # Determinism / variety
    random_seed: int = 0
    randomization: float = 1.0

    fallback_to_greedy: bool = True

    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)
    scoring: ScoringWeights = field(default_factory=ScoringWeights)

    def __post_init__(self):
        # Accept plain strings for the algorithm, e.g. SchedulerConfig(algorithm="greedy")
        object.__setattr__(self, "algorithm", Algorithm.parse(self.algorithm))

    def validate(self) -> "SchedulerConfig":
        """Reject malformed values. Returns self so calls can be chained."""
        non_negative_ints = {
            "max_consecutive_days_on_task": self.max_consecutive_days_on_task,
            "max_backtracks": self.max_backtracks,
            "tabu_iterations": self.tabu_iterations,
            "tabu_tenure": self.tabu_tenure,
            "tabu_stagnation": self.tabu_stagnation,
        }
        for name, value in non_negative_ints.items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")

        for name in ("candidate_count", "max_workers"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        if not isinstance(self.random_seed, int) or isinstance(self.random_seed, bool):
            raise ConfigurationError(f"random_seed must be an integer, got {self.random_seed!r}")
        if self.time_budget_seconds is None or self.time_budget_seconds <= 0:
            raise ConfigurationError(
                f"time_budget_seconds must be positive, got {self.time_budget_seconds!r}"
            )
        if self.randomization < 0:
            raise ConfigurationError(f"randomization must be >= 0, got {self.randomization!r}")

        for group_name, group in (("weights", self.weights), ("scoring", self.scoring)):
            for f in fields(group):
                value = getattr(group, f.name)
                if value < 0:
                    raise ConfigurationError(f"{group_name}.{f.name} must be >= 0, got {value!r}")
        if self.weights.total() <= 0:
            raise ConfigurationError("At least one objective weight must be positive")
        return self

    def with_overrides(self, **changes: Any) -> "SchedulerConfig":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["algorithm"] = self.algorithm.value
        return data


def _build_group(cls, raw: Any, name: str):
    if raw is None:
        return cls()
    if isinstance(raw, cls):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"'{name}' must be a mapping, got {type(raw).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
    try:
        return cls(**{k: float(v) for k, v in raw.items()})
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in '{name}': {e}") from e


def config_from_dict(data: Mapping[str, Any] | None) -> SchedulerConfig:
    """Build and validate a SchedulerConfig from a plain mapping."""
    data = dict(data or {})
    known = {f.name for f in fields(SchedulerConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    data["weights"] = _build_group(ObjectiveWeights, data.get("weights"), "weights")
    data["scoring"] = _build_group(ScoringWeights, data.get("scoring"), "scoring")
    if "algorithm" in data:
        data["algorithm"] = Algorithm.parse(data["algorithm"])
    try:
        cfg = SchedulerConfig(**data)
    except TypeError as e:
        raise ConfigurationError(str(e)) from e
    return cfg.validate()


def load_config(path: str | Path) -> SchedulerConfig:
    """
    Load configuration from a YAML or JSON file.

    Args:
        path: Path to a ``.yaml``/``.yml`` or ``.json`` file

    Returns:
        Validated SchedulerConfig

    Raises:
        ConfigurationError: If the file is unreadable or holds invalid values
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    try:
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot parse config file {path}: {e}") from e

    if raw is not None and not isinstance(raw, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a mapping at top level")
    # Allow the settings to live under a top-level "scheduler" key
    if raw and "scheduler" in raw and isinstance(raw["scheduler"], Mapping):
        raw = raw["scheduler"]
    return config_from_dict(raw)
