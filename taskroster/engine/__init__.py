"""Scheduling engines and the orchestrator that composes them."""

from .base import BaseScheduler, Deadline
from .feasibility import FeasibilityScheduler
from .greedy import GreedyScheduler
from .matching import MatchingScheduler
from .orchestrator import Orchestrator, build_week_schedule
from .pareto import pareto_schedules
from .tabu import TabuOptimizer, tabu_search

__all__ = [
    "BaseScheduler",
    "Deadline",
    "GreedyScheduler",
    "FeasibilityScheduler",
    "MatchingScheduler",
    "TabuOptimizer",
    "tabu_search",
    "pareto_schedules",
    "Orchestrator",
    "build_week_schedule",
]
