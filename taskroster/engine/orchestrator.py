"""Orchestrator - composes the engines chosen by configuration into one scheduling call."""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Tuple, Union

from taskroster.config import Algorithm, SchedulerConfig
from taskroster.domain.models import (
    ScheduleRequest,
    ScheduleResult,
    ScheduleStatus,
    ScheduleWarning,
    ShortfallRecord,
    WarningKind,
)
from taskroster.logger import get_logger
from taskroster.services.objectives import ObjectiveVector, calculate_objectives
from taskroster.validator import PINNED_OVERRIDDEN, check_invariants

from .base import Deadline
from .feasibility import FeasibilityScheduler, merge_shortfalls
from .greedy import GreedyScheduler
from .matching import MatchingScheduler
from .pareto import Candidate, generate_candidates, select_front
from .tabu import TabuOptimizer

logger = get_logger(__name__)

ParetoFront = List[Tuple[ScheduleResult, ObjectiveVector]]


class Orchestrator:
    """
    Orchestrator dispatches on ``cfg.algorithm`` and composes the engines.

    It validates inputs, creates the shared deadline, applies the greedy fallback
    policy and runs the invariant guard on everything it returns.
    """

    def __init__(self, cfg: Optional[SchedulerConfig] = None):
        """
        Initialize orchestrator with a configuration.

        Args:
            cfg: SchedulerConfig (defaults when omitted); validated immediately
        """
        self.cfg = (cfg or SchedulerConfig()).validate()

    def run(self, request: ScheduleRequest) -> Union[ScheduleResult, ParetoFront]:
        """
        Build a schedule for the request.

        Args:
            request: Finalised schedule request

        Returns:
            ScheduleResult, or for multi-objective a list of (ScheduleResult, ObjectiveVector)

        Raises:
            ConfigurationError: If the config or request is malformed (before any search)
            ConstraintViolationDetected: If an engine produced a hard violation
        """
        cfg = self.cfg
        request.validate()
        deadline = Deadline(cfg.time_budget_seconds)
        logger.info(
            f"Orchestrator: {cfg.algorithm.value} for {len(request.operators)} operators, "
            f"{len(request.active_tasks())} tasks, {len(request.days)} days "
            f"(budget {cfg.time_budget_seconds}s, seed {cfg.random_seed})"
        )

        if cfg.algorithm is Algorithm.MULTI_OBJECTIVE:
            return self._run_multi_objective(request, deadline)

        if cfg.algorithm is Algorithm.GREEDY:
            result = GreedyScheduler().make_schedule(request, cfg, deadline)
        elif cfg.algorithm is Algorithm.FEASIBILITY:
            result = FeasibilityScheduler().make_schedule(request, cfg, deadline)
        elif cfg.algorithm is Algorithm.GREEDY_TABU:
            result = FeasibilityScheduler().make_schedule(request, cfg, deadline)
            result = TabuOptimizer(cfg).optimize(result, request, deadline)
        elif cfg.algorithm is Algorithm.MAX_MATCHING:
            result = MatchingScheduler().make_schedule(request, cfg, deadline)
        else:  # pragma: no cover - Algorithm is a closed enum
            raise AssertionError(f"Unhandled algorithm {cfg.algorithm}")

        result = replace(result, algorithm=cfg.algorithm.value)
        result = self._apply_fallback(result, request, deadline)
        result = self._finalize(result, request)
        logger.info(
            f"[OK] Orchestrator: {len(result.assignments())} assignments, status {result.status.value}"
        )
        return result

    def _run_multi_objective(self, request: ScheduleRequest, deadline: Deadline) -> ParetoFront:
        cfg = self.cfg
        candidates = generate_candidates(request, cfg, deadline)
        front = select_front(candidates)
        if not front:
            if not cfg.fallback_to_greedy:
                logger.warning("Orchestrator: no complete candidate and fallback disabled")
                return []
            status, shortfalls = self._candidate_outcome(candidates)
            logger.warning(f"Orchestrator: no complete candidate ({status.value}), falling back to greedy")
            result = GreedyScheduler().make_schedule(request, cfg, deadline)
            result = replace(result, algorithm=cfg.algorithm.value, shortfalls=shortfalls)
            result = self._finalize(self._mark_fallback(result, status), request)
            return [(result, calculate_objectives(result.cells, request, cfg))]

        out: ParetoFront = []
        for cand in front:
            result = replace(cand.result, algorithm=cfg.algorithm.value)
            out.append((self._finalize(result, request), cand.objectives))
        logger.info(f"[OK] Orchestrator: Pareto front of {len(out)} schedule(s)")
        return out

    @staticmethod
    def _candidate_outcome(candidates: List[Candidate]) -> Tuple[ScheduleStatus, Tuple[ShortfallRecord, ...]]:
        """PARTIAL when any candidate was cut off, INFEASIBLE when every candidate proved infeasible."""
        partial = [c for c in candidates if c.result.status is ScheduleStatus.PARTIAL]
        status = ScheduleStatus.PARTIAL if partial else ScheduleStatus.INFEASIBLE
        pool = partial or candidates
        return status, tuple(merge_shortfalls([s for c in pool for s in c.result.shortfalls]))

    def _apply_fallback(
        self,
        result: ScheduleResult,
        request: ScheduleRequest,
        deadline: Deadline,
    ) -> ScheduleResult:
        """Swap in the greedy best effort when the configured engine produced no full schedule."""
        if result.is_complete or not self.cfg.fallback_to_greedy or self.cfg.algorithm is Algorithm.GREEDY:
            return result
        logger.warning(
            f"Orchestrator: {self.cfg.algorithm.value} returned {result.status.value}, "
            "falling back to greedy best effort"
        )
        greedy = GreedyScheduler().make_schedule(request, self.cfg, deadline)
        greedy = replace(
            greedy,
            algorithm=result.algorithm,
            shortfalls=result.shortfalls,
            warnings=result.warnings + tuple(
                w for w in greedy.warnings if w.kind is WarningKind.PINNED_OVERRIDDEN
            ),
            stats=dict(result.stats),
        )
        return self._mark_fallback(greedy, result.status)

    @staticmethod
    def _mark_fallback(result: ScheduleResult, status: ScheduleStatus) -> ScheduleResult:
        warning = ScheduleWarning(
            kind=WarningKind.FALLBACK,
            message="Greedy best-effort output returned in place of the configured algorithm",
        )
        return replace(
            result,
            status=status,
            fallback_used=True,
            warnings=result.warnings + (warning,),
        )

    def _finalize(self, result: ScheduleResult, request: ScheduleRequest) -> ScheduleResult:
        """Run the invariant guard and surface soft rule breaks as warnings."""
        violations = check_invariants(result, request, self.cfg)
        soft = [
            ScheduleWarning(
                kind=WarningKind.SOFT_RULE_BROKEN,
                message=v.message,
                day=v.day,
                operator_id=v.operator_id,
                task_id=v.task_id,
                detail=v.rule,
            )
            for v in violations
            if not v.is_hard and v.rule != PINNED_OVERRIDDEN
        ]
        if not soft:
            return result
        return replace(result, warnings=result.warnings + tuple(soft))


def build_week_schedule(
    request: ScheduleRequest,
    cfg: Optional[SchedulerConfig] = None,
) -> Union[ScheduleResult, ParetoFront]:
    """
    Convenience function to build a week schedule using the orchestrator.

    Args:
        request: Finalised schedule request
        cfg: SchedulerConfig (defaults when omitted)

    Returns:
        ScheduleResult, or a Pareto front for the multi-objective algorithm
    """
    return Orchestrator(cfg).run(request)
