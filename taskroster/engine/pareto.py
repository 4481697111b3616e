"""Multi-objective candidate generation and Pareto selection."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pandas as pd

from taskroster.config import WEIGHT_VARIATIONS, ObjectiveWeights, SchedulerConfig
from taskroster.domain.models import ScheduleRequest, ScheduleResult
from taskroster.logger import get_logger
from taskroster.services.objectives import ObjectiveVector, calculate_objectives, combine_scores, dominates

from .base import Deadline
from .feasibility import FeasibilityScheduler
from .tabu import TabuOptimizer

logger = get_logger(__name__)

BASE_WEIGHTS = "base"


@dataclass(frozen=True)
class Candidate:
    index: int
    seed: int
    weights_name: str
    result: ScheduleResult
    objectives: ObjectiveVector
    score: float

    def fingerprint(self) -> Tuple[Tuple[str, str, str], ...]:
        return tuple(sorted((c.operator_id, c.day, c.task_id) for c in self.result.assignments()))


def weight_rotation(cfg: SchedulerConfig) -> List[Tuple[str, ObjectiveWeights]]:
    """Base weights first, then the fixed variations in declaration order."""
    return [(BASE_WEIGHTS, cfg.weights)] + list(WEIGHT_VARIATIONS.items())


def run_candidate(
    index: int,
    request: ScheduleRequest,
    cfg: SchedulerConfig,
    deadline: Deadline,
) -> Candidate:
    """
    Feasibility (greedy-seeded) then tabu under candidate ``index``'s seed and weights.

    Side-effect free: reads the request and config, returns a fresh Candidate.
    """
    rotation = weight_rotation(cfg)
    name, weights = rotation[index % len(rotation)]
    seed = cfg.random_seed + index
    cand_cfg = cfg.with_overrides(random_seed=seed, weights=weights)

    result = FeasibilityScheduler(seed=seed).make_schedule(request, cand_cfg, deadline)
    result = TabuOptimizer(cand_cfg, weights).optimize(result, request, deadline)

    objectives = calculate_objectives(result.cells, request, cfg)
    return Candidate(
        index=index,
        seed=seed,
        weights_name=name,
        result=result,
        objectives=objectives,
        score=combine_scores(objectives, cfg.weights),
    )


def generate_candidates(
    request: ScheduleRequest,
    cfg: SchedulerConfig,
    deadline: Optional[Deadline] = None,
) -> List[Candidate]:
    """
    Run ``cfg.candidate_count`` independent pipelines.

    With ``max_workers`` > 1 candidates run in a thread pool; results are always merged
    in candidate index order so output does not depend on completion order.
    """
    deadline = deadline if deadline is not None else Deadline(cfg.time_budget_seconds)
    indices = range(cfg.candidate_count)
    logger.info(f"Pareto: generating {cfg.candidate_count} candidates with {cfg.max_workers} worker(s)")

    if cfg.max_workers > 1:
        with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
            futures = [pool.submit(run_candidate, i, request, cfg, deadline) for i in indices]
            return [f.result() for f in futures]
    return [run_candidate(i, request, cfg, deadline) for i in indices]


def deduplicate(candidates: List[Candidate]) -> List[Candidate]:
    seen = set()
    unique = []
    for cand in candidates:
        fp = cand.fingerprint()
        if fp not in seen:
            seen.add(fp)
            unique.append(cand)
    return unique


def find_pareto_front(candidates: List[Candidate]) -> List[Candidate]:
    """Keep candidates no other candidate dominates."""
    return [
        a for a in candidates
        if not any(b is not a and dominates(b.objectives, a.objectives) for b in candidates)
    ]


def select_front(candidates: List[Candidate]) -> List[Candidate]:
    """
    Keep the complete, distinct, non-dominated candidates.

    Returns:
        Pareto front in candidate index order (empty when no candidate is complete)
    """
    complete = [c for c in candidates if c.result.is_complete]
    if len(complete) < len(candidates):
        logger.warning(f"Pareto: dropped {len(candidates) - len(complete)} incomplete candidate(s)")
    unique = deduplicate(complete)
    front = find_pareto_front(unique)
    logger.info(
        f"Pareto: {len(candidates)} candidates, {len(unique)} distinct, {len(front)} on the front"
    )
    return front


def pareto_schedules(
    request: ScheduleRequest,
    cfg: SchedulerConfig,
    deadline: Optional[Deadline] = None,
) -> List[Candidate]:
    """Generate candidates and return the non-dominated, complete, distinct ones."""
    return select_front(generate_candidates(request, cfg, deadline))


def front_to_frame(front: List[Candidate]) -> pd.DataFrame:
    """One row per front member with its objectives and combined score."""
    rows = []
    for cand in front:
        row = {"candidate": cand.index, "seed": cand.seed, "weights": cand.weights_name}
        row.update(cand.objectives.as_dict())
        row["score"] = round(cand.score, 1)
        rows.append(row)
    columns = ["candidate", "seed", "weights", "fairness", "workload_balance",
               "skill_match", "preference", "variety", "score"]
    return pd.DataFrame(rows, columns=columns)


def explain_tradeoff(a: ObjectiveVector, b: ObjectiveVector) -> List[str]:
    """Short human-readable differences between two front members."""
    notes = []
    if abs(a.fairness - b.fairness) > 0.2:
        notes.append("A has better fairness" if a.fairness < b.fairness else "B has better fairness")
    if abs(a.workload_balance - b.workload_balance) >= 1:
        notes.append(
            "A has better workload balance" if a.workload_balance < b.workload_balance
            else "B has better workload balance"
        )
    if abs(a.skill_match - b.skill_match) > 5:
        notes.append("A has better skill matching" if a.skill_match > b.skill_match else "B has better skill matching")
    if abs(a.preference - b.preference) > 5:
        notes.append("A honours more preferences" if a.preference > b.preference else "B honours more preferences")
    if abs(a.variety - b.variety) > 0.3:
        notes.append("A has more task variety" if a.variety > b.variety else "B has more task variety")
    return notes or ["Schedules are very similar"]
