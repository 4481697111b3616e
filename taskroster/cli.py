from __future__ import annotations

import argparse
import logging
import sys

from .config import SchedulerConfig, load_config
from .domain.models import ScheduleResult
from .engine.orchestrator import build_week_schedule
from .engine.pareto import explain_tradeoff
from .exceptions import SchedulingError, exit_code_for
from .io.request_loader import export_assignments_csv, import_assignments_csv, load_request
from .logger import get_logger, set_verbosity
from .services.objectives import calculate_objectives
from .validator import (
    hard_violations,
    print_validation_report,
    summarize_schedule,
    validate_schedule,
)

logger = get_logger(__name__)


def _load_cfg(args: argparse.Namespace) -> SchedulerConfig:
    cfg = load_config(args.config) if args.config else SchedulerConfig()
    overrides = {}
    if getattr(args, "algorithm", None):
        overrides["algorithm"] = args.algorithm
    if getattr(args, "seed", None) is not None:
        overrides["random_seed"] = args.seed
    if getattr(args, "fill_gaps", False):
        overrides["fill_gaps_only"] = True
    return cfg.with_overrides(**overrides).validate() if overrides else cfg


def _cmd_generate(args: argparse.Namespace) -> int:
    cfg = _load_cfg(args)
    request = load_request(args.request)
    outcome = build_week_schedule(request, cfg)

    if isinstance(outcome, list):
        if not outcome:
            print("No complete schedule found.")
            return 3
        for i, (result, objectives) in enumerate(outcome):
            print(f"\n--- Option {i + 1} ---")
            print(objectives)
            print(summarize_schedule(result, request))
        if len(outcome) > 1:
            print("\nTrade-offs between the first two options:")
            for note in explain_tradeoff(outcome[0][1], outcome[1][1]):
                print(f"  - {note}")
        result = outcome[0][0]
    else:
        result = outcome
        print(summarize_schedule(result, request))
        print(calculate_objectives(result.cells, request, cfg))

    if args.out:
        export_assignments_csv(result, args.out)
        print("Assignments written to", args.out)
    return exit_code_for_status(result)


def exit_code_for_status(result: ScheduleResult) -> int:
    try:
        result.raise_for_status()
    except SchedulingError as e:
        logger.warning(str(e))
        return exit_code_for(e)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    cfg = _load_cfg(args)
    request = load_request(args.request)
    cells = import_assignments_csv(args.assignments)
    violations = validate_schedule(cells, request, cfg)
    print_validation_report(violations)
    if hard_violations(violations):
        return 5
    print("Validation passed.")
    return 0


def _cmd_summarize(args: argparse.Namespace) -> int:
    request = load_request(args.request)
    cells = import_assignments_csv(args.assignments)
    print(summarize_schedule(ScheduleResult(cells=tuple(cells), algorithm="csv"), request))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="taskroster")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only")
    sub = parser.add_subparsers(dest="command", required=True)

    g = sub.add_parser("generate", help="Generate a weekly schedule")
    g.add_argument("--request", required=True)
    g.add_argument("--config")
    g.add_argument("--algorithm")
    g.add_argument("--seed", type=int)
    g.add_argument("--fill-gaps", action="store_true", help="Keep filled input cells, schedule only empty ones")
    g.add_argument("--out")
    g.set_defaults(func=_cmd_generate)

    v = sub.add_parser("validate", help="Validate an assignments CSV against a request")
    v.add_argument("--request", required=True)
    v.add_argument("--assignments", required=True)
    v.add_argument("--config")
    v.set_defaults(func=_cmd_validate)

    s = sub.add_parser("summarize", help="Summarize an assignments CSV")
    s.add_argument("--request", required=True)
    s.add_argument("--assignments", required=True)
    s.set_defaults(func=_cmd_summarize)

    args = parser.parse_args(argv)
    if args.verbose:
        set_verbosity(logging.DEBUG)
    elif args.quiet:
        set_verbosity(logging.WARNING)

    try:
        return args.func(args)
    except SchedulingError as e:
        logger.error(str(e))
        return exit_code_for(e)


if __name__ == "__main__":
    sys.exit(main())
