"""Warehouse task rostering engine.

Modules:
- config: immutable scheduler configuration (YAML/JSON loading)
- exceptions: error taxonomy shared by every component
- domain: operators, tasks, staffing requirements, assignment cells, results
- services: requirement resolution, eligibility predicates, scoring, objectives
- validator: hard/soft constraint checks over a produced schedule
- engine: greedy, feasibility (CSP), max-matching, tabu search, pareto, orchestrator
- io: request loading and CSV export helpers
- cli: command-line interface entrypoints
"""

__all__ = [
    "config",
    "exceptions",
    "domain",
    "services",
    "validator",
    "engine",
    "io",
    "cli",
]
