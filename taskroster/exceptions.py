"""Error taxonomy for the rostering engine."""

from __future__ import annotations

from typing import Sequence


class SchedulingError(Exception):
    """Base class for every error raised by the engine."""

    pass


class ConfigurationError(SchedulingError, ValueError):
    """Raised when a SchedulerConfig is malformed, before any search begins."""

    pass


class InvalidRequestError(ConfigurationError):
    """Raised when a request references unknown operators/tasks or carries invalid counts."""

    pass


class InfeasibleScheduleError(SchedulingError):
    """Raised when hard staffing rules cannot be satisfied."""

    def __init__(self, message: str, shortfalls: Sequence = ()):
        super().__init__(message)
        self.shortfalls = tuple(shortfalls)


class PartialScheduleError(SchedulingError):
    """Raised when the time budget ran out before the search completed."""

    def __init__(self, message: str, shortfalls: Sequence = ()):
        super().__init__(message)
        self.shortfalls = tuple(shortfalls)


class ConstraintViolationDetected(SchedulingError):
    """Raised when the validator finds a hard violation in an engine-produced schedule."""

    def __init__(self, message: str, violations: Sequence = ()):
        super().__init__(message)
        self.violations = tuple(violations)


# Mapping of exceptions to CLI exit codes
ERROR_EXIT_CODES = {
    ConfigurationError: 2,
    InvalidRequestError: 2,
    InfeasibleScheduleError: 3,
    PartialScheduleError: 4,
    ConstraintViolationDetected: 5,
    SchedulingError: 1,
}


def exit_code_for(exc: BaseException) -> int:
    """Return the CLI exit code for an exception (most specific class wins)."""
    for cls in type(exc).__mro__:
        if cls in ERROR_EXIT_CODES:
            return ERROR_EXIT_CODES[cls]
    return 1
