"""Predicates over the CI state of a pull request head commit."""

from __future__ import annotations

from typing import Iterable

from ..github.models import CheckRun, CombinedStatus

PASSING_CONCLUSIONS = frozenset({"success", "skipped"})


def checks_completed(check_runs: Iterable[CheckRun]) -> bool:
    return all(run.status == "completed" for run in check_runs)


def checks_passed(check_runs: Iterable[CheckRun]) -> bool:
    return all(run.conclusion in PASSING_CONCLUSIONS for run in check_runs)


def checks_ready(check_runs: Iterable[CheckRun], combined: CombinedStatus | None) -> bool:
    """Check runs passed and, when any external status exists, the combined state is green.

    Commits with no external statuses are judged on check runs alone.
    """

    if not checks_passed(check_runs):
        return False
    if combined is None or combined.total_count == 0:
        return True
    return combined.state == "success"


__all__ = ["PASSING_CONCLUSIONS", "checks_completed", "checks_passed", "checks_ready"]
