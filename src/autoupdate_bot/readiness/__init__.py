"""Approval and CI readiness evaluation."""

from .approval import APPROVED, is_approved, latest_decisive_reviews
from .checks import checks_completed, checks_passed, checks_ready

__all__ = [
    "APPROVED",
    "checks_completed",
    "checks_passed",
    "checks_ready",
    "is_approved",
    "latest_decisive_reviews",
]
