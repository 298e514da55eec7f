"""Pull request approval evaluation against branch protection rules."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from ..github.models import BranchProtection, PullRequest, Review

logger = logging.getLogger(__name__)

APPROVED = "APPROVED"
_NON_DECISIVE = {"COMMENTED", "PENDING"}

CollaboratorCheck = Callable[[str], Awaitable[bool]]


def latest_decisive_reviews(reviews: Iterable[Review]) -> dict[str, str]:
    """Map each reviewer to the state of their latest approving or blocking review."""

    latest: dict[str, str] = {}
    for review in reviews:
        if review.user is None or review.state in _NON_DECISIVE:
            continue
        latest[review.user] = review.state
    return latest


async def is_approved(
    pull_request: PullRequest,
    reviews: list[Review],
    protection: BranchProtection | None,
    is_collaborator: CollaboratorCheck,
) -> bool:
    """Decide whether ``pull_request`` satisfies its base branch review rules.

    A branch without protection counts as approved. A failed collaborator
    lookup fails the whole evaluation.
    """

    if protection is None:
        logger.debug(
            "No branch protection; treating as approved",
            extra={"repo": pull_request.repo, "number": pull_request.number},
        )
        return True

    decisions = latest_decisive_reviews(reviews)

    if protection.require_code_owner_reviews:
        if decisions.get(pull_request.owner) != APPROVED:
            logger.info(
                "Code owner approval missing",
                extra={"repo": pull_request.repo, "number": pull_request.number, "owner": pull_request.owner},
            )
            return False

    required = protection.required_approving_review_count
    if required > 0:
        review_users = [review.user for review in reviews if review.user is not None]
        approval_users: list[str] = []
        for user, state in decisions.items():
            try:
                collaborator = await is_collaborator(user)
            except Exception as exc:
                logger.warning(
                    "Collaborator lookup failed; approval denied",
                    extra={"repo": pull_request.repo, "number": pull_request.number, "user": user, "error": str(exc)},
                )
                return False
            if collaborator and state == APPROVED:
                approval_users.append(user)

        logger.info(
            f"Review users: {sorted(set(review_users))}. Approval users: {approval_users}.",
            extra={"repo": pull_request.repo, "number": pull_request.number},
        )
        if len(approval_users) < required:
            return False

    return True


__all__ = ["APPROVED", "CollaboratorCheck", "is_approved", "latest_decisive_reviews"]
