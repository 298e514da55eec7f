"""GitHub API abstractions."""

from .client import GitHubApi, GitHubApiError, GitHubClientFactory, PyGithubApi
from .models import (
    BranchProtection,
    CheckRun,
    CombinedStatus,
    MergeResult,
    PullRequest,
    Review,
    StatusInfo,
    TreeEntry,
)
from .routing import UNMATCHED, StatusRoute, parse_github_owner_repo, parse_status_context

__all__ = [
    "BranchProtection",
    "CheckRun",
    "CombinedStatus",
    "GitHubApi",
    "GitHubApiError",
    "GitHubClientFactory",
    "MergeResult",
    "PullRequest",
    "PyGithubApi",
    "Review",
    "StatusInfo",
    "StatusRoute",
    "TreeEntry",
    "UNMATCHED",
    "parse_github_owner_repo",
    "parse_status_context",
]
