"""Snapshot types returned by the GitHub API layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class PullRequest:
    owner: str
    repo: str
    number: int
    head_sha: str
    head_ref: str
    base_ref: str
    base_sha: str
    html_url: str
    author: str | None = None
    state: str = "open"
    merged: bool = False
    merge_commit_sha: str | None = None


@dataclass(slots=True)
class Review:
    user: str | None
    state: str


@dataclass(slots=True)
class CheckRun:
    name: str
    status: str
    conclusion: str | None = None


@dataclass(slots=True)
class CombinedStatus:
    state: str
    total_count: int


@dataclass(slots=True)
class StatusInfo:
    context: str
    state: str
    description: str | None = None
    target_url: str | None = None


@dataclass(slots=True)
class BranchProtection:
    require_code_owner_reviews: bool = False
    required_approving_review_count: int = 0


@dataclass(slots=True)
class MergeResult:
    merged: bool
    sha: str | None
    message: str = ""


@dataclass(slots=True)
class TreeEntry:
    """A tree element; gitlinks use mode ``160000`` and type ``commit``."""

    path: str
    sha: str
    mode: str = "160000"
    type: str = "commit"


__all__ = [
    "BranchProtection",
    "CheckRun",
    "CombinedStatus",
    "MergeResult",
    "PullRequest",
    "Review",
    "StatusInfo",
    "TreeEntry",
]
