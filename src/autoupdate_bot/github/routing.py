"""Parsing helpers that route commit statuses and URLs back to submodules."""

from __future__ import annotations

import re
from dataclasses import dataclass

_PULL_URL = re.compile(r"/pull/(?P<number>\d+)/?$")
_GITHUB_URL = re.compile(r"github\.com[/:](?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$")


@dataclass(frozen=True, slots=True)
class StatusRoute:
    matched: bool
    repo: str | None = None
    pr_number: int | None = None


UNMATCHED = StatusRoute(matched=False)


def parse_status_context(context: str, target_url: str | None, prefix: str = "auto-update") -> StatusRoute:
    """Recover the submodule name and delivery PR number from a posted status.

    ``context`` must read ``"<prefix> / check-update (<repo>)"`` and
    ``target_url`` must end in ``/pull/<number>``.
    """

    pattern = re.compile(rf"^{re.escape(prefix)} / check-update \((?P<repo>[^()\s]+)\)$")
    match = pattern.match(context.strip())
    if match is None or not target_url:
        return UNMATCHED
    url_match = _PULL_URL.search(target_url.strip())
    if url_match is None:
        return UNMATCHED
    return StatusRoute(matched=True, repo=match.group("repo"), pr_number=int(url_match.group("number")))


def parse_github_owner_repo(url: str) -> tuple[str, str] | None:
    match = _GITHUB_URL.search(url.strip())
    if match is None:
        return None
    return match.group("owner"), match.group("repo")


__all__ = ["StatusRoute", "UNMATCHED", "parse_github_owner_repo", "parse_status_context"]
