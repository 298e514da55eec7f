"""Data models for the in-memory update session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..github.models import PullRequest


class CommitState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class SessionState(str, Enum):
    IDLE = "IDLE"
    UPDATING = "UPDATING"


@dataclass(slots=True)
class CommitStatus:
    """The commit status the bot tracks for one submodule."""

    repo: str
    context: str
    description: str | None = ""
    state: CommitState = CommitState.PENDING
    pull_number: int = 0
    pull_sha: str = ""
    pull_url: str = ""


@dataclass(slots=True)
class SubmoduleRecord:
    owner: str
    repo: str
    repo_url: str
    branch: str
    path: str
    commit_status: CommitStatus
    merged_sha: str = ""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    delivery_error: str | None = None

    @property
    def ready(self) -> bool:
        return self.commit_status.state is CommitState.SUCCESS

    def elapsed(self, now: datetime | None = None) -> float:
        current = now or datetime.now(timezone.utc)
        return max((current - self.started_at).total_seconds(), 0.0)


@dataclass(slots=True)
class UpdateSession:
    """State of the one update tracked for an installation.

    ``state is UPDATING`` holds exactly when ``update_pr`` is set and
    ``current_update_pr_id == update_pr.number``.
    """

    installation_id: int
    state: SessionState = SessionState.IDLE
    current_update_pr_id: int = -1
    update_pr: PullRequest | None = None
    expected: tuple[str, ...] = ()
    submodules: dict[str, SubmoduleRecord] = field(default_factory=dict)
    update_to_version: str = ""
    update_base: str = ""
    author_login: str = ""
    author_name: str = ""
    author_email: str = ""
    cascading: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def updating(self) -> bool:
        return self.state is SessionState.UPDATING

    def begin(
        self,
        pull_request: PullRequest,
        *,
        expected: tuple[str, ...],
        version: str,
        author_login: str,
        author_name: str,
        author_email: str,
    ) -> None:
        self.state = SessionState.UPDATING
        self.update_pr = pull_request
        self.current_update_pr_id = pull_request.number
        self.expected = expected
        self.submodules = {}
        self.update_to_version = version
        self.update_base = pull_request.base_ref
        self.author_login = author_login
        self.author_name = author_name
        self.author_email = author_email
        self.cascading = False

    def reset(self) -> None:
        self.state = SessionState.IDLE
        self.update_pr = None
        self.current_update_pr_id = -1
        self.expected = ()
        self.submodules = {}
        self.update_to_version = ""
        self.update_base = ""
        self.author_login = ""
        self.author_name = ""
        self.author_email = ""
        self.cascading = False

    def tracks(self, repo: str) -> bool:
        return repo in self.expected

    def submodules_ready(self) -> bool:
        """Every expected submodule has a record and every record reads ``success``."""

        if any(name not in self.submodules for name in self.expected):
            return False
        return all(record.ready for record in self.submodules.values())

    def find_by_pull(self, repo: str, number: int) -> SubmoduleRecord | None:
        record = self.submodules.get(repo)
        if record is None or record.commit_status.pull_number != number:
            return None
        return record

    def snapshot(self) -> dict[str, Any]:
        return {
            "installation_id": self.installation_id,
            "state": self.state.value,
            "current_update_pr_id": self.current_update_pr_id,
            "update_pr_url": self.update_pr.html_url if self.update_pr else None,
            "update_to_version": self.update_to_version,
            "update_base": self.update_base,
            "author_login": self.author_login,
            "cascading": self.cascading,
            "submodules_ready": self.submodules_ready() if self.updating else False,
            "submodules": {
                name: {
                    "state": record.commit_status.state.value,
                    "pull_number": record.commit_status.pull_number,
                    "pull_url": record.commit_status.pull_url,
                    "merged_sha": record.merged_sha,
                    "started_at": record.started_at.isoformat(),
                    "delivery_error": record.delivery_error,
                }
                for name, record in self.submodules.items()
            },
            "missing": [name for name in self.expected if name not in self.submodules],
        }


__all__ = ["CommitState", "CommitStatus", "SessionState", "SubmoduleRecord", "UpdateSession"]
