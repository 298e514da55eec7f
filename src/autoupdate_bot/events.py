"""Inbound signals consumed by the update session manager."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class Signal(BaseModel):
    installation_id: int = Field(..., description="GitHub App installation that received the event.")
    owner: str = Field(..., description="Owner login of the repository the event concerns.")
    repo: str = Field(..., description="Name of the repository the event concerns.")

    @field_validator("owner", "repo")
    @classmethod
    def _strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("owner and repo must not be empty")
        return normalized


class PullRequestUpdated(Signal):
    action: Literal["opened", "reopened", "synchronize"]
    number: int
    head_sha: str
    diff: str = ""


class PullRequestClosed(Signal):
    number: int
    merged: bool = False


class ReviewSubmitted(Signal):
    pr_number: int
    reviewer: str
    state: str

    @field_validator("state")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class CheckRunCompleted(Signal):
    head_sha: str
    check_name: str = ""
    associated_prs: list[int] = Field(default_factory=list)


class StatusPosted(Signal):
    sha: str
    context: str
    state: Literal["pending", "success", "failure", "error"]
    target_url: str | None = None
    description: str | None = None

    @field_validator("state", mode="before")
    @classmethod
    def _lower(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


__all__ = [
    "CheckRunCompleted",
    "PullRequestClosed",
    "PullRequestUpdated",
    "ReviewSubmitted",
    "Signal",
    "StatusPosted",
]
