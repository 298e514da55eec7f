"""Update policy models."""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class UpdatePolicy(BaseModel):
    """Describes how a superproject announces a version bump and how the bot reacts."""

    id: str = Field(default="default", description="Identifier for the policy document.")
    changelog_path: str = Field(
        default="debian/changelog",
        description="Path of the tracked changelog file in the superproject and its submodules.",
    )
    version_pattern: str = Field(
        default=r"^\+\S+ \((?P<version>[0-9][A-Za-z0-9.+~:-]*)\)",
        description="Regex matched against added diff lines; must define a 'version' group.",
    )
    author_pattern: str = Field(
        default=r"^\+ -- (?P<name>.+?) <(?P<email>[^>]+)>",
        description="Regex matched against added diff lines to recover the bump author.",
    )
    context_prefix: str = Field(
        default="auto-update",
        description="Leading phrase of every commit status context the bot posts.",
    )
    branch_prefix: str = Field(
        default="auto-update",
        description="Topic branch prefix used for delivery branches in submodules.",
    )
    merge_method: Literal["merge", "squash", "rebase"] = Field(default="rebase")
    sync_commit_message: str = Field(default="Synchronize submodules")
    delivery_title: str = Field(default="Update changelog for {version}")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "changelog_path", "context_prefix", "branch_prefix")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Policy fields must not be empty")
        return normalized

    @field_validator("version_pattern")
    @classmethod
    def _validate_version_pattern(cls, value: str) -> str:
        try:
            compiled = re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid version_pattern: {exc}") from exc
        if "version" not in compiled.groupindex:
            raise ValueError("version_pattern must define a named group 'version'")
        return value

    @field_validator("author_pattern")
    @classmethod
    def _validate_author_pattern(cls, value: str) -> str:
        try:
            compiled = re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid author_pattern: {exc}") from exc
        if not {"name", "email"} <= set(compiled.groupindex):
            raise ValueError("author_pattern must define named groups 'name' and 'email'")
        return value

    @property
    def deliver_context(self) -> str:
        return f"{self.context_prefix} / deliver-pr"

    @property
    def update_context(self) -> str:
        return f"{self.context_prefix} / update-submodules"

    def submodule_context(self, repo: str) -> str:
        return f"{self.context_prefix} / check-update ({repo})"


__all__ = ["UpdatePolicy"]
