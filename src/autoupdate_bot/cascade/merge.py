"""Cascade merge: land every delivery pull request, then re-pin and land the superproject."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..github import GitHubApi, GitHubApiError, PullRequest, TreeEntry
from ..policy import UpdatePolicy
from ..session.models import SubmoduleRecord, UpdateSession

logger = logging.getLogger(__name__)


class CascadePreconditionError(RuntimeError):
    """Raised when a cascade is requested without a tracked superproject pull request."""


@dataclass(slots=True)
class CascadeResult:
    success: bool
    merged: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    sync_commit: str | None = None
    error: str | None = None


def build_gitlink_entries(records: Iterable[SubmoduleRecord]) -> list[TreeEntry]:
    """Gitlink tree entries pinning each submodule path to its merged commit, ordered by path."""

    entries = [TreeEntry(path=record.path, sha=record.merged_sha) for record in records]
    return sorted(entries, key=lambda entry: entry.path)


class CascadeMerger:
    """Best-effort batch merge across the submodules and the superproject.

    There is no cross-repository transaction: submodule merges can partially
    succeed. Retries skip submodules that already merged and reuse a
    superproject head that already pins the merged commits.
    """

    def __init__(self, api: GitHubApi, policy: UpdatePolicy) -> None:
        self._api = api
        self._policy = policy

    async def run(self, session: UpdateSession) -> CascadeResult:
        superproject = session.update_pr
        if superproject is None or not session.updating:
            raise CascadePreconditionError("Cascade requested without a tracked superproject pull request")

        records = list(session.submodules.values())
        outcomes = await asyncio.gather(
            *(self._merge_submodule(record) for record in records), return_exceptions=True
        )

        merged: dict[str, str] = {}
        failures: dict[str, str] = {}
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    "Submodule merge raised",
                    extra={"repo": record.repo, "error": repr(outcome)},
                )
                failures[record.repo] = str(outcome) or type(outcome).__name__
                continue
            repo, sha, error = outcome
            if error is not None:
                failures[repo] = error
            elif sha:
                merged[repo] = sha

        if failures:
            logger.error(
                "Submodule merges failed; superproject left untouched",
                extra={"failures": failures, "merged": sorted(merged)},
            )
            await self._post(
                superproject,
                "failure",
                f"Merge failed for {', '.join(sorted(failures))}",
            )
            return CascadeResult(success=False, merged=merged, failures=failures)

        sync_commit: str | None = None
        try:
            sync_commit = await self._update_superproject(session, superproject, records)
            await self._post(superproject, "success", "Submodules synchronized")
            result = await self._api.merge_pull_request(
                superproject.owner,
                superproject.repo,
                superproject.number,
                method=self._policy.merge_method,
            )
            if not result.merged:
                raise GitHubApiError(result.message or "Superproject pull request was not merged")
        except GitHubApiError as exc:
            logger.error(
                "Superproject update failed",
                extra={"number": superproject.number, "sync_commit": sync_commit, "error": str(exc)},
            )
            await self._post(superproject, "error", f"Superproject update failed: {exc}")
            return CascadeResult(success=False, merged=merged, sync_commit=sync_commit, error=str(exc))

        logger.info(
            "Cascade complete",
            extra={"number": superproject.number, "sync_commit": sync_commit, "merged": merged},
        )
        return CascadeResult(success=True, merged=merged, sync_commit=sync_commit)

    async def _merge_submodule(self, record: SubmoduleRecord) -> tuple[str, str | None, str | None]:
        if record.merged_sha:
            return record.repo, record.merged_sha, None

        number = record.commit_status.pull_number
        try:
            pull = await self._api.get_pull_request(record.owner, record.repo, number)
            if pull.merged and pull.merge_commit_sha:
                sha = pull.merge_commit_sha
            else:
                await self._api.create_review(record.owner, record.repo, number, body="Approved by auto-update")
                result = await self._api.merge_pull_request(
                    record.owner, record.repo, number, method=self._policy.merge_method
                )
                if not result.merged or not result.sha:
                    return record.repo, None, result.message or "merge refused"
                sha = result.sha
        except GitHubApiError as exc:
            logger.warning(
                "Submodule merge failed",
                extra={"repo": record.repo, "number": number, "error": str(exc)},
            )
            return record.repo, None, str(exc)

        record.merged_sha = sha
        return record.repo, sha, None

    async def _update_superproject(
        self, session: UpdateSession, superproject: PullRequest, records: list[SubmoduleRecord]
    ) -> str:
        api = self._api
        owner, repo = superproject.owner, superproject.repo
        base_head = await api.get_branch(owner, repo, session.update_base)

        entries = build_gitlink_entries(records)
        current = await api.get_gitlinks(owner, repo, base_head)
        if all(current.get(entry.path) == entry.sha for entry in entries):
            logger.info("Base branch already pins merged submodules", extra={"commit": base_head})
            return base_head

        base_tree = await api.get_commit_tree(owner, repo, base_head)
        tree = await api.create_tree(owner, repo, entries, base_tree=base_tree)
        author = (session.author_name, session.author_email) if session.author_email else None
        commit = await api.create_commit(
            owner,
            repo,
            message=self._policy.sync_commit_message,
            tree=tree,
            parents=[base_head],
            author=author,
        )
        await api.create_or_update_ref(owner, repo, f"heads/{session.update_base}", commit, force=True)
        return commit

    async def _post(self, superproject: PullRequest, state: str, description: str) -> None:
        try:
            await self._api.create_commit_status(
                superproject.owner,
                superproject.repo,
                superproject.head_sha,
                state=state,
                context=self._policy.update_context,
                description=description[:140],
            )
        except GitHubApiError as exc:
            logger.warning(
                "Could not post cascade status",
                extra={"state": state, "error": str(exc)},
            )


__all__ = ["CascadeMerger", "CascadePreconditionError", "CascadeResult", "build_gitlink_entries"]
