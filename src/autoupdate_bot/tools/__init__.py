"""Tool registration for the auto-update bot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP
from pydantic import ValidationError

from ..events import CheckRunCompleted, PullRequestClosed, PullRequestUpdated, ReviewSubmitted, StatusPosted
from ..session.manager import UpdateSessionManager


@dataclass(slots=True)
class ToolHandles:
    pull_request_updated: Any
    pull_request_closed: Any
    review_submitted: Any
    check_run_completed: Any
    status_posted: Any
    session_status: Any


def register_tools(server: FastMCP, *, manager: UpdateSessionManager) -> ToolHandles:
    """Register the signal ingress tools on the server."""

    def _accepted(kind: str, installation_id: int) -> dict[str, Any]:
        session = manager.session(installation_id)
        return {
            "accepted": kind,
            "installation_id": installation_id,
            "state": session.state.value,
            "current_update_pr_id": session.current_update_pr_id,
        }

    async def _pull_request_updated(
        installation_id: int,
        owner: str,
        repo: str,
        action: str,
        number: int,
        head_sha: str,
        diff: str = "",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Feed an opened/reopened/synchronize pull request event."""

        try:
            event = PullRequestUpdated(
                installation_id=installation_id,
                owner=owner,
                repo=repo,
                action=action,
                number=number,
                head_sha=head_sha,
                diff=diff,
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid pull request event: {exc}") from exc
        _emit_log(context, "info", "Pull request event", extra={"repo": repo, "number": number, "action": action})
        await manager.handle_pull_request(event)
        return _accepted("pull_request", installation_id)

    async def _pull_request_closed(
        installation_id: int,
        owner: str,
        repo: str,
        number: int,
        merged: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Feed a pull request closed event."""

        try:
            event = PullRequestClosed(
                installation_id=installation_id, owner=owner, repo=repo, number=number, merged=merged
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid pull request closed event: {exc}") from exc
        _emit_log(context, "info", "Pull request closed", extra={"repo": repo, "number": number})
        await manager.handle_pull_request_closed(event)
        return _accepted("pull_request_closed", installation_id)

    async def _review_submitted(
        installation_id: int,
        owner: str,
        repo: str,
        pr_number: int,
        reviewer: str,
        state: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Feed a pull request review submission."""

        try:
            event = ReviewSubmitted(
                installation_id=installation_id,
                owner=owner,
                repo=repo,
                pr_number=pr_number,
                reviewer=reviewer,
                state=state,
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid review event: {exc}") from exc
        _emit_log(context, "info", "Review event", extra={"repo": repo, "number": pr_number, "reviewer": reviewer})
        await manager.handle_review(event)
        return _accepted("pull_request_review", installation_id)

    async def _check_run_completed(
        installation_id: int,
        owner: str,
        repo: str,
        head_sha: str,
        associated_prs: list[int] | None = None,
        check_name: str = "",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Feed a completed check run."""

        try:
            event = CheckRunCompleted(
                installation_id=installation_id,
                owner=owner,
                repo=repo,
                head_sha=head_sha,
                check_name=check_name,
                associated_prs=associated_prs or [],
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid check run event: {exc}") from exc
        _emit_log(context, "info", f"Check run {check_name} completed", extra={"repo": repo})
        await manager.handle_check_run(event)
        return _accepted("check_run", installation_id)

    async def _status_posted(
        installation_id: int,
        owner: str,
        repo: str,
        sha: str,
        context_name: str,
        state: str,
        target_url: str | None = None,
        description: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Feed a commit status event; ``context_name`` is the status context."""

        try:
            event = StatusPosted(
                installation_id=installation_id,
                owner=owner,
                repo=repo,
                sha=sha,
                context=context_name,
                state=state,
                target_url=target_url,
                description=description,
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid status event: {exc}") from exc
        _emit_log(context, "debug", "Status event", extra={"repo": repo, "status_context": context_name})
        await manager.handle_status(event)
        return _accepted("status", installation_id)

    def _session_status(installation_id: int | None = None, context: Context | None = None) -> dict[str, Any]:
        """Return the tracked update session(s)."""

        _emit_log(context, "debug", "Session status", extra={"installation_id": installation_id})
        return manager.snapshot(installation_id)

    tool_pull_request = server.tool(
        name="pull_request_updated",
        description=(
            "Deliver a pull_request opened/reopened/synchronize event. A superproject "
            "changelog bump starts an update session."
        ),
    )(_pull_request_updated)

    tool_pull_request_closed = server.tool(
        name="pull_request_closed",
        description="Deliver a pull_request closed event; closing the tracked pull request abandons the update.",
    )(_pull_request_closed)

    tool_review = server.tool(
        name="review_submitted",
        description="Deliver a pull_request_review submitted event.",
    )(_review_submitted)

    tool_check_run = server.tool(
        name="check_run_completed",
        description="Deliver a check_run completed event with the numbers of its associated pull requests.",
    )(_check_run_completed)

    tool_status = server.tool(
        name="status_posted",
        description="Deliver a commit status event.",
    )(_status_posted)

    tool_session_status = server.tool(
        name="session_status",
        description="Inspect the in-memory update session for an installation.",
    )(_session_status)

    return ToolHandles(
        pull_request_updated=tool_pull_request,
        pull_request_closed=tool_pull_request_closed,
        review_submitted=tool_review,
        check_run_completed=tool_check_run,
        status_posted=tool_status,
        session_status=tool_session_status,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
