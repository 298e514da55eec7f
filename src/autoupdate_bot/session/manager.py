"""Update session state machine and readiness evaluation."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable

from ..cascade import CascadeMerger, CascadeResult
from ..delivery import (
    ChangelogGenerator,
    DeliveryInitiator,
    GitmodulesError,
    parse_gitmodules,
    parse_version_bump,
    resolve_targets,
)
from ..delivery.utils import format_duration
from ..events import CheckRunCompleted, PullRequestClosed, PullRequestUpdated, ReviewSubmitted, StatusPosted
from ..github import GitHubApi, GitHubApiError, PullRequest, parse_status_context
from ..policy import UpdatePolicy
from ..readiness import checks_completed, checks_passed, checks_ready, is_approved
from .models import CommitState, CommitStatus, SubmoduleRecord, UpdateSession

logger = logging.getLogger(__name__)

GRACE_PERIOD_SECONDS = 10.0
CASCADE_HISTORY = 50
NO_CI_DESCRIPTION = "No CI configured"

GraceKey = tuple[int, str, str]


class UpdateSessionManager:
    """Owns one ``UpdateSession`` per installation and routes inbound signals to it.

    Handlers never raise: remote failures are logged and the triggering
    event is dropped. Every read-decide-write step on a session runs under
    that session's lock.
    """

    def __init__(
        self,
        api_factory: Callable[[int], GitHubApi],
        *,
        policy: UpdatePolicy,
        generator: ChangelogGenerator,
        grace_period: float = GRACE_PERIOD_SECONDS,
    ) -> None:
        self._api_factory = api_factory
        self._policy = policy
        self._generator = generator
        self._grace_period = grace_period
        self._sessions: dict[int, UpdateSession] = {}
        self._grace_tasks: dict[GraceKey, asyncio.Task] = {}
        self._grace_done: set[GraceKey] = set()
        self.cascade_results: deque[CascadeResult] = deque(maxlen=CASCADE_HISTORY)

    @property
    def policy(self) -> UpdatePolicy:
        return self._policy

    def session(self, installation_id: int) -> UpdateSession:
        session = self._sessions.get(installation_id)
        if session is None:
            session = UpdateSession(installation_id=installation_id)
            self._sessions[installation_id] = session
        return session

    def snapshot(self, installation_id: int | None = None) -> dict[str, Any]:
        if installation_id is not None:
            return self.session(installation_id).snapshot()
        return {
            "sessions": [session.snapshot() for session in self._sessions.values()],
            "grace_polls": sorted(f"{key[0]}:{key[1]}@{key[2][:7]}" for key in self._grace_tasks),
        }

    def _api(self, installation_id: int) -> GitHubApi:
        return self._api_factory(installation_id)

    @staticmethod
    def _is_superproject(session: UpdateSession, owner: str, repo: str, number: int | None = None) -> bool:
        pull = session.update_pr
        if pull is None or pull.owner != owner or pull.repo != repo:
            return False
        return number is None or pull.number == number

    # -- pull request ---------------------------------------------------------

    async def handle_pull_request(self, event: PullRequestUpdated) -> None:
        session = self.session(event.installation_id)
        bump = parse_version_bump(event.diff, self._policy)
        if bump is None:
            logger.debug(
                "Pull request does not bump the changelog",
                extra={"repo": event.repo, "number": event.number},
            )
            return

        async with session.lock:
            busy = session.updating
            same_pull = self._is_superproject(session, event.owner, event.repo, event.number)
            delivery = busy and session.tracks(event.repo)

        if delivery:
            logger.debug("Delivery pull request updated", extra={"repo": event.repo, "number": event.number})
            return

        if busy and not same_pull:
            logger.warning(
                "Update already in progress; ignoring new bump",
                extra={
                    "repo": event.repo,
                    "number": event.number,
                    "tracked": session.current_update_pr_id,
                },
            )
            return
        if busy:
            await self._retry(session, event)
            return

        if not bump.author_email:
            logger.error(
                "Changelog bump carries no author email; ignoring",
                extra={"repo": event.repo, "number": event.number, "version": bump.version},
            )
            return

        api = self._api(event.installation_id)
        try:
            pull = await api.get_pull_request(event.owner, event.repo, event.number)
            content = await api.get_file_content(event.owner, event.repo, ".gitmodules", ref=pull.head_sha)
            submodules = parse_gitmodules(content)
        except (GitHubApiError, GitmodulesError) as exc:
            logger.error(
                "Could not read .gitmodules; ignoring bump",
                extra={"repo": event.repo, "number": event.number, "error": str(exc)},
            )
            return

        targets = resolve_targets(submodules, pull)
        async with session.lock:
            if session.updating:
                logger.warning(
                    "Update started concurrently; ignoring bump",
                    extra={"repo": event.repo, "number": event.number},
                )
                return
            session.begin(
                pull,
                expected=tuple(target.repo for target in targets),
                version=bump.version,
                author_login=pull.author or "",
                author_name=bump.author_name or pull.author or "",
                author_email=bump.author_email,
            )

        logger.info(
            "Update started",
            extra={
                "repo": pull.repo,
                "number": pull.number,
                "version": bump.version,
                "submodules": list(session.expected),
            },
        )
        await self._post_superproject(session, self._policy.deliver_context, "pending", "Delivering pull requests")
        await self._post_superproject(session, self._policy.update_context, "pending", "Waiting for submodules")

        initiator = DeliveryInitiator(api, self._generator, self._policy)
        records = await initiator.deliver_all(session, targets)
        await self._register(session, pull.number, records)

    async def _register(self, session: UpdateSession, number: int, records: list[SubmoduleRecord]) -> None:
        async with session.lock:
            if session.current_update_pr_id != number:
                return
            for record in records:
                session.submodules[record.repo] = record
            failed = sorted(record.repo for record in records if record.delivery_error is not None)

        if failed:
            await self._post_superproject(
                session, self._policy.deliver_context, "failure", f"Delivery failed for {', '.join(failed)}"
            )
        else:
            await self._post_superproject(session, self._policy.deliver_context, "success", "Pull requests delivered")

        for record in records:
            if record.delivery_error is None:
                self._arm_grace(session, record)
        await self._maybe_cascade(session)

    async def _retry(self, session: UpdateSession, event: PullRequestUpdated) -> None:
        """Refresh the tracked superproject head, re-deliver failed submodules, re-check readiness."""

        api = self._api(event.installation_id)
        try:
            pull = await api.get_pull_request(event.owner, event.repo, event.number)
        except GitHubApiError as exc:
            logger.error("Could not refresh tracked pull request", extra={"number": event.number, "error": str(exc)})
            return

        async with session.lock:
            if not self._is_superproject(session, event.owner, event.repo, event.number):
                return
            moved = session.update_pr is not None and session.update_pr.head_sha != pull.head_sha
            session.update_pr = pull
            redeliver = {name for name, record in session.submodules.items() if record.delivery_error is not None}
            redeliver.update(name for name in session.expected if name not in session.submodules)
            reposted = [record for record in session.submodules.values() if record.repo not in redeliver]

        logger.info(
            "Tracked pull request updated; retrying",
            extra={"number": pull.number, "head_moved": moved, "redeliver": sorted(redeliver)},
        )
        if moved:
            try:
                statuses = await api.list_statuses_for_ref(pull.owner, pull.repo, pull.head_sha)
                present = {status.context for status in statuses}
            except GitHubApiError as exc:
                logger.warning("Could not list statuses on new head", extra={"number": pull.number, "error": str(exc)})
                present = set()
            if self._policy.update_context not in present:
                await self._post_superproject(
                    session, self._policy.update_context, "pending", "Waiting for submodules"
                )
            for record in reposted:
                if self._policy.submodule_context(record.repo) not in present:
                    await self._post_submodule_status(session, record)

        if redeliver:
            try:
                content = await api.get_file_content(event.owner, event.repo, ".gitmodules", ref=pull.head_sha)
                submodules = parse_gitmodules(content)
            except (GitHubApiError, GitmodulesError) as exc:
                logger.error("Could not re-read .gitmodules", extra={"number": pull.number, "error": str(exc)})
                return
            targets = [target for target in resolve_targets(submodules, pull) if target.repo in redeliver]
            initiator = DeliveryInitiator(api, self._generator, self._policy)
            records = await initiator.deliver_all(session, targets)
            await self._register(session, pull.number, records)
            return

        await self._maybe_cascade(session)

    async def handle_pull_request_closed(self, event: PullRequestClosed) -> None:
        session = self.session(event.installation_id)
        async with session.lock:
            if not session.updating or not self._is_superproject(session, event.owner, event.repo, event.number):
                return
            if session.cascading:
                return
            self._cancel_all_grace(session.installation_id)
            session.reset()
        logger.warning(
            "Tracked pull request closed; update abandoned",
            extra={"repo": event.repo, "number": event.number, "merged": event.merged},
        )

    # -- reviews ----------------------------------------------------------------

    async def handle_review(self, event: ReviewSubmitted) -> None:
        session = self.session(event.installation_id)
        logger.info(
            f"PR review for repo {event.repo} was submitted by {event.reviewer}",
            extra={"number": event.pr_number, "state": event.state},
        )
        if not session.updating:
            logger.info("No update in progress; review ignored", extra={"repo": event.repo})
            return

        api = self._api(event.installation_id)
        try:
            approved = await self._pull_approved(api, event.owner, event.repo, event.pr_number)
        except GitHubApiError as exc:
            logger.warning("Approval check failed", extra={"repo": event.repo, "error": str(exc)})
            return
        logger.info(f"PR approved: {approved}", extra={"repo": event.repo, "number": event.pr_number})

        if approved and self._is_superproject(session, event.owner, event.repo, event.pr_number):
            await self._maybe_cascade(session)

    async def _pull_approved(self, api: GitHubApi, owner: str, repo: str, number: int) -> bool:
        pull = await api.get_pull_request(owner, repo, number)
        reviews = await api.list_reviews(owner, repo, number)
        protection = await api.get_branch_protection(owner, repo, pull.base_ref)

        async def collaborator(user: str) -> bool:
            return await api.is_collaborator(owner, repo, user)

        return await is_approved(pull, reviews, protection, collaborator)

    # -- check runs -------------------------------------------------------------

    async def handle_check_run(self, event: CheckRunCompleted) -> None:
        if not event.associated_prs:
            logger.debug("Check run without pull request", extra={"repo": event.repo, "check": event.check_name})
            return

        session = self.session(event.installation_id)
        if not session.updating:
            logger.info("No update in progress; check run ignored", extra={"repo": event.repo})
            return

        number = event.associated_prs[0]
        if self._is_superproject(session, event.owner, event.repo, number):
            await self._maybe_cascade(session)
            return

        async with session.lock:
            record = session.find_by_pull(event.repo, number)
            if record is None or record.owner != event.owner:
                record = None
            else:
                self._cancel_grace(self._grace_key(session, record))
        if record is None:
            logger.debug("Check run for untracked pull request", extra={"repo": event.repo, "number": number})
            return

        api = self._api(event.installation_id)
        try:
            pull = await api.get_pull_request(record.owner, record.repo, number)
            runs = await api.list_check_runs_for_ref(record.owner, record.repo, pull.head_sha)
            if not checks_completed(runs):
                logger.info("Checks still running", extra={"repo": record.repo, "number": number})
                return
            combined = await api.get_combined_status(record.owner, record.repo, pull.head_sha)
        except GitHubApiError as exc:
            logger.warning("Could not evaluate checks", extra={"repo": record.repo, "error": str(exc)})
            return

        ready = checks_ready(runs, combined)
        async with session.lock:
            if session.submodules.get(record.repo) is not record:
                return
            duration = format_duration(record.elapsed())
            record.commit_status.state = CommitState.SUCCESS if ready else CommitState.FAILURE
            record.commit_status.pull_sha = pull.head_sha
            record.commit_status.description = (
                f"Checks passed in {duration}" if ready else f"Checks failed after {duration}"
            )

        logger.info(
            "Submodule checks completed",
            extra={"repo": record.repo, "number": number, "ready": ready},
        )
        await self._post_submodule_status(session, record)
        if ready:
            await self._maybe_cascade(session)

    # -- statuses ---------------------------------------------------------------

    async def handle_status(self, event: StatusPosted) -> None:
        route = parse_status_context(event.context, event.target_url, self._policy.context_prefix)
        if not route.matched:
            logger.debug("Status context not routed", extra={"context": event.context})
            return

        session = self.session(event.installation_id)
        if not session.updating:
            logger.info("No update in progress; status ignored", extra={"context": event.context})
            return
        if not self._is_superproject(session, event.owner, event.repo):
            logger.debug("Status on foreign repository", extra={"repo": event.repo, "context": event.context})
            return

        async with session.lock:
            record = session.submodules.get(route.repo) if session.tracks(route.repo) else None
        if record is None:
            logger.warning(
                "Status for untracked submodule discarded",
                extra={"submodule": route.repo, "context": event.context},
            )
            return

        api = self._api(event.installation_id)
        try:
            pull = await api.get_pull_request(record.owner, record.repo, route.pr_number)
        except GitHubApiError as exc:
            logger.warning("Could not resolve delivery pull request", extra={"repo": record.repo, "error": str(exc)})
            return

        state = CommitState(event.state)
        async with session.lock:
            if session.submodules.get(record.repo) is not record:
                return
            previous = record.commit_status
            if (
                state is CommitState.PENDING
                and previous.state is not CommitState.PENDING
                and previous.pull_sha == pull.head_sha
            ):
                logger.debug("Stale pending status ignored", extra={"repo": record.repo})
                return
            record.commit_status = CommitStatus(
                repo=record.repo,
                context=event.context,
                description=event.description,
                state=state,
                pull_number=pull.number,
                pull_sha=pull.head_sha,
                pull_url=pull.html_url,
            )

        if state is CommitState.SUCCESS:
            await self._maybe_cascade(session)
        elif state is CommitState.PENDING:
            self._arm_grace(session, record)

    # -- no-CI grace poll -------------------------------------------------------

    @staticmethod
    def _grace_key(session: UpdateSession, record: SubmoduleRecord) -> GraceKey:
        return (session.installation_id, record.repo, record.commit_status.pull_sha)

    def _arm_grace(self, session: UpdateSession, record: SubmoduleRecord) -> None:
        key = self._grace_key(session, record)
        if not record.commit_status.pull_sha or key in self._grace_tasks or key in self._grace_done:
            return
        self._grace_tasks[key] = asyncio.create_task(self._grace_poll(session, record, key))

    def _cancel_grace(self, key: GraceKey) -> None:
        self._grace_done.add(key)
        task = self._grace_tasks.pop(key, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _cancel_all_grace(self, installation_id: int) -> None:
        for key in [key for key in self._grace_tasks if key[0] == installation_id]:
            self._cancel_grace(key)
        self._grace_done = {key for key in self._grace_done if key[0] != installation_id}

    async def _grace_poll(self, session: UpdateSession, record: SubmoduleRecord, key: GraceKey) -> None:
        await asyncio.sleep(self._grace_period)
        self._grace_tasks.pop(key, None)
        self._grace_done.add(key)

        if session.submodules.get(record.repo) is not record or record.ready:
            return
        api = self._api(session.installation_id)
        try:
            runs = await api.list_check_runs_for_ref(record.owner, record.repo, key[2])
        except GitHubApiError as exc:
            logger.warning("Grace poll failed", extra={"repo": record.repo, "error": str(exc)})
            return
        if runs:
            logger.debug("Check runs appeared; grace poll abandoned", extra={"repo": record.repo})
            return

        async with session.lock:
            if session.submodules.get(record.repo) is not record or record.ready:
                return
            record.commit_status.state = CommitState.SUCCESS
            record.commit_status.description = NO_CI_DESCRIPTION

        logger.info("No check runs reported; marking submodule ready", extra={"repo": record.repo})
        await self._post_submodule_status(session, record)
        await self._maybe_cascade(session)

    # -- readiness and cascade --------------------------------------------------

    async def _superproject_checks_passed(self, api: GitHubApi, pull: PullRequest) -> bool:
        runs = await api.list_check_runs_for_ref(pull.owner, pull.repo, pull.head_sha)
        return checks_completed(runs) and checks_passed(runs)

    async def _maybe_cascade(self, session: UpdateSession) -> bool:
        async with session.lock:
            if not session.updating or session.cascading or not session.submodules_ready():
                return False
            pull = session.update_pr

        api = self._api(session.installation_id)
        try:
            approved = await self._pull_approved(api, pull.owner, pull.repo, pull.number)
            passed = await self._superproject_checks_passed(api, pull)
        except GitHubApiError as exc:
            logger.warning("Readiness check failed", extra={"number": pull.number, "error": str(exc)})
            return False
        if not (approved and passed):
            logger.info(
                "Superproject not ready",
                extra={"number": pull.number, "approved": approved, "checks_passed": passed},
            )
            return False

        async with session.lock:
            if (
                not session.updating
                or session.cascading
                or session.current_update_pr_id != pull.number
                or not session.submodules_ready()
            ):
                return False
            session.cascading = True

        logger.info("All pull requests ready; starting cascade", extra={"number": pull.number})
        result = CascadeResult(success=False, error="cascade interrupted")
        try:
            result = await CascadeMerger(api, self._policy).run(session)
        except Exception as exc:
            logger.exception("Cascade aborted", extra={"number": pull.number})
            result = CascadeResult(success=False, error=str(exc) or type(exc).__name__)
        finally:
            async with session.lock:
                session.cascading = False
                if result.success:
                    self._cancel_all_grace(session.installation_id)
                    session.reset()
        self.cascade_results.append(result)

        if result.success:
            logger.info("Update finished", extra={"number": pull.number})
        return result.success

    # -- status reporting -------------------------------------------------------

    async def _post_superproject(
        self, session: UpdateSession, context: str, state: str, description: str, target_url: str | None = None
    ) -> None:
        pull = session.update_pr
        if pull is None:
            return
        api = self._api(session.installation_id)
        try:
            await api.create_commit_status(
                pull.owner,
                pull.repo,
                pull.head_sha,
                state=state,
                context=context,
                description=description[:140],
                target_url=target_url,
            )
        except GitHubApiError as exc:
            logger.warning("Could not post status", extra={"context": context, "state": state, "error": str(exc)})

    async def _post_submodule_status(self, session: UpdateSession, record: SubmoduleRecord) -> None:
        status = record.commit_status
        await self._post_superproject(
            session,
            self._policy.submodule_context(record.repo),
            status.state.value,
            status.description or "",
            target_url=status.pull_url or None,
        )


__all__ = ["GRACE_PERIOD_SECONDS", "NO_CI_DESCRIPTION", "UpdateSessionManager"]
