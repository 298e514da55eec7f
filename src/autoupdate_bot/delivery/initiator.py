"""Creation of the per-submodule delivery pull requests that seed an update session."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..github import GitHubApi, GitHubApiError, PullRequest, TreeEntry, parse_github_owner_repo
from ..policy import UpdatePolicy
from ..session.models import CommitState, CommitStatus, SubmoduleRecord, UpdateSession
from .changelog import ChangelogGenerator, ChangelogRunnerError
from .gitmodules import Submodule

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeliveryTarget:
    """A ``.gitmodules`` entry resolved to the GitHub repository behind it."""

    submodule: Submodule
    owner: str
    repo: str

    @property
    def repo_url(self) -> str:
        return self.submodule.url


def resolve_targets(submodules: list[Submodule], superproject: PullRequest) -> list[DeliveryTarget]:
    """Map submodules to repositories; relative URLs resolve against the superproject owner."""

    targets: list[DeliveryTarget] = []
    for submodule in submodules:
        parsed = parse_github_owner_repo(submodule.url)
        if parsed is None:
            repo = submodule.url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")
            parsed = (superproject.owner, repo)
        targets.append(DeliveryTarget(submodule=submodule, owner=parsed[0], repo=parsed[1]))
    return targets


class DeliveryInitiator:
    """Opens one changelog pull request per submodule and reports it on the superproject."""

    def __init__(self, api: GitHubApi, generator: ChangelogGenerator, policy: UpdatePolicy) -> None:
        self._api = api
        self._generator = generator
        self._policy = policy

    async def deliver_all(self, session: UpdateSession, targets: list[DeliveryTarget]) -> list[SubmoduleRecord]:
        """Deliver every target concurrently inside one scratch directory."""

        with tempfile.TemporaryDirectory(prefix="autoupdate-") as workdir:
            return list(
                await asyncio.gather(*(self.deliver(session, target, Path(workdir)) for target in targets))
            )

    async def deliver(self, session: UpdateSession, target: DeliveryTarget, workdir: Path) -> SubmoduleRecord:
        superproject = session.update_pr
        if superproject is None:
            raise RuntimeError("Delivery requires a tracked superproject pull request")

        context = self._policy.submodule_context(target.repo)
        record = SubmoduleRecord(
            owner=target.owner,
            repo=target.repo,
            repo_url=target.repo_url,
            branch=target.submodule.branch,
            path=target.submodule.path,
            commit_status=CommitStatus(repo=target.repo, context=context),
        )

        try:
            pull = await self._open_pull_request(session, target, workdir)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            logger.error(
                "Delivery failed",
                exc_info=not isinstance(exc, (GitHubApiError, ChangelogRunnerError)),
                extra={"repo": target.repo, "owner": target.owner, "error": reason},
            )
            record.delivery_error = reason
            record.commit_status.state = CommitState.FAILURE
            record.commit_status.description = f"Delivery failed: {reason}"[:140]
        else:
            record.commit_status.pull_number = pull.number
            record.commit_status.pull_sha = pull.head_sha
            record.commit_status.pull_url = pull.html_url
            record.commit_status.description = "Waiting for review and checks"
            logger.info(
                "Delivery pull request ready",
                extra={"repo": target.repo, "number": pull.number, "url": pull.html_url},
            )

        try:
            await self._api.create_commit_status(
                superproject.owner,
                superproject.repo,
                superproject.head_sha,
                state=record.commit_status.state.value,
                context=context,
                description=record.commit_status.description or "",
                target_url=record.commit_status.pull_url or None,
            )
        except GitHubApiError as exc:
            logger.warning(
                "Could not post delivery status",
                extra={"repo": target.repo, "context": context, "error": str(exc)},
            )
        return record

    async def _open_pull_request(
        self, session: UpdateSession, target: DeliveryTarget, workdir: Path
    ) -> PullRequest:
        api = self._api
        owner, repo = target.owner, target.repo
        version = session.update_to_version
        author = (session.author_name or session.author_login, session.author_email)

        head = await api.get_branch(owner, repo, target.submodule.branch)
        current = await api.get_file_content(owner, repo, self._policy.changelog_path, ref=head)
        text = await self._generator.generate_changelog_text(
            workdir, submodule=repo, current=current, version=version, author=author
        )

        blob = await api.create_blob(owner, repo, text)
        base_tree = await api.get_commit_tree(owner, repo, head)
        tree = await api.create_tree(
            owner,
            repo,
            [TreeEntry(path=self._policy.changelog_path, sha=blob, mode="100644", type="blob")],
            base_tree=base_tree,
        )
        title = self._policy.delivery_title.format(version=version)
        commit = await api.create_commit(owner, repo, message=title, tree=tree, parents=[head], author=author)

        topic = f"{self._policy.branch_prefix}/{version}"
        existing = await api.list_matching_refs(owner, repo, f"heads/{topic}")
        await api.create_or_update_ref(owner, repo, f"heads/{topic}", commit, force=True)
        logger.debug(
            "Delivery branch updated",
            extra={"repo": repo, "branch": topic, "refreshed": bool(existing), "commit": commit},
        )

        superproject = session.update_pr
        origin = superproject.html_url if superproject else "the superproject"
        body = f"Changelog update for {version}, requested by {origin}."
        pull = await api.create_or_find_pull_request(
            owner, repo, head=topic, base=target.submodule.branch, title=title, body=body
        )
        pull.head_sha = commit
        return pull


__all__ = ["DeliveryInitiator", "DeliveryTarget", "resolve_targets"]
