"""Async GitHub API surface used by the session, cascade and delivery layers."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Protocol, TypeVar

import requests
from github import Auth, Github, GithubIntegration, InputGitAuthor, InputGitTreeElement
from github.GithubException import GithubException, UnknownObjectException

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

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GitHubApiError(RuntimeError):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class GitHubApi(Protocol):
    """Protocol for the subset of the GitHub REST API the bot relies on."""

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        ...

    async def list_reviews(self, owner: str, repo: str, number: int) -> list[Review]:
        ...

    async def list_check_runs_for_ref(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        ...

    async def get_combined_status(self, owner: str, repo: str, ref: str) -> CombinedStatus:
        ...

    async def list_statuses_for_ref(self, owner: str, repo: str, ref: str) -> list[StatusInfo]:
        ...

    async def get_branch_protection(self, owner: str, repo: str, branch: str) -> BranchProtection | None:
        ...

    async def is_collaborator(self, owner: str, repo: str, username: str) -> bool:
        ...

    async def create_review(self, owner: str, repo: str, number: int, *, body: str = "") -> None:
        ...

    async def merge_pull_request(
        self, owner: str, repo: str, number: int, *, method: str = "rebase"
    ) -> MergeResult:
        ...

    async def create_commit_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        *,
        state: str,
        context: str,
        description: str,
        target_url: str | None = None,
    ) -> None:
        ...

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        ...

    async def create_tree(self, owner: str, repo: str, entries: list[TreeEntry], *, base_tree: str) -> str:
        ...

    async def create_commit(
        self,
        owner: str,
        repo: str,
        *,
        message: str,
        tree: str,
        parents: list[str],
        author: tuple[str, str] | None = None,
    ) -> str:
        ...

    async def get_commit_tree(self, owner: str, repo: str, sha: str) -> str:
        ...

    async def create_or_update_ref(self, owner: str, repo: str, ref: str, sha: str, *, force: bool = True) -> None:
        ...

    async def list_matching_refs(self, owner: str, repo: str, prefix: str) -> list[str]:
        ...

    async def create_or_find_pull_request(
        self, owner: str, repo: str, *, head: str, base: str, title: str, body: str
    ) -> PullRequest:
        ...

    async def get_branch(self, owner: str, repo: str, branch: str) -> str:
        ...

    async def get_file_content(self, owner: str, repo: str, path: str, *, ref: str) -> str:
        ...

    async def get_gitlinks(self, owner: str, repo: str, sha: str) -> dict[str, str]:
        ...


def _convert_pull(owner: str, repo: str, pull) -> PullRequest:
    return PullRequest(
        owner=owner,
        repo=repo,
        number=pull.number,
        head_sha=pull.head.sha,
        head_ref=pull.head.ref,
        base_ref=pull.base.ref,
        base_sha=pull.base.sha,
        html_url=pull.html_url,
        author=pull.user.login if pull.user is not None else None,
        state=pull.state,
        merged=bool(pull.merged),
        merge_commit_sha=pull.merge_commit_sha,
    )


class PyGithubApi:
    """``GitHubApi`` implementation backed by PyGithub.

    PyGithub is blocking, so every call runs in a worker thread.
    """

    def __init__(self, client: Github) -> None:
        self._client = client

    async def _call(self, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except GithubException as exc:
            raise GitHubApiError(str(exc), status=exc.status) from exc
        except requests.RequestException as exc:
            raise GitHubApiError(f"GitHub request failed: {exc}") from exc

    def _repo(self, owner: str, repo: str):
        return self._client.get_repo(f"{owner}/{repo}")

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        return await self._call(lambda: _convert_pull(owner, repo, self._repo(owner, repo).get_pull(number)))

    async def list_reviews(self, owner: str, repo: str, number: int) -> list[Review]:
        def fetch() -> list[Review]:
            pull = self._repo(owner, repo).get_pull(number)
            return [
                Review(user=review.user.login if review.user is not None else None, state=review.state)
                for review in pull.get_reviews()
            ]

        return await self._call(fetch)

    async def list_check_runs_for_ref(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        def fetch() -> list[CheckRun]:
            commit = self._repo(owner, repo).get_commit(ref)
            return [
                CheckRun(name=run.name, status=run.status, conclusion=run.conclusion)
                for run in commit.get_check_runs()
            ]

        return await self._call(fetch)

    async def get_combined_status(self, owner: str, repo: str, ref: str) -> CombinedStatus:
        def fetch() -> CombinedStatus:
            combined = self._repo(owner, repo).get_commit(ref).get_combined_status()
            return CombinedStatus(state=combined.state, total_count=combined.total_count)

        return await self._call(fetch)

    async def list_statuses_for_ref(self, owner: str, repo: str, ref: str) -> list[StatusInfo]:
        def fetch() -> list[StatusInfo]:
            commit = self._repo(owner, repo).get_commit(ref)
            return [
                StatusInfo(
                    context=status.context,
                    state=status.state,
                    description=status.description,
                    target_url=status.target_url,
                )
                for status in commit.get_statuses()
            ]

        return await self._call(fetch)

    async def get_branch_protection(self, owner: str, repo: str, branch: str) -> BranchProtection | None:
        def fetch() -> BranchProtection | None:
            try:
                reviews = self._repo(owner, repo).get_branch(branch).get_required_pull_request_reviews()
            except UnknownObjectException:
                return None
            return BranchProtection(
                require_code_owner_reviews=bool(reviews.require_code_owner_reviews),
                required_approving_review_count=reviews.required_approving_review_count or 0,
            )

        return await self._call(fetch)

    async def is_collaborator(self, owner: str, repo: str, username: str) -> bool:
        return await self._call(lambda: self._repo(owner, repo).has_in_collaborators(username))

    async def create_review(self, owner: str, repo: str, number: int, *, body: str = "") -> None:
        def submit() -> None:
            pull = self._repo(owner, repo).get_pull(number)
            pull.create_review(body=body, event="APPROVE")

        await self._call(submit)

    async def merge_pull_request(
        self, owner: str, repo: str, number: int, *, method: str = "rebase"
    ) -> MergeResult:
        def merge() -> MergeResult:
            status = self._repo(owner, repo).get_pull(number).merge(merge_method=method)
            return MergeResult(merged=bool(status.merged), sha=status.sha, message=status.message or "")

        return await self._call(merge)

    async def create_commit_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        *,
        state: str,
        context: str,
        description: str,
        target_url: str | None = None,
    ) -> None:
        def post() -> None:
            commit = self._repo(owner, repo).get_commit(sha)
            if target_url:
                commit.create_status(state, target_url=target_url, description=description, context=context)
            else:
                commit.create_status(state, description=description, context=context)

        await self._call(post)

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        return await self._call(lambda: self._repo(owner, repo).create_git_blob(content, "utf-8").sha)

    async def create_tree(self, owner: str, repo: str, entries: list[TreeEntry], *, base_tree: str) -> str:
        def create() -> str:
            repository = self._repo(owner, repo)
            elements = [
                InputGitTreeElement(entry.path, entry.mode, entry.type, sha=entry.sha) for entry in entries
            ]
            return repository.create_git_tree(elements, repository.get_git_tree(base_tree)).sha

        return await self._call(create)

    async def create_commit(
        self,
        owner: str,
        repo: str,
        *,
        message: str,
        tree: str,
        parents: list[str],
        author: tuple[str, str] | None = None,
    ) -> str:
        def create() -> str:
            repository = self._repo(owner, repo)
            git_tree = repository.get_git_tree(tree)
            git_parents = [repository.get_git_commit(parent) for parent in parents]
            if author is not None:
                identity = InputGitAuthor(author[0], author[1])
                return repository.create_git_commit(message, git_tree, git_parents, author=identity).sha
            return repository.create_git_commit(message, git_tree, git_parents).sha

        return await self._call(create)

    async def get_commit_tree(self, owner: str, repo: str, sha: str) -> str:
        return await self._call(lambda: self._repo(owner, repo).get_git_commit(sha).tree.sha)

    async def create_or_update_ref(self, owner: str, repo: str, ref: str, sha: str, *, force: bool = True) -> None:
        def update() -> None:
            repository = self._repo(owner, repo)
            try:
                git_ref = repository.get_git_ref(ref)
            except UnknownObjectException:
                repository.create_git_ref(f"refs/{ref}", sha)
                return
            git_ref.edit(sha, force=force)

        await self._call(update)

    async def list_matching_refs(self, owner: str, repo: str, prefix: str) -> list[str]:
        return await self._call(
            lambda: [ref.ref for ref in self._repo(owner, repo).get_git_matching_refs(prefix)]
        )

    async def create_or_find_pull_request(
        self, owner: str, repo: str, *, head: str, base: str, title: str, body: str
    ) -> PullRequest:
        def open_pull() -> PullRequest:
            repository = self._repo(owner, repo)
            for existing in repository.get_pulls(state="open", head=f"{owner}:{head}", base=base):
                return _convert_pull(owner, repo, existing)
            created = repository.create_pull(title=title, body=body, base=base, head=head)
            return _convert_pull(owner, repo, created)

        return await self._call(open_pull)

    async def get_branch(self, owner: str, repo: str, branch: str) -> str:
        return await self._call(lambda: self._repo(owner, repo).get_branch(branch).commit.sha)

    async def get_file_content(self, owner: str, repo: str, path: str, *, ref: str) -> str:
        def fetch() -> str:
            contents = self._repo(owner, repo).get_contents(path, ref=ref)
            if isinstance(contents, list):
                raise GitHubApiError(f"{path} is a directory in {owner}/{repo}")
            try:
                return contents.decoded_content.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise GitHubApiError(f"{path} in {owner}/{repo} is not UTF-8 text") from exc

        return await self._call(fetch)

    async def get_gitlinks(self, owner: str, repo: str, sha: str) -> dict[str, str]:
        def fetch() -> dict[str, str]:
            repository = self._repo(owner, repo)
            tree_sha = repository.get_git_commit(sha).tree.sha
            tree = repository.get_git_tree(tree_sha, recursive=True)
            return {element.path: element.sha for element in tree.tree if element.type == "commit"}

        return await self._call(fetch)


class GitHubClientFactory:
    """Builds one ``PyGithubApi`` per installation id."""

    def __init__(
        self,
        *,
        token: str | None = None,
        app_id: int | None = None,
        private_key_path: Path | None = None,
        base_url: str = "https://api.github.com",
    ) -> None:
        if token is None and (app_id is None or private_key_path is None):
            raise GitHubApiError("Configure GITHUB_TOKEN or GITHUB_APP_ID with GITHUB_PRIVATE_KEY_PATH")
        self._token = token
        self._app_id = app_id
        self._private_key_path = private_key_path
        self._base_url = base_url
        self._clients: dict[int, PyGithubApi] = {}

    def for_installation(self, installation_id: int) -> PyGithubApi:
        client = self._clients.get(installation_id)
        if client is not None:
            return client

        if self._app_id is not None and self._private_key_path is not None:
            private_key = Path(self._private_key_path).read_text(encoding="utf-8")
            integration = GithubIntegration(
                auth=Auth.AppAuth(self._app_id, private_key), base_url=self._base_url
            )
            github_client = integration.get_github_for_installation(installation_id)
        else:
            github_client = Github(auth=Auth.Token(self._token or ""), base_url=self._base_url)

        logger.debug("Created GitHub client", extra={"installation_id": installation_id})
        client = PyGithubApi(github_client)
        self._clients[installation_id] = client
        return client


__all__ = ["GitHubApi", "GitHubApiError", "GitHubClientFactory", "PyGithubApi"]
