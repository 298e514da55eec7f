from __future__ import annotations

import asyncio
import textwrap
from typing import Any

import pytest

from autoupdate_bot.github import (
    BranchProtection,
    CheckRun,
    CombinedStatus,
    GitHubApiError,
    MergeResult,
    PullRequest,
    Review,
    StatusInfo,
    TreeEntry,
)

OWNER = "acme"
SUPER = "super"

GITMODULES = textwrap.dedent(
    """
    [submodule "a"]
    \tpath = modules/a
    \turl = https://github.com/acme/a.git
    \tbranch = main
    [submodule "b"]
    \tpath = modules/b
    \turl = https://github.com/acme/b.git
    \tbranch = main
    """
).lstrip()

BUMP_DIFF = textwrap.dedent(
    """
    diff --git a/debian/changelog b/debian/changelog
    index 1111111..2222222 100644
    --- a/debian/changelog
    +++ b/debian/changelog
    @@ -1,3 +1,9 @@
    +super (3.1.0) unstable; urgency=medium
    +
    +  * New upstream release.
    +
    + -- Alice Example <alice@example.com>  Mon, 19 Oct 2026 10:00:00 +0000
    +
     super (3.0.0) unstable; urgency=medium
    """
).lstrip()


class FakeGitHubApi:
    """In-memory stand-in for the GitHub API."""

    def __init__(self) -> None:
        self.pulls: dict[tuple[str, str, int], PullRequest] = {}
        self.reviews: dict[tuple[str, str, int], list[Review]] = {}
        self.check_runs: dict[tuple[str, str, str], list[CheckRun]] = {}
        self.combined: dict[tuple[str, str, str], CombinedStatus] = {}
        self.protection: dict[tuple[str, str, str], BranchProtection] = {}
        self.collaborators: dict[tuple[str, str], set[str]] = {}
        self.branches: dict[tuple[str, str, str], str] = {}
        self.files: dict[tuple[str, str, str], str] = {}
        self.refs: dict[tuple[str, str, str], str] = {}
        self.commit_links: dict[tuple[str, str, str], dict[str, str]] = {}
        self.trees: dict[str, list[TreeEntry]] = {}
        self.commits: dict[str, dict[str, Any]] = {}
        self.statuses: list[dict[str, Any]] = []
        self.merge_calls: list[tuple[str, str, int]] = []
        self.approvals: list[tuple[str, str, int]] = []
        self.merge_failures: set[tuple[str, str, int]] = set()
        self.merge_errors: dict[tuple[str, str, int], Exception] = {}
        self.interleave = False
        self.fail_methods: set[str] = set()
        self.collaborator_errors: set[str] = set()
        self._counter = 0
        self._next_number = 100

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    async def _tick(self) -> None:
        if self.interleave:
            await asyncio.sleep(0)

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail_methods:
            raise GitHubApiError(f"{method} failed", status=500)

    def add_pull(self, owner: str, repo: str, number: int, *, head_sha: str, base_ref: str = "main", author: str = "alice") -> PullRequest:
        pull = PullRequest(
            owner=owner,
            repo=repo,
            number=number,
            head_sha=head_sha,
            head_ref=f"topic-{number}",
            base_ref=base_ref,
            base_sha=f"base-{repo}",
            html_url=f"https://github.com/{owner}/{repo}/pull/{number}",
            author=author,
        )
        self.pulls[(owner, repo, number)] = pull
        return pull

    def statuses_for(self, context: str) -> list[dict[str, Any]]:
        return [status for status in self.statuses if status["context"] == context]

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        await self._tick()
        self._maybe_fail("get_pull_request")
        try:
            return self.pulls[(owner, repo, number)]
        except KeyError as exc:
            raise GitHubApiError(f"pull {owner}/{repo}#{number} not found", status=404) from exc

    async def list_reviews(self, owner: str, repo: str, number: int) -> list[Review]:
        return list(self.reviews.get((owner, repo, number), []))

    async def list_check_runs_for_ref(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        await self._tick()
        self._maybe_fail("list_check_runs_for_ref")
        return list(self.check_runs.get((owner, repo, ref), []))

    async def get_combined_status(self, owner: str, repo: str, ref: str) -> CombinedStatus:
        return self.combined.get((owner, repo, ref), CombinedStatus(state="pending", total_count=0))

    async def list_statuses_for_ref(self, owner: str, repo: str, ref: str) -> list[StatusInfo]:
        return [
            StatusInfo(context=status["context"], state=status["state"], description=status["description"])
            for status in self.statuses
            if (status["owner"], status["repo"], status["sha"]) == (owner, repo, ref)
        ]

    async def get_branch_protection(self, owner: str, repo: str, branch: str) -> BranchProtection | None:
        return self.protection.get((owner, repo, branch))

    async def is_collaborator(self, owner: str, repo: str, username: str) -> bool:
        if username in self.collaborator_errors:
            raise GitHubApiError("collaborator lookup failed", status=502)
        return username in self.collaborators.get((owner, repo), set())

    async def create_review(self, owner: str, repo: str, number: int, *, body: str = "") -> None:
        self.approvals.append((owner, repo, number))

    async def merge_pull_request(self, owner: str, repo: str, number: int, *, method: str = "rebase") -> MergeResult:
        self.merge_calls.append((owner, repo, number))
        await self._tick()
        if (owner, repo, number) in self.merge_errors:
            raise self.merge_errors[(owner, repo, number)]
        if (owner, repo, number) in self.merge_failures:
            raise GitHubApiError("Pull Request is not mergeable", status=405)
        pull = self.pulls[(owner, repo, number)]
        pull.merged = True
        pull.state = "closed"
        pull.merge_commit_sha = f"merged-{repo}-{number}"
        return MergeResult(merged=True, sha=pull.merge_commit_sha, message="Pull Request successfully merged")

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
        self._maybe_fail("create_commit_status")
        self.statuses.append(
            {
                "owner": owner,
                "repo": repo,
                "sha": sha,
                "state": state,
                "context": context,
                "description": description,
                "target_url": target_url,
            }
        )

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        blob = self._next("blob-")
        self.files[(owner, repo, blob)] = content
        return blob

    async def create_tree(self, owner: str, repo: str, entries: list[TreeEntry], *, base_tree: str) -> str:
        self._maybe_fail("create_tree")
        tree = self._next("tree-")
        self.trees[tree] = list(entries)
        return tree

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
        commit = self._next("commit-")
        self.commits[commit] = {"message": message, "tree": tree, "parents": parents, "author": author}
        links = dict(self.commit_links.get((owner, repo, parents[0]), {})) if parents else {}
        links.update({entry.path: entry.sha for entry in self.trees.get(tree, []) if entry.type == "commit"})
        self.commit_links[(owner, repo, commit)] = links
        return commit

    async def get_commit_tree(self, owner: str, repo: str, sha: str) -> str:
        return f"tree-of-{sha}"

    async def create_or_update_ref(self, owner: str, repo: str, ref: str, sha: str, *, force: bool = True) -> None:
        self.refs[(owner, repo, ref)] = sha
        if ref.startswith("heads/"):
            self.branches[(owner, repo, ref[len("heads/"):])] = sha

    async def list_matching_refs(self, owner: str, repo: str, prefix: str) -> list[str]:
        return [f"refs/{ref}" for (o, r, ref) in self.refs if (o, r) == (owner, repo) and ref.startswith(prefix)]

    async def create_or_find_pull_request(
        self, owner: str, repo: str, *, head: str, base: str, title: str, body: str
    ) -> PullRequest:
        for (o, r, _), pull in self.pulls.items():
            if (o, r) == (owner, repo) and pull.head_ref == head and pull.state == "open":
                pull.head_sha = self.refs[(owner, repo, f"heads/{head}")]
                return pull
        self._next_number += 1
        pull = self.add_pull(owner, repo, self._next_number, head_sha=self.refs[(owner, repo, f"heads/{head}")], base_ref=base)
        pull.head_ref = head
        return pull

    async def get_branch(self, owner: str, repo: str, branch: str) -> str:
        self._maybe_fail("get_branch")
        try:
            return self.branches[(owner, repo, branch)]
        except KeyError as exc:
            raise GitHubApiError(f"branch {branch} not found", status=404) from exc

    async def get_file_content(self, owner: str, repo: str, path: str, *, ref: str) -> str:
        try:
            return self.files[(owner, repo, path)]
        except KeyError as exc:
            raise GitHubApiError(f"{path} not found", status=404) from exc

    async def get_gitlinks(self, owner: str, repo: str, sha: str) -> dict[str, str]:
        return dict(self.commit_links.get((owner, repo, sha), {}))


def build_superproject(api: FakeGitHubApi, *, submodules: tuple[str, ...] = ("a", "b")) -> PullRequest:
    """Seed a superproject PR #42 with the given submodules, each with a changelog on ``main``."""

    pull = api.add_pull(OWNER, SUPER, 42, head_sha="head42")
    api.branches[(OWNER, SUPER, "main")] = "super-main"
    api.commit_links[(OWNER, SUPER, "super-main")] = {f"modules/{name}": f"old-{name}" for name in submodules}
    api.check_runs[(OWNER, SUPER, "head42")] = [CheckRun(name="build", status="completed", conclusion="success")]
    api.files[(OWNER, SUPER, ".gitmodules")] = "".join(
        f'[submodule "{name}"]\n\tpath = modules/{name}\n\turl = https://github.com/{OWNER}/{name}.git\n\tbranch = main\n'
        for name in submodules
    )
    for name in submodules:
        api.branches[(OWNER, name, "main")] = f"{name}-main"
        api.files[(OWNER, name, "debian/changelog")] = (
            f"{name} (3.0.0) unstable; urgency=medium\n\n  * Previous release.\n\n"
            f" -- Alice Example <alice@example.com>  Mon, 01 Jun 2026 10:00:00 +0000\n"
        )
    return pull


@pytest.fixture
def api() -> FakeGitHubApi:
    return FakeGitHubApi()
