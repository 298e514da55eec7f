from __future__ import annotations

import asyncio

import pytest

from autoupdate_bot.cascade import CascadeMerger, CascadePreconditionError, build_gitlink_entries
from autoupdate_bot.policy import UpdatePolicy
from autoupdate_bot.session import CommitState, CommitStatus, SubmoduleRecord, UpdateSession

from conftest import OWNER, SUPER, FakeGitHubApi, build_superproject

POLICY = UpdatePolicy()


def ready_session(api: FakeGitHubApi, names: tuple[str, ...]) -> UpdateSession:
    pull = build_superproject(api, submodules=names)
    session = UpdateSession(installation_id=1)
    session.begin(
        pull,
        expected=names,
        version="3.1.0",
        author_login="alice",
        author_name="Alice Example",
        author_email="alice@example.com",
    )
    for index, name in enumerate(names, start=1):
        delivery = api.add_pull(OWNER, name, index, head_sha=f"{name}-head")
        session.submodules[name] = SubmoduleRecord(
            owner=OWNER,
            repo=name,
            repo_url=f"https://github.com/{OWNER}/{name}.git",
            branch="main",
            path=f"modules/{name}",
            commit_status=CommitStatus(
                repo=name,
                context=POLICY.submodule_context(name),
                state=CommitState.SUCCESS,
                pull_number=delivery.number,
                pull_sha=delivery.head_sha,
                pull_url=delivery.html_url,
            ),
        )
    return session


def test_cascade_merges_everything_and_pins_gitlinks(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("c", "a", "b"))

    result = asyncio.run(CascadeMerger(api, POLICY).run(session))

    assert result.success
    assert result.merged == {"a": "merged-a-2", "b": "merged-b-3", "c": "merged-c-1"}
    assert {(repo, number) for _, repo, number in api.approvals} == {("a", 2), ("b", 3), ("c", 1)}
    assert api.merge_calls[-1] == (OWNER, SUPER, 42)

    commit = api.commits[result.sync_commit]
    assert commit["message"] == "Synchronize submodules"
    assert commit["parents"] == ["super-main"]
    assert commit["author"] == ("Alice Example", "alice@example.com")
    entries = api.trees[commit["tree"]]
    assert [(entry.path, entry.sha, entry.mode, entry.type) for entry in entries] == [
        ("modules/a", "merged-a-2", "160000", "commit"),
        ("modules/b", "merged-b-3", "160000", "commit"),
        ("modules/c", "merged-c-1", "160000", "commit"),
    ]
    assert api.branches[(OWNER, SUPER, "main")] == result.sync_commit
    assert session.submodules["a"].merged_sha == "merged-a-2"
    assert api.statuses_for(POLICY.update_context)[-1]["state"] == "success"


def test_gitlink_entries_independent_of_order(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("a", "b", "c"))
    for record in session.submodules.values():
        record.merged_sha = f"sha-{record.repo}"
    records = list(session.submodules.values())

    assert build_gitlink_entries(records) == build_gitlink_entries(reversed(records))


def test_partial_failure_leaves_superproject_untouched(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("a", "b", "c"))
    api.merge_failures.add((OWNER, "b", 2))

    result = asyncio.run(CascadeMerger(api, POLICY).run(session))

    assert not result.success
    assert set(result.failures) == {"b"}
    assert set(result.merged) == {"a", "c"}
    assert api.trees == {}
    assert (OWNER, SUPER, 42) not in api.merge_calls
    assert api.branches[(OWNER, SUPER, "main")] == "super-main"
    failure = api.statuses_for(POLICY.update_context)[-1]
    assert failure["state"] == "failure"
    assert "b" in failure["description"]


def test_retry_after_partial_failure_does_not_remerge(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("a", "b"))
    api.merge_failures.add((OWNER, "b", 2))
    merger = CascadeMerger(api, POLICY)

    first = asyncio.run(merger.run(session))
    api.merge_failures.clear()
    second = asyncio.run(merger.run(session))

    assert not first.success and second.success
    assert api.merge_calls.count((OWNER, "a", 1)) == 1
    assert api.merge_calls.count((OWNER, "b", 2)) == 2


def test_retry_after_superproject_merge_failure_reuses_sync_commit(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("a", "b"))
    api.merge_failures.add((OWNER, SUPER, 42))
    merger = CascadeMerger(api, POLICY)

    first = asyncio.run(merger.run(session))
    commits_after_first = dict(api.commits)
    api.merge_failures.clear()
    second = asyncio.run(merger.run(session))

    assert not first.success
    assert first.error is not None
    assert api.statuses_for(POLICY.update_context)[-2]["state"] == "error"
    assert second.success
    assert second.sync_commit == first.sync_commit
    assert api.commits == commits_after_first


def test_cascade_adopts_already_merged_pull(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("a",))
    pull = api.pulls[(OWNER, "a", 1)]
    pull.merged = True
    pull.merge_commit_sha = "outside-merge"

    result = asyncio.run(CascadeMerger(api, POLICY).run(session))

    assert result.success
    assert result.merged == {"a": "outside-merge"}
    assert (OWNER, "a", 1) not in api.merge_calls


def test_cascade_without_tracked_pull_is_a_programming_error(api: FakeGitHubApi) -> None:
    with pytest.raises(CascadePreconditionError):
        asyncio.run(CascadeMerger(api, POLICY).run(UpdateSession(installation_id=1)))


def test_transport_error_in_one_merge_is_a_submodule_failure(api: FakeGitHubApi) -> None:
    session = ready_session(api, ("a", "b"))
    api.merge_errors[(OWNER, "a", 1)] = ConnectionError("timeout")

    result = asyncio.run(CascadeMerger(api, POLICY).run(session))

    assert not result.success
    assert result.failures == {"a": "timeout"}
    assert result.merged == {"b": "merged-b-2"}
    assert session.submodules["a"].merged_sha == ""
    assert (OWNER, SUPER, 42) not in api.merge_calls
    assert api.statuses_for(POLICY.update_context)[-1]["state"] == "failure"
