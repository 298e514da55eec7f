from __future__ import annotations

from autoupdate_bot.github import PullRequest
from autoupdate_bot.session import CommitState, CommitStatus, SessionState, SubmoduleRecord, UpdateSession


def make_record(repo: str, state: CommitState = CommitState.PENDING) -> SubmoduleRecord:
    return SubmoduleRecord(
        owner="acme",
        repo=repo,
        repo_url=f"https://github.com/acme/{repo}.git",
        branch="main",
        path=f"modules/{repo}",
        commit_status=CommitStatus(repo=repo, context=f"auto-update / check-update ({repo})", state=state),
    )


def make_session(*names: str) -> UpdateSession:
    session = UpdateSession(installation_id=1)
    session.begin(
        PullRequest(
            owner="acme",
            repo="super",
            number=42,
            head_sha="head42",
            head_ref="bump",
            base_ref="main",
            base_sha="base",
            html_url="https://github.com/acme/super/pull/42",
        ),
        expected=names,
        version="3.1.0",
        author_login="alice",
        author_name="Alice",
        author_email="alice@example.com",
    )
    return session


def test_empty_submodule_set_is_ready() -> None:
    assert make_session().submodules_ready()


def test_ready_only_when_every_record_succeeds() -> None:
    session = make_session("a", "b", "c")
    for name in ("a", "b", "c"):
        session.submodules[name] = make_record(name, CommitState.SUCCESS)
    assert session.submodules_ready()

    session.submodules["b"].commit_status.state = CommitState.FAILURE
    assert not session.submodules_ready()


def test_missing_expected_record_blocks_readiness() -> None:
    session = make_session("a", "b")
    session.submodules["a"] = make_record("a", CommitState.SUCCESS)

    assert not session.submodules_ready()
    assert session.snapshot()["missing"] == ["b"]


def test_begin_and_reset_keep_state_invariant() -> None:
    session = make_session("a")

    assert session.state is SessionState.UPDATING
    assert session.update_pr is not None
    assert session.current_update_pr_id == session.update_pr.number
    assert session.update_base == "main"

    session.reset()

    assert session.state is SessionState.IDLE
    assert session.update_pr is None
    assert session.current_update_pr_id == -1
    assert session.submodules == {}


def test_find_by_pull_matches_number() -> None:
    session = make_session("a")
    record = make_record("a")
    record.commit_status.pull_number = 5
    session.submodules["a"] = record

    assert session.find_by_pull("a", 5) is record
    assert session.find_by_pull("a", 6) is None
    assert session.find_by_pull("b", 5) is None
