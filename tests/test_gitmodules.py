from __future__ import annotations

from pathlib import Path

import pytest

from autoupdate_bot.delivery import GitmodulesError, Submodule, build_gitmodules, parse_gitmodules, parse_gitmodules_file
from autoupdate_bot.delivery.initiator import resolve_targets
from autoupdate_bot.github import PullRequest

from conftest import GITMODULES


def test_parse_gitmodules_reads_all_sections() -> None:
    submodules = parse_gitmodules(GITMODULES)

    assert [submodule.name for submodule in submodules] == ["a", "b"]
    assert submodules[0].path == "modules/a"
    assert submodules[1].url == "https://github.com/acme/b.git"
    assert submodules[1].branch == "main"


def test_missing_branch_uses_default() -> None:
    content = '[submodule "docs"]\n\tpath = docs\n\turl = ../docs.git\n'

    submodules = parse_gitmodules(content, default_branch="master")

    assert submodules == [Submodule(name="docs", path="docs", url="../docs.git", branch="master")]


def test_unrelated_sections_are_skipped() -> None:
    content = '[core]\n\tbare = false\n[submodule "a"]\n\tpath = a\n\turl = https://github.com/acme/a\n'

    assert [submodule.name for submodule in parse_gitmodules(content)] == ["a"]


def test_unreadable_content_raises() -> None:
    with pytest.raises(GitmodulesError):
        parse_gitmodules("path = orphan\n")
    with pytest.raises(GitmodulesError):
        parse_gitmodules('[submodule "a"]\n\tpath = a\n')


def test_build_gitmodules_is_parseable(tmp_path: Path) -> None:
    submodules = parse_gitmodules(GITMODULES)
    target = tmp_path / ".gitmodules"
    target.write_text(build_gitmodules(submodules), encoding="utf-8")

    assert parse_gitmodules_file(target) == submodules


def test_relative_urls_resolve_against_superproject_owner() -> None:
    superproject = PullRequest(
        owner="acme",
        repo="super",
        number=1,
        head_sha="h",
        head_ref="t",
        base_ref="main",
        base_sha="b",
        html_url="https://github.com/acme/super/pull/1",
    )
    submodules = [
        Submodule(name="docs", path="docs", url="../docs.git"),
        Submodule(name="lib", path="lib", url="https://github.com/other/lib.git"),
    ]

    targets = resolve_targets(submodules, superproject)

    assert [(target.owner, target.repo) for target in targets] == [("acme", "docs"), ("other", "lib")]


def test_git_config_syntax_is_honoured() -> None:
    content = (
        '[submodule "a"]\n'
        '\tpath = "modules/a"\n'
        "\turl = https://github.com/acme/a.git ; mirror\n"
        "\t# branch = release\n"
    )

    assert parse_gitmodules(content) == [
        Submodule(name="a", path="modules/a", url="https://github.com/acme/a.git", branch="main")
    ]
