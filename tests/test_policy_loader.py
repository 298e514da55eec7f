from pathlib import Path
import textwrap

import pytest

from autoupdate_bot.policy import PolicyLoadError, PolicyLoader, UpdatePolicy


def write_policy(path: Path, *, prefix: str) -> None:
    path.write_text(
        textwrap.dedent(
            """
            id: sample
            changelog_path: debian/changelog
            context_prefix: {prefix}
            merge_method: rebase
            """
        ).strip().format(prefix=prefix),
        encoding="utf-8",
    )


def test_loader_merges_paths(tmp_path: Path) -> None:
    base = tmp_path / "base"
    base.mkdir()
    override = tmp_path / "override"
    override.mkdir()

    write_policy(base / "policy.yaml", prefix="base-bot")
    write_policy(override / "policy.yaml", prefix="override-bot")

    policy = PolicyLoader([base, override]).load()

    assert policy.id == "sample"
    assert policy.context_prefix == "override-bot"
    assert policy.submodule_context("a") == "override-bot / check-update (a)"


def test_loader_defaults_without_documents(tmp_path: Path) -> None:
    policy = PolicyLoader([tmp_path, tmp_path / "missing"]).load()

    assert policy == UpdatePolicy()
    assert policy.deliver_context == "auto-update / deliver-pr"
    assert policy.update_context == "auto-update / update-submodules"


def test_loader_accepts_single_file(tmp_path: Path) -> None:
    document = tmp_path / "bot.yml"
    write_policy(document, prefix="single")

    assert PolicyLoader([document]).load().context_prefix == "single"


def test_loader_reports_validation_error(tmp_path: Path) -> None:
    invalid = tmp_path / "invalid"
    invalid.mkdir()
    (invalid / "broken.yaml").write_text("version_pattern: '^(?P<other>.*)$'", encoding="utf-8")

    with pytest.raises(PolicyLoadError):
        PolicyLoader([invalid]).load()


def test_loader_rejects_non_mapping(tmp_path: Path) -> None:
    (tmp_path / "list.yaml").write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(PolicyLoadError):
        PolicyLoader([tmp_path]).load()
