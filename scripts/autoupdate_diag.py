"""Auto-update bot diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path

from autoupdate_bot.config import AutoUpdateSettings
from autoupdate_bot.delivery import GitmodulesError, parse_gitmodules_file, parse_version_bump
from autoupdate_bot.github import parse_status_context
from autoupdate_bot.policy import PolicyLoadError, UpdatePolicy, load_policy


def effective_policy(settings: AutoUpdateSettings) -> UpdatePolicy:
    try:
        return load_policy(settings.policy_paths)
    except PolicyLoadError as exc:
        print(f"Policy unavailable: {exc}")
        raise SystemExit(1)


def cmd_gitmodules(args: argparse.Namespace) -> None:
    try:
        submodules = parse_gitmodules_file(Path(args.path))
    except (OSError, GitmodulesError) as exc:
        print(f"Cannot read {args.path}: {exc}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps([asdict(submodule) for submodule in submodules], indent=2))
    else:
        for submodule in submodules:
            print(f"{submodule.name} [{submodule.branch}] {submodule.path} -> {submodule.url}")


def cmd_policy(args: argparse.Namespace) -> None:
    policy = effective_policy(AutoUpdateSettings())
    payload = policy.model_dump()
    payload["contexts"] = {
        "deliver": policy.deliver_context,
        "update": policy.update_context,
        "submodule": policy.submodule_context("<repo>"),
    }
    print(json.dumps(payload, indent=2))


def cmd_route(args: argparse.Namespace) -> None:
    policy = effective_policy(AutoUpdateSettings())
    route = parse_status_context(args.context, args.target_url, policy.context_prefix)
    print(json.dumps({"matched": route.matched, "repo": route.repo, "pr_number": route.pr_number}, indent=2))
    if not route.matched:
        raise SystemExit(1)


def cmd_bump(args: argparse.Namespace) -> None:
    policy = effective_policy(AutoUpdateSettings())
    diff = Path(args.diff).read_text(encoding="utf-8")
    bump = parse_version_bump(diff, policy)
    if bump is None:
        print(f"No version bump of {policy.changelog_path} found")
        raise SystemExit(1)
    print(json.dumps(asdict(bump), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Auto-update bot diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_gitmodules = sub.add_parser("gitmodules", help="Parse a .gitmodules file")
    p_gitmodules.add_argument("path", nargs="?", default=".gitmodules")
    p_gitmodules.add_argument("--json", action="store_true", help="Output JSON")
    p_gitmodules.set_defaults(func=cmd_gitmodules)

    p_policy = sub.add_parser("policy", help="Show the effective update policy")
    p_policy.set_defaults(func=cmd_policy)

    p_route = sub.add_parser("route", help="Route a status context to a submodule")
    p_route.add_argument("context")
    p_route.add_argument("target_url")
    p_route.set_defaults(func=cmd_route)

    p_bump = sub.add_parser("bump", help="Detect a changelog version bump in a diff file")
    p_bump.add_argument("diff")
    p_bump.set_defaults(func=cmd_bump)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
