"""Delivery of changelog pull requests to submodules."""

from .changelog import (
    ChangelogExecutionResult,
    ChangelogGenerator,
    ChangelogRunner,
    ChangelogRunnerError,
    ChangelogToolNotFoundError,
    FakeChangelogRunner,
    VersionBump,
    parse_version_bump,
)
from .gitmodules import GitmodulesError, Submodule, build_gitmodules, parse_gitmodules, parse_gitmodules_file
from .initiator import DeliveryInitiator, DeliveryTarget, resolve_targets

__all__ = [
    "ChangelogExecutionResult",
    "ChangelogGenerator",
    "ChangelogRunner",
    "ChangelogRunnerError",
    "ChangelogToolNotFoundError",
    "DeliveryInitiator",
    "DeliveryTarget",
    "FakeChangelogRunner",
    "GitmodulesError",
    "Submodule",
    "VersionBump",
    "build_gitmodules",
    "parse_gitmodules",
    "parse_gitmodules_file",
    "parse_version_bump",
    "resolve_targets",
]
