"""Cascade merge orchestration."""

from .merge import CascadeMerger, CascadePreconditionError, CascadeResult, build_gitlink_entries

__all__ = ["CascadeMerger", "CascadePreconditionError", "CascadeResult", "build_gitlink_entries"]
