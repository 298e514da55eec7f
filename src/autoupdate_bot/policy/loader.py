"""Policy loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import UpdatePolicy


class PolicyLoadError(RuntimeError):
    """Raised when one or more policy files cannot be parsed."""


class PolicyLoader:
    """Loads the update policy from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def _documents(self) -> list[Path]:
        documents: list[Path] = []
        for base in self._search_paths:
            if base.is_file():
                documents.append(base)
                continue
            documents.extend(sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")))
        return documents

    def load(self) -> UpdatePolicy:
        """Load the effective policy.

        Documents are merged key by key; later search paths override earlier
        ones. Without any document the built-in defaults apply.
        """

        merged: dict = {}
        errors: list[str] = []

        for path in self._documents():
            try:
                document = yaml.safe_load(path.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:  # pragma: no cover - library type
                errors.append(f"Failed to parse YAML in {path}: {exc}")
                continue

            if document is None:
                continue
            if not isinstance(document, dict):
                errors.append(f"Policy document {path} must be a mapping")
                continue
            merged.update(document)

        if errors:
            raise PolicyLoadError("; ".join(errors))

        try:
            return UpdatePolicy.model_validate(merged)
        except ValidationError as exc:
            raise PolicyLoadError(f"Policy validation error: {exc}") from exc


def load_policy(search_paths: Iterable[Path] | None = None) -> UpdatePolicy:
    """Convenience wrapper for loading the policy from the provided paths."""

    return PolicyLoader(search_paths).load()


__all__ = ["PolicyLoadError", "PolicyLoader", "UpdatePolicy", "load_policy"]
