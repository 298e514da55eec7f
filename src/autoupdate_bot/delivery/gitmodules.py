"""Reading and writing ``.gitmodules`` documents."""

from __future__ import annotations

import configparser
import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from git.config import GitConfigParser

_SECTION = re.compile(r'^submodule\s+"(?P<name>[^"]+)"$')


class GitmodulesError(RuntimeError):
    """Raised when a ``.gitmodules`` document cannot be parsed."""


@dataclass(slots=True)
class Submodule:
    name: str
    path: str
    url: str
    branch: str = "main"


def parse_gitmodules(content: str, *, default_branch: str = "main") -> list[Submodule]:
    """Parse ``.gitmodules`` text with git's own config syntax (quoting, inline comments)."""

    document = io.BytesIO(content.encode("utf-8"))
    document.name = ".gitmodules"
    submodules: list[Submodule] = []
    with GitConfigParser(document, read_only=True) as parser:
        try:
            parser.read()
        except configparser.Error as exc:
            raise GitmodulesError(f"Unreadable .gitmodules: {exc}") from exc

        for section in parser.sections():
            match = _SECTION.match(section.strip())
            if match is None:
                continue
            values = {option: str(parser.get(section, option)).strip() for option in parser.options(section)}
            path = values.get("path", "")
            url = values.get("url", "")
            if not path or not url:
                raise GitmodulesError(f"Submodule {match.group('name')!r} is missing path or url")
            submodules.append(
                Submodule(
                    name=match.group("name"),
                    path=path,
                    url=url,
                    branch=values.get("branch", "") or default_branch,
                )
            )
    return submodules


def parse_gitmodules_file(path: Path, *, default_branch: str = "main") -> list[Submodule]:
    return parse_gitmodules(Path(path).read_text(encoding="utf-8"), default_branch=default_branch)


def build_gitmodules(submodules: Iterable[Submodule]) -> str:
    lines: list[str] = []
    for submodule in submodules:
        lines.append(f'[submodule "{submodule.name}"]')
        lines.append(f"\tpath = {submodule.path}")
        lines.append(f"\turl = {submodule.url}")
        lines.append(f"\tbranch = {submodule.branch}")
    return "\n".join(lines) + ("\n" if lines else "")


__all__ = [
    "GitmodulesError",
    "Submodule",
    "build_gitmodules",
    "parse_gitmodules",
    "parse_gitmodules_file",
]
