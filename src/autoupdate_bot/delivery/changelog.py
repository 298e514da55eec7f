"""Changelog generation through the Debian ``dch`` tool, and bump detection in diffs."""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from ..policy import UpdatePolicy
from .utils import sanitize_environment


class ChangelogRunnerError(RuntimeError):
    """Base class for changelog runner errors."""


class ChangelogToolNotFoundError(ChangelogRunnerError):
    """Raised when the ``dch`` executable cannot be located."""


@dataclass(slots=True)
class ChangelogExecutionResult:
    """Holds the outcome of a ``dch`` invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(slots=True)
class VersionBump:
    version: str
    author_name: str | None = None
    author_email: str | None = None


class ChangelogGenerator(Protocol):
    async def generate_changelog_text(
        self,
        workdir: Path,
        *,
        submodule: str,
        current: str,
        version: str,
        author: tuple[str, str],
    ) -> str:
        ...


class ChangelogRunner:
    """Execute ``dch`` asynchronously."""

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise ChangelogToolNotFoundError(f"dch executable not found at {candidate}")

        binary = shutil.which("dch")
        if binary is None:
            raise ChangelogToolNotFoundError("dch executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def new_version(
        self,
        changelog: Path,
        *,
        version: str,
        message: str,
        author: tuple[str, str],
        flags: Sequence[str] | None = None,
    ) -> ChangelogExecutionResult:
        args: list[str] = [
            "--changelog",
            str(changelog),
            "--newversion",
            version,
            "--distribution",
            "unstable",
            *(flags or []),
            "--",
            message,
        ]
        env = {"DEBFULLNAME": author[0], "DEBEMAIL": author[1]}
        return await self._invoke(*args, env=env, cwd=changelog.parent)

    async def generate_changelog_text(
        self,
        workdir: Path,
        *,
        submodule: str,
        current: str,
        version: str,
        author: tuple[str, str],
    ) -> str:
        """Write ``current`` into a scratch copy, add a stanza for ``version`` and return the result."""

        changelog = Path(workdir) / submodule / "changelog"
        changelog.parent.mkdir(parents=True, exist_ok=True)
        changelog.write_text(current, encoding="utf-8")
        result = await self.new_version(
            changelog,
            version=version,
            message=f"Update to version {version}",
            author=author,
        )
        if not result.ok:
            raise ChangelogRunnerError(
                f"dch failed for {submodule} with exit code {result.returncode}: {result.stderr.strip()}"
            )
        return changelog.read_text(encoding="utf-8")

    async def _invoke(
        self, *args: str, env: dict[str, str] | None = None, cwd: Path | None = None
    ) -> ChangelogExecutionResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(env),
            cwd=str(cwd) if cwd is not None else None,
        )
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return ChangelogExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeChangelogRunner(ChangelogRunner):
    """Test double that prepends a stanza instead of running ``dch``."""

    def __init__(self, responses: Iterable[ChangelogExecutionResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-dch")

    async def _invoke(  # type: ignore[override]
        self, *args: str, env: dict[str, str] | None = None, cwd: Path | None = None
    ) -> ChangelogExecutionResult:
        self._invocations.append(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        changelog = Path(args[args.index("--changelog") + 1])
        version = args[args.index("--newversion") + 1]
        identity = env or {}
        stanza = (
            f"{changelog.parent.name} ({version}) unstable; urgency=medium\n\n"
            f"  * {args[-1]}\n\n"
            f" -- {identity.get('DEBFULLNAME', '')} <{identity.get('DEBEMAIL', '')}>\n\n"
        )
        changelog.write_text(stanza + changelog.read_text(encoding="utf-8"), encoding="utf-8")
        return ChangelogExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


def _file_sections(diff: str) -> dict[str, list[str]]:
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    for line in diff.splitlines():
        if line.startswith("diff --git "):
            current = None
            continue
        if line.startswith("+++ "):
            target = line[4:].strip()
            if target.startswith("b/"):
                target = target[2:]
            current = sections.setdefault(target, [])
            continue
        if line.startswith("--- "):
            continue
        if current is not None:
            current.append(line)
    return sections


def parse_version_bump(diff: str, policy: UpdatePolicy) -> VersionBump | None:
    """Return the bumped version when ``diff`` adds a version line to the tracked changelog."""

    added = _file_sections(diff).get(policy.changelog_path)
    if not added:
        return None

    version_pattern = re.compile(policy.version_pattern)
    author_pattern = re.compile(policy.author_pattern)
    bump: VersionBump | None = None
    for line in added:
        if bump is None:
            match = version_pattern.match(line)
            if match is not None:
                bump = VersionBump(version=match.group("version"))
            continue
        author = author_pattern.match(line)
        if author is not None:
            bump.author_name = author.group("name").strip()
            bump.author_email = author.group("email").strip()
            break
    return bump


__all__ = [
    "ChangelogExecutionResult",
    "ChangelogGenerator",
    "ChangelogRunner",
    "ChangelogRunnerError",
    "ChangelogToolNotFoundError",
    "FakeChangelogRunner",
    "VersionBump",
    "parse_version_bump",
]
