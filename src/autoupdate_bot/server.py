"""FastMCP server bootstrap for the auto-update bot."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import AutoUpdateSettings, get_settings
from .delivery import ChangelogGenerator, ChangelogRunner, ChangelogRunnerError, ChangelogToolNotFoundError
from .github import GitHubApi, GitHubApiError, GitHubClientFactory
from .policy import PolicyLoadError, PolicyLoader, UpdatePolicy
from .session.manager import UpdateSessionManager
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the bot."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _unavailable_api(reason: str) -> Callable[[int], GitHubApi]:
    def factory(installation_id: int) -> GitHubApi:
        raise GitHubApiError(f"GitHub client unavailable: {reason}")

    return factory


class _UnavailableChangelogGenerator:
    def __init__(self, reason: str) -> None:
        self._reason = reason

    async def generate_changelog_text(self, workdir, *, submodule, current, version, author) -> str:
        raise ChangelogRunnerError(self._reason)


def create_server(
    settings: Optional[AutoUpdateSettings] = None,
    *,
    api_factory: Callable[[int], GitHubApi] | None = None,
    generator: ChangelogGenerator | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the session manager wired in."""

    settings = settings or get_settings()
    log = logging.getLogger(__name__)

    try:
        policy = PolicyLoader(settings.policy_paths).load()
        policy_error: str | None = None
    except PolicyLoadError as exc:
        log.error("Policy could not be loaded; using defaults", extra={"error": str(exc)})
        policy = UpdatePolicy()
        policy_error = str(exc)

    github_metadata = {"available": api_factory is not None, "error": None}
    if api_factory is None:
        try:
            factory = GitHubClientFactory(
                token=settings.github_token,
                app_id=settings.github_app_id,
                private_key_path=settings.github_private_key_path,
                base_url=settings.github_api_url,
            )
            api_factory = factory.for_installation
            github_metadata["available"] = True
        except GitHubApiError as exc:
            github_metadata["error"] = str(exc)
            api_factory = _unavailable_api(str(exc))

    changelog_metadata = {"available": generator is not None, "path": settings.dch_path, "error": None}
    if generator is None:
        try:
            generator = ChangelogRunner(Path(settings.dch_path) if settings.dch_path else None)
            changelog_metadata["available"] = True
        except ChangelogToolNotFoundError as exc:
            changelog_metadata["error"] = str(exc)
            generator = _UnavailableChangelogGenerator(str(exc))

    manager = UpdateSessionManager(
        api_factory,
        policy=policy,
        generator=generator,
        grace_period=settings.grace_period,
    )

    server = FastMCP(
        name="Auto-update Bot",
        version=__version__,
        instructions=(
            "Coordinates submodule bumps: feed GitHub pull request, review, check run and "
            "status events through the provided tools; the bot delivers changelog pull "
            "requests to submodules and merges everything once reviews and CI are green."
        ),
    )

    handles = register_tools(server, manager=manager)

    @server.resource(
        "resource://autoupdate/status",
        name="autoupdate_status",
        title="Auto-update Status",
        description="Current update sessions and bot configuration.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        results = list(manager.cascade_results)[-5:]
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "policy": {
                "id": policy.id,
                "changelog_path": policy.changelog_path,
                "context_prefix": policy.context_prefix,
                "error": policy_error,
            },
            "github": github_metadata,
            "changelog": changelog_metadata,
            "grace_period": settings.grace_period,
            "sessions": manager.snapshot(),
            "cascades": [
                {
                    "success": result.success,
                    "merged": result.merged,
                    "failures": result.failures,
                    "sync_commit": result.sync_commit,
                    "error": result.error,
                }
                for result in results
            ],
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "session_manager", manager)
    setattr(server, "policy", policy)
    setattr(server, "github_metadata", github_metadata)
    setattr(server, "changelog_metadata", changelog_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the auto-update bot via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching auto-update bot",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "github_available": getattr(server, "github_metadata", {}).get("available"),
            "changelog_available": getattr(server, "changelog_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
