"""
GitHub enrichment for Kpiscope.

Reads workflow runs and merged pull requests through the GitHub CLI (`gh`),
which owns authentication. Collection is all-or-nothing: if any API query
fails, the whole GitHub result is disabled with the failure as its reason.

Supports:
- Repository slug resolution (--repo override or origin remote)
- Windowed workflow runs and merged PRs
- First production feature detection (bounded page scan)
"""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from .config import DEFAULT_SCAFFOLD_COMMANDS, LayoutConfig
from .kpi import parse_timestamp
from .local import to_iso, window_cutoff
from .models import GithubCollection, MergedPull, WorkflowRun
from .runner import DEFAULT_MAX_BYTES, command_succeeds_async, try_run, try_run_async

logger = logging.getLogger(__name__)


WINDOW_PER_PAGE = 100
FEATURE_SCAN_MAX_PAGES = 3
FEATURE_SCAN_PER_PAGE = 20
ACCEPT_HEADER = "Accept: application/vnd.github+json"

REPO_SLUG_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
REMOTE_URL_RE = re.compile(r"github\.com[:/]([^/]+)/([^/.]+)(?:\.git)?$", re.IGNORECASE)

INVALID_REPO_REASON = "Provided --repo value is invalid. Expected owner/name."
UNRESOLVED_REPO_REASON = "GitHub repository slug could not be resolved from origin remote."
GH_MISSING_REASON = "GitHub CLI (gh) is not installed."
GH_UNAUTHENTICATED_REASON = "GitHub CLI is not authenticated for github.com."


class GitHubAPIError(Exception):
    """Error from a `gh api` call."""
    pass


def is_valid_repo_slug(value: str) -> bool:
    """Check that value looks like owner/name."""
    return bool(REPO_SLUG_RE.match(value))


def parse_slug_from_remote(remote_url: str) -> str | None:
    """
    Extract owner/name from a GitHub remote URL.

    Handles both git@github.com:owner/name.git and
    https://github.com/owner/name(.git) shapes.
    """
    match = REMOTE_URL_RE.search(remote_url.strip())
    if not match:
        return None
    slug = f"{match.group(1)}/{match.group(2)}"
    return slug if is_valid_repo_slug(slug) else None


class GhCli:
    """Thin client over `gh api` for the endpoints Kpiscope reads."""

    def __init__(self, cwd: Path, max_bytes: int = DEFAULT_MAX_BYTES):
        self.cwd = cwd
        self.max_bytes = max_bytes

    async def is_installed(self) -> bool:
        return await command_succeeds_async(["gh", "--version"], self.cwd)

    async def is_authenticated(self) -> bool:
        return await command_succeeds_async(["gh", "auth", "status", "-h", "github.com"], self.cwd)

    def get_json(self, endpoint: str) -> Any:
        """GET an API path and decode the JSON body."""
        output = try_run(["gh", "api", "-H", ACCEPT_HEADER, endpoint], self.cwd, self.max_bytes)
        if output is None:
            raise GitHubAPIError(f"gh api {endpoint} failed")
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise GitHubAPIError(f"gh api {endpoint} returned invalid JSON: {e}")

    def list_workflow_runs(self, repo: str, since: datetime) -> list[WorkflowRun]:
        """Completed pull_request workflow runs created at or after since."""
        data = self.get_json(
            f"repos/{repo}/actions/runs?event=pull_request&status=completed&per_page={WINDOW_PER_PAGE}"
        )
        items = data.get("workflow_runs") if isinstance(data, dict) else None

        runs = []
        for item in items or []:
            created_at = item.get("created_at")
            if not isinstance(created_at, str):
                continue
            created_dt = parse_timestamp(created_at)
            if created_dt is None or created_dt < since:
                continue
            runs.append(WorkflowRun(conclusion=item.get("conclusion"), created_at=created_at))
        return runs

    def list_merged_pulls(self, repo: str, since: datetime) -> list[MergedPull]:
        """Pulls merged at or after since, from the most recently updated closed PRs."""
        items = self._list(
            f"repos/{repo}/pulls?state=closed&sort=updated&direction=desc&per_page={WINDOW_PER_PAGE}"
        )

        pulls = []
        for item in items:
            pull = self._parse_merged_pull(item)
            if pull is None:
                continue
            merged_dt = parse_timestamp(pull.merged_at)
            if merged_dt is None or merged_dt < since:
                continue
            pulls.append(pull)
        return pulls

    def list_pulls_page(self, repo: str, page: int, per_page: int = FEATURE_SCAN_PER_PAGE) -> list[dict[str, Any]]:
        """One page of closed PRs, oldest first."""
        return self._list(
            f"repos/{repo}/pulls?state=closed&sort=created&direction=asc&per_page={per_page}&page={page}"
        )

    def get_pull_files(self, repo: str, number: int) -> list[str]:
        """Paths changed by a pull request (first page only)."""
        items = self._list(f"repos/{repo}/pulls/{number}/files?per_page={WINDOW_PER_PAGE}")
        return [item["filename"] for item in items if isinstance(item.get("filename"), str)]

    def _list(self, endpoint: str) -> list[dict[str, Any]]:
        data = self.get_json(endpoint)
        if not isinstance(data, list):
            raise GitHubAPIError(f"gh api {endpoint} did not return a list")
        return [item for item in data if isinstance(item, dict)]

    def _parse_merged_pull(self, data: dict[str, Any]) -> MergedPull | None:
        """Parse raw PR data, or None if it was closed without merging."""
        merged_at = data.get("merged_at")
        if not merged_at:
            return None
        return MergedPull(
            number=data.get("number", 0),
            title=data.get("title", ""),
            created_at=data.get("created_at", ""),
            merged_at=merged_at,
            url=data.get("html_url", ""),
        )


def extract_command_names(paths: Iterable[str], layout: LayoutConfig) -> set[str]:
    """Command names touched by a set of changed paths."""
    prefix = layout.commands_dir.strip("/") + "/"
    extension = layout.command_extension
    return {
        posixpath.basename(path)[: -len(extension)]
        for path in paths
        if path.startswith(prefix) and path.endswith(extension)
    }


def find_first_production_feature(
    client: GhCli,
    repo: str,
    scaffold_commands: Iterable[str] = DEFAULT_SCAFFOLD_COMMANDS,
    layout: LayoutConfig | None = None,
) -> tuple[str | None, list[str]]:
    """
    Find when the first PR touching a non-scaffold command was merged.

    Scans at most FEATURE_SCAN_MAX_PAGES pages of FEATURE_SCAN_PER_PAGE
    closed PRs, oldest first. This is a heuristic: a feature merged after
    the scanned window is not found.

    Returns:
        Tuple of (merged_at or None, notes)
    """
    layout = layout or LayoutConfig()
    scaffold = set(scaffold_commands)
    scanned = 0

    for page in range(1, FEATURE_SCAN_MAX_PAGES + 1):
        pulls = client.list_pulls_page(repo, page)
        if not pulls:
            break

        for pull in pulls:
            merged_at = pull.get("merged_at")
            if not merged_at:
                continue

            scanned += 1
            changed = extract_command_names(client.get_pull_files(repo, pull["number"]), layout)
            if changed - scaffold:
                return merged_at, []

    return None, [
        "No merged pull request with non-scaffold command changes was found in the scanned history window.",
        f"First-feature detection scanned up to {scanned} merged pull requests "
        f"across {FEATURE_SCAN_MAX_PAGES} pages.",
    ]


async def resolve_repository_slug(repo_root: Path, repo_override: str | None = None) -> str | None:
    """Resolve owner/name from the override or the origin remote."""
    if repo_override:
        return repo_override if is_valid_repo_slug(repo_override) else None

    remote_url = await try_run_async(["git", "remote", "get-url", "origin"], repo_root)
    if not remote_url:
        return None
    return parse_slug_from_remote(remote_url)


async def collect_github_signals(
    repo_root: Path,
    window_days: int,
    repo_override: str | None = None,
    scaffold_commands: Iterable[str] = DEFAULT_SCAFFOLD_COMMANDS,
    layout: LayoutConfig | None = None,
    client: GhCli | None = None,
    now: datetime | None = None,
) -> GithubCollection:
    """
    Collect GitHub activity for the repository at repo_root.

    Never raises: every failure becomes a disabled collection with a reason.
    """
    since = window_cutoff(window_days, now)

    repository = await resolve_repository_slug(repo_root, repo_override)
    if not repository:
        return GithubCollection.disabled(INVALID_REPO_REASON if repo_override else UNRESOLVED_REPO_REASON)

    client = client or GhCli(repo_root)

    if not await client.is_installed():
        return GithubCollection.disabled(GH_MISSING_REASON, repository)

    if not await client.is_authenticated():
        return GithubCollection.disabled(GH_UNAUTHENTICATED_REASON, repository)

    logger.debug("Collecting GitHub activity for %s since %s", repository, to_iso(since))

    try:
        runs, pulls, (first_feature_at, notes) = await asyncio.gather(
            asyncio.to_thread(client.list_workflow_runs, repository, since),
            asyncio.to_thread(client.list_merged_pulls, repository, since),
            asyncio.to_thread(
                find_first_production_feature, client, repository, list(scaffold_commands), layout
            ),
        )
    except Exception as e:
        logger.warning(f"GitHub enrichment failed for {repository}: {e}")
        return GithubCollection.disabled(f"GitHub API queries failed: {e}", repository)

    return GithubCollection(
        enabled=True,
        repository=repository,
        reason=None,
        workflow_runs_in_window=runs,
        merged_pulls_in_window=pulls,
        first_production_feature_merged_at=first_feature_at,
        notes=notes,
    )
