"""
Local repository signals for Kpiscope.

Reads git metadata and counts files on disk:
- Current branch, total commits, commits in window, first commit timestamp
- Command source and test file counts
- Presence of architecture/metrics/executive docs and CI config

Every probe is best-effort; a failing probe yields None or zero.
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .config import LayoutConfig
from .models import DocsPresent, LocalCollection, RepoActivity
from .runner import try_run_async


GIT_UNAVAILABLE_NOTE = "Git metadata is unavailable in the current directory."


def window_cutoff(window_days: int, now: datetime | None = None) -> datetime:
    """Start of the trailing activity window, in UTC."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=window_days)


def to_iso(dt: datetime) -> str:
    """Format a UTC datetime as ISO-8601 with milliseconds and a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_count(value: str | None) -> int | None:
    """Parse git's numeric output, or None if it is missing or not a number."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def count_files(base_path: Path, extension: str) -> int:
    """
    Recursively count files ending in extension under base_path.

    Missing or unreadable directories contribute zero.
    """
    total = 0
    for _dirpath, _dirnames, filenames in os.walk(base_path):
        total += sum(1 for name in filenames if name.endswith(extension))
    return total


async def _git(repo_root: Path, *args: str) -> str | None:
    return await try_run_async(["git", *args], repo_root)


async def collect_local_signals(
    repo_root: Path,
    window_days: int,
    layout: LayoutConfig | None = None,
    now: datetime | None = None,
) -> LocalCollection:
    """Collect git metadata, file counts and doc presence for repo_root.

    The activity window ends at now (default: current time).
    """
    layout = layout or LayoutConfig()
    cutoff_iso = to_iso(window_cutoff(window_days, now))

    (
        branch,
        total_commits_raw,
        commits_in_window_raw,
        first_commit_at,
        command_file_count,
        test_file_count,
    ) = await asyncio.gather(
        _git(repo_root, "rev-parse", "--abbrev-ref", "HEAD"),
        _git(repo_root, "rev-list", "--count", "HEAD"),
        _git(repo_root, "rev-list", "--count", f"--since={cutoff_iso}", "HEAD"),
        _git(repo_root, "log", "--reverse", "--format=%cI"),
        asyncio.to_thread(count_files, repo_root / layout.commands_dir, layout.command_extension),
        asyncio.to_thread(count_files, repo_root / layout.tests_dir, layout.test_extension),
    )

    # --reverse lists oldest first; --max-count would be applied before it
    if first_commit_at:
        first_commit_at = first_commit_at.splitlines()[0].strip() or None

    notes: list[str] = []
    if branch is None:
        notes.append(GIT_UNAVAILABLE_NOTE)

    return LocalCollection(
        branch=branch,
        command_file_count=command_file_count,
        test_file_count=test_file_count,
        docs_present=DocsPresent(
            architecture=(repo_root / layout.docs.architecture).exists(),
            metrics_spec=(repo_root / layout.docs.metrics_spec).exists(),
            executive_one_pager=(repo_root / layout.docs.executive_one_pager).exists(),
        ),
        ci_config_present=(repo_root / layout.ci_config).exists(),
        repo_activity=RepoActivity(
            total_commits=parse_count(total_commits_raw),
            commits_in_window=parse_count(commits_in_window_raw),
            first_commit_at=first_commit_at,
        ),
        notes=notes,
    )
