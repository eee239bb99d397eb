"""
Trend computation for Kpiscope.

The previous snapshot is the newest `snapshot-report-*.json` in the output
directory, by filename. File stems are derived from the generation
timestamp, so lexicographic order is chronological. Files that fail to
parse are skipped so a stale or partial artifact never blocks a new report.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from .kpi import round2
from .models import TRACKED_METRICS, NumericDelta, PreviousSnapshot, SnapshotReport, Trend

logger = logging.getLogger(__name__)


SNAPSHOT_FILE_RE = re.compile(r"^snapshot-report-.*\.json$")


@dataclass
class SnapshotFile:
    """A persisted snapshot and where it was read from."""
    path: Path
    report: SnapshotReport


def calculate_numeric_delta(
    current: float | int | None,
    previous: float | int | None,
) -> NumericDelta:
    """Delta between two metric values; direction is 'na' if either is missing."""
    if current is None or previous is None:
        return NumericDelta(previous=previous, current=current, delta=None, direction="na")

    delta = round2(current - previous)
    if delta == 0:
        direction = "flat"
    elif delta > 0:
        direction = "up"
    else:
        direction = "down"
    return NumericDelta(previous=previous, current=current, delta=delta, direction=direction)


def fallback_trend(current: dict[str, float | int | None]) -> Trend:
    """Trend with no baseline: every metric is 'na'."""
    return Trend(
        previous_snapshot=None,
        deltas={name: calculate_numeric_delta(current[name], None) for name in TRACKED_METRICS},
    )


def load_snapshot_file(path: Path) -> SnapshotFile | None:
    """Load a snapshot JSON file, or None if it is not a usable baseline."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Skipping unreadable snapshot %s: %s", path, e)
        return None

    if not isinstance(data, dict):
        return None
    metadata = data.get("metadata")
    generated_at = metadata.get("generatedAt") if isinstance(metadata, dict) else None
    if not isinstance(generated_at, str) or not generated_at.strip():
        logger.debug("Skipping snapshot without generatedAt: %s", path)
        return None

    return SnapshotFile(path=path, report=SnapshotReport.from_dict(data))


def _candidate_files(output_dir: Path) -> list[Path]:
    try:
        names = os.listdir(output_dir)
    except OSError:
        return []
    return [output_dir / name for name in sorted(names, reverse=True) if SNAPSHOT_FILE_RE.match(name)]


def find_latest_snapshot(output_dir: Path) -> SnapshotFile | None:
    """Newest loadable snapshot in output_dir."""
    for path in _candidate_files(output_dir):
        snapshot = load_snapshot_file(path)
        if snapshot is not None:
            return snapshot
    return None


def list_snapshots(output_dir: Path, limit: int | None = None) -> list[SnapshotFile]:
    """All loadable snapshots in output_dir, newest first."""
    snapshots = []
    for path in _candidate_files(output_dir):
        snapshot = load_snapshot_file(path)
        if snapshot is None:
            continue
        snapshots.append(snapshot)
        if limit and len(snapshots) >= limit:
            break
    return snapshots


def _display_path(path: Path, repo_root: Path) -> str:
    try:
        return str(path.relative_to(repo_root)) or path.name
    except ValueError:
        return str(path)


def compare_snapshots(report: SnapshotReport, baseline: SnapshotFile, repo_root: Path) -> Trend:
    current = report.metric_values()
    previous = baseline.report.metric_values()
    return Trend(
        previous_snapshot=PreviousSnapshot(
            generated_at=baseline.report.metadata.generated_at,
            file_path=_display_path(baseline.path, repo_root),
        ),
        deltas={
            name: calculate_numeric_delta(current[name], previous[name])
            for name in TRACKED_METRICS
        },
    )


async def build_snapshot_trend(report: SnapshotReport, repo_root: Path, output_path: str) -> Trend:
    """Compare report against the latest snapshot under repo_root/output_path."""
    output_dir = (repo_root / output_path).resolve()
    baseline = await asyncio.to_thread(find_latest_snapshot, output_dir)
    if baseline is None:
        return fallback_trend(report.metric_values())
    return compare_snapshots(report, baseline, repo_root.resolve())
