"""
Snapshot artifact writer for Kpiscope.

Each run writes `snapshot-report-<STEM>.json` and/or `.md` under the output
directory, where STEM is the generation timestamp with ':' replaced by '-'
and everything from the sub-second part onward dropped.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from .models import SnapshotFormat, SnapshotReport
from .render import render_snapshot_report_json, render_snapshot_report_markdown


FILE_PREFIX = "snapshot-report-"


def build_file_stem(generated_at: str) -> str:
    """'2026-02-25T10:04:05.123Z' -> '2026-02-25T10-04-05'."""
    return generated_at.replace(":", "-").split(".", 1)[0]


def write_snapshot_report_artifacts_sync(
    report: SnapshotReport,
    repo_root: Path,
    output_path: str,
    fmt: SnapshotFormat,
) -> list[str]:
    """Write the report artifacts and return their absolute paths.

    Filesystem errors propagate to the caller.
    """
    target_dir = (repo_root / output_path).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    stem = FILE_PREFIX + build_file_stem(report.metadata.generated_at)
    written: list[str] = []

    if fmt in ("json", "both"):
        json_path = target_dir / f"{stem}.json"
        json_path.write_text(render_snapshot_report_json(report), encoding="utf-8")
        written.append(str(json_path))

    if fmt in ("markdown", "both"):
        markdown_path = target_dir / f"{stem}.md"
        markdown_path.write_text(render_snapshot_report_markdown(report), encoding="utf-8")
        written.append(str(markdown_path))

    return written


async def write_snapshot_report_artifacts(
    report: SnapshotReport,
    repo_root: Path,
    output_path: str,
    fmt: SnapshotFormat,
) -> list[str]:
    return await asyncio.to_thread(
        write_snapshot_report_artifacts_sync, report, repo_root, output_path, fmt
    )
