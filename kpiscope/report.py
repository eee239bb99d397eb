"""
Snapshot report assembly for Kpiscope.

Pipeline: local + GitHub collection (concurrent) -> KPIs -> report ->
trend against the previous snapshot -> artifacts on disk.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from .config import KpiscopeConfig
from .github import collect_github_signals
from .kpi import calculate_kpi_snapshot
from .local import collect_local_signals, to_iso
from .models import (
    DataSources,
    GithubActivity,
    GithubCollection,
    LocalCollection,
    Metadata,
    Signals,
    SnapshotBuildResult,
    SnapshotOptions,
    SnapshotReport,
    metric_values,
)
from .trend import build_snapshot_trend, fallback_trend
from .write import write_snapshot_report_artifacts

logger = logging.getLogger(__name__)


CI_PASS_RATE_UNAVAILABLE = "CI pass rate before merge is unavailable for this run."
MERGE_FRICTION_UNAVAILABLE = "Merge friction median is unavailable for this run."
TIME_TO_FIRST_FEATURE_UNAVAILABLE = "Time to first feature is unavailable for this run."
SETUP_HOURS_DEFERRED = "setup-hours-saved is deferred in v0 and intentionally omitted from this report."
NO_BASELINE_NOTE = (
    "Trend/delta is unavailable because no previous snapshot-report JSON file was found in the output path."
)


def dedupe_notes(notes: Iterable[str]) -> tuple[str, ...]:
    """Drop repeated notes, keeping first occurrences in order."""
    return tuple(dict.fromkeys(notes))


def assemble_report(
    repo_root: Path,
    options: SnapshotOptions,
    local: LocalCollection,
    github: GithubCollection,
    generated_at: str,
) -> SnapshotReport:
    """Compose collected signals and KPIs into a report with a baseline-less trend."""
    kpi = calculate_kpi_snapshot(
        github.workflow_runs_in_window,
        github.merged_pulls_in_window,
        local.repo_activity.first_commit_at,
        github.first_production_feature_merged_at,
    )

    notes = [*local.notes, *github.notes]
    if not github.enabled:
        notes.append(f"GitHub enrichment unavailable: {github.reason or 'unknown reason'}")
    if kpi.ci_pass_rate_before_merge_percent is None:
        notes.append(CI_PASS_RATE_UNAVAILABLE)
    if kpi.merge_friction_median_hours is None:
        notes.append(MERGE_FRICTION_UNAVAILABLE)
    if kpi.time_to_first_feature_hours is None:
        notes.append(TIME_TO_FIRST_FEATURE_UNAVAILABLE)
    notes.append(SETUP_HOURS_DEFERRED)

    signals = Signals(
        command_file_count=local.command_file_count,
        test_file_count=local.test_file_count,
        docs_present=local.docs_present,
        ci_config_present=local.ci_config_present,
        repo_activity=local.repo_activity,
        github_activity=GithubActivity(
            workflow_runs_evaluated=len(github.workflow_runs_in_window) if github.enabled else None,
            merged_pulls_evaluated=len(github.merged_pulls_in_window) if github.enabled else None,
        ),
    )

    return SnapshotReport(
        metadata=Metadata(
            generated_at=generated_at,
            repository_root=str(repo_root),
            branch=local.branch,
            window_days=options.window_days,
            data_sources=DataSources(
                local=True,
                github=github.enabled,
                repository=github.repository,
                github_reason=github.reason,
            ),
        ),
        signals=signals,
        kpi=kpi,
        trend=fallback_trend(metric_values(kpi, signals)),
        notes=dedupe_notes(notes),
    )


async def build_snapshot_report(
    repo_root: Path,
    options: SnapshotOptions,
    config: KpiscopeConfig | None = None,
    now: datetime | None = None,
) -> SnapshotBuildResult:
    """
    Build, diff and write a snapshot report for repo_root.

    Only filesystem errors while writing artifacts propagate; every
    collection failure is folded into the report as nulls and notes.
    """
    config = config or KpiscopeConfig()
    now = now or datetime.now(timezone.utc)
    generated_at = to_iso(now)

    local, github = await asyncio.gather(
        collect_local_signals(repo_root, options.window_days, config.layout, now=now),
        collect_github_signals(
            repo_root,
            options.window_days,
            options.repo_override,
            scaffold_commands=config.github.scaffold_commands,
            layout=config.layout,
            now=now,
        ),
    )
    if not github.enabled:
        logger.debug(f"GitHub enrichment disabled: {github.reason}")

    report = assemble_report(repo_root, options, local, github, generated_at)

    trend = await build_snapshot_trend(report, repo_root, options.output_path)
    notes = report.notes
    if trend.previous_snapshot is None:
        notes = dedupe_notes([*notes, NO_BASELINE_NOTE])
    report = dataclasses.replace(report, trend=trend, notes=notes)

    written = await write_snapshot_report_artifacts(report, repo_root, options.output_path, options.format)
    return SnapshotBuildResult(report=report, written_files=written)
