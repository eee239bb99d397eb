from __future__ import annotations

import asyncio
import json
import os
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest

from kpiscope.models import (
    DocsPresent,
    GithubCollection,
    LocalCollection,
    MergedPull,
    RepoActivity,
    SnapshotOptions,
    WorkflowRun,
)
from kpiscope.report import (
    NO_BASELINE_NOTE,
    SETUP_HOURS_DEFERRED,
    assemble_report,
    build_snapshot_report,
    dedupe_notes,
)


def _local(notes: list[str] | None = None) -> LocalCollection:
    return LocalCollection(
        branch="main",
        command_file_count=3,
        test_file_count=2,
        docs_present=DocsPresent(),
        ci_config_present=False,
        repo_activity=RepoActivity(total_commits=5, commits_in_window=2, first_commit_at="2026-01-01T00:00:00Z"),
        notes=notes or [],
    )


def _enabled_github() -> GithubCollection:
    return GithubCollection(
        enabled=True,
        repository="owner/repo",
        reason=None,
        workflow_runs_in_window=[WorkflowRun(conclusion="success", created_at="2026-01-03T00:00:00Z")],
        merged_pulls_in_window=[
            MergedPull(number=1, title="a", created_at="2026-01-02T00:00:00Z", merged_at="2026-01-02T04:00:00Z", url="x"),
        ],
        first_production_feature_merged_at="2026-01-02T00:00:00Z",
    )


def _keys(value):
    """Nested key structure of a JSON-like value."""
    if isinstance(value, dict):
        return {k: _keys(v) for k, v in value.items()}
    return None


def test_dedupe_notes_keeps_first_occurrence():
    assert dedupe_notes(["b", "a", "b", "c", "a"]) == ("b", "a", "c")


def test_assemble_with_github_disabled():
    github = GithubCollection.disabled("GitHub CLI (gh) is not installed.", "owner/repo")

    report = assemble_report(Path("/repo"), SnapshotOptions(), _local(), github, "2026-02-25T00:00:00.000Z")

    assert report.metadata.data_sources.github is False
    assert report.metadata.data_sources.repository == "owner/repo"
    assert report.signals.github_activity.workflow_runs_evaluated is None
    assert report.signals.github_activity.merged_pulls_evaluated is None
    assert report.kpi.ci_pass_rate_before_merge_percent is None
    assert report.notes == (
        "GitHub enrichment unavailable: GitHub CLI (gh) is not installed.",
        "CI pass rate before merge is unavailable for this run.",
        "Merge friction median is unavailable for this run.",
        "Time to first feature is unavailable for this run.",
        SETUP_HOURS_DEFERRED,
    )
    assert all(d.direction == "na" for d in report.trend.deltas.values())


def test_assemble_with_github_enabled():
    report = assemble_report(
        Path("/repo"), SnapshotOptions(), _local(), _enabled_github(), "2026-02-25T00:00:00.000Z"
    )

    assert report.signals.github_activity.workflow_runs_evaluated == 1
    assert report.signals.github_activity.merged_pulls_evaluated == 1
    assert report.kpi.ci_pass_rate_before_merge_percent == 100
    assert report.kpi.merge_friction_median_hours == 4
    assert report.kpi.time_to_first_feature_hours == 24
    assert report.notes == (SETUP_HOURS_DEFERRED,)


def test_field_set_is_the_same_with_and_without_github():
    enabled = assemble_report(Path("/repo"), SnapshotOptions(), _local(), _enabled_github(), "2026-02-25T00:00:00.000Z")
    disabled = assemble_report(
        Path("/repo"), SnapshotOptions(), _local(), GithubCollection.disabled("nope"), "2026-02-25T00:00:00.000Z"
    )

    assert _keys(enabled.to_dict()) == _keys(disabled.to_dict())


def test_assemble_dedupes_repeated_notes():
    github = GithubCollection.disabled("nope")
    github.notes = ["shared", "shared"]

    report = assemble_report(
        Path("/repo"), SnapshotOptions(), _local(notes=["shared"]), github, "2026-02-25T00:00:00.000Z"
    )

    assert report.notes.count("shared") == 1
    assert len(report.notes) == len(set(report.notes))


def test_build_in_empty_directory(tmp_path):
    options = SnapshotOptions(output_path="reports", repo_override="not-a-slug")

    result = asyncio.run(build_snapshot_report(tmp_path, options))

    report = result.report
    assert report.metadata.branch is None
    assert report.metadata.data_sources.github is False
    assert report.signals.command_file_count == 0
    assert report.signals.repo_activity.total_commits is None
    assert report.trend.previous_snapshot is None
    assert all(d.direction == "na" for d in report.trend.deltas.values())
    assert report.notes[-1] == NO_BASELINE_NOTE
    assert "Git metadata is unavailable in the current directory." in report.notes
    assert len(result.written_files) == 2

    json_path = next(p for p in result.written_files if p.endswith(".json"))
    assert json.loads(Path(json_path).read_text()) == report.to_dict()


def test_second_run_uses_first_as_baseline(tmp_path):
    (tmp_path / "src" / "commands").mkdir(parents=True)
    (tmp_path / "src" / "commands" / "deploy.ts").write_text("")
    options = SnapshotOptions(output_path="reports", format="both", repo_override="not-a-slug")

    first = asyncio.run(
        build_snapshot_report(tmp_path, options, now=datetime(2026, 2, 24, 9, 0, tzinfo=timezone.utc))
    )
    second = asyncio.run(
        build_snapshot_report(tmp_path, options, now=datetime(2026, 2, 25, 9, 0, tzinfo=timezone.utc))
    )

    trend = second.report.trend
    assert trend.previous_snapshot is not None
    assert trend.previous_snapshot.generated_at == first.report.metadata.generated_at
    assert trend.previous_snapshot.file_path == "reports/snapshot-report-2026-02-24T09-00-00.json"
    assert trend.deltas["commandFileCount"].direction == "flat"
    assert trend.deltas["commandFileCount"].delta == 0
    assert NO_BASELINE_NOTE not in second.report.notes
    assert len(list((tmp_path / "reports").iterdir())) == 4


def test_generated_at_format(tmp_path):
    options = SnapshotOptions(output_path="reports", format="json", repo_override="not-a-slug")

    result = asyncio.run(
        build_snapshot_report(tmp_path, options, now=datetime(2026, 2, 25, 10, 4, 5, 123000, tzinfo=timezone.utc))
    )

    assert result.report.metadata.generated_at == "2026-02-25T10:04:05.123Z"
    assert result.written_files[0].endswith("snapshot-report-2026-02-25T10-04-05.json")


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_pinned_now_sets_activity_window(tmp_path):
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": "Test",
        "GIT_AUTHOR_EMAIL": "test@example.com",
        "GIT_COMMITTER_NAME": "Test",
        "GIT_COMMITTER_EMAIL": "test@example.com",
        "GIT_AUTHOR_DATE": "2020-01-01T00:00:00+00:00",
        "GIT_COMMITTER_DATE": "2020-01-01T00:00:00+00:00",
    }
    subprocess.run(["git", "init"], cwd=tmp_path, env=env, check=True, capture_output=True)
    subprocess.run(
        ["git", "-c", "commit.gpgsign=false", "commit", "--allow-empty", "-m", "first"],
        cwd=tmp_path, env=env, check=True, capture_output=True,
    )
    options = SnapshotOptions(output_path="reports", format="json", repo_override="not-a-slug")

    result = asyncio.run(
        build_snapshot_report(tmp_path, options, now=datetime(2020, 1, 10, tzinfo=timezone.utc))
    )

    report = result.report
    assert report.metadata.generated_at == "2020-01-10T00:00:00.000Z"
    assert report.signals.repo_activity.total_commits == 1
    assert report.signals.repo_activity.commits_in_window == 1
