from __future__ import annotations

import pytest

from kpiscope.models import (
    DataSources,
    DocsPresent,
    GithubActivity,
    Kpi,
    Metadata,
    RepoActivity,
    Signals,
    SnapshotReport,
    metric_values,
)
from kpiscope.trend import fallback_trend


@pytest.fixture(autouse=True)
def _isolate_git(monkeypatch, tmp_path):
    # Keep git from discovering a repository above the test directory
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))


@pytest.fixture
def make_report():
    def _make(
        generated_at: str = "2026-02-25T00:00:00.000Z",
        command_count: int | None = 4,
        ci_pass_rate: float | None = 95,
        notes: tuple[str, ...] = (),
    ) -> SnapshotReport:
        signals = Signals(
            command_file_count=command_count,
            test_file_count=10,
            docs_present=DocsPresent(architecture=True, metrics_spec=True, executive_one_pager=True),
            ci_config_present=True,
            repo_activity=RepoActivity(
                total_commits=100,
                commits_in_window=8,
                first_commit_at="2026-01-01T00:00:00Z",
            ),
            github_activity=GithubActivity(workflow_runs_evaluated=0, merged_pulls_evaluated=0),
        )
        kpi = Kpi(
            time_to_first_feature_hours=24,
            ci_pass_rate_before_merge_percent=ci_pass_rate,
            merge_friction_median_hours=12,
        )
        return SnapshotReport(
            metadata=Metadata(
                generated_at=generated_at,
                repository_root="/tmp/repo",
                branch="main",
                window_days=30,
                data_sources=DataSources(
                    local=True,
                    github=False,
                    repository="owner/repo",
                    github_reason="auth unavailable",
                ),
            ),
            signals=signals,
            kpi=kpi,
            trend=fallback_trend(metric_values(kpi, signals)),
            notes=notes,
        )

    return _make
