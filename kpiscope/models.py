"""
Data model for Kpiscope snapshot reports.

A SnapshotReport is assembled once per run, serialized, and never
mutated afterwards. The JSON form uses camelCase keys; it is also the
read format for trend baselines, so `from_dict` tolerates old or partial
files (missing blocks read as null/empty).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping


SnapshotFormat = Literal["markdown", "json", "both"]
Direction = Literal["up", "down", "flat", "na"]

SNAPSHOT_FORMATS = ("markdown", "json", "both")

# Order matters: it is the order deltas are serialized and rendered in
TRACKED_METRICS = (
    "timeToFirstFeatureHours",
    "ciPassRateBeforeMergePercent",
    "mergeFrictionMedianHours",
    "commitsInWindow",
    "commandFileCount",
    "testFileCount",
)


def _number(value: Any) -> float | int | None:
    """Coerce a JSON value to a finite number, or None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _int(value: Any) -> int | None:
    number = _number(value)
    if number is None:
        return None
    return int(number)


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class SnapshotOptions:
    """Options for a single snapshot-report run."""
    output_path: str = "docs/reports"
    format: SnapshotFormat = "both"
    window_days: int = 30
    repo_override: str | None = None


@dataclass(frozen=True)
class DataSources:
    local: bool
    github: bool
    repository: str | None
    github_reason: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "local": self.local,
            "github": self.github,
            "repository": self.repository,
            "githubReason": self.github_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataSources:
        return cls(
            local=bool(data.get("local", True)),
            github=bool(data.get("github", False)),
            repository=_str(data.get("repository")),
            github_reason=_str(data.get("githubReason")),
        )


@dataclass(frozen=True)
class Metadata:
    generated_at: str
    repository_root: str
    branch: str | None
    window_days: int
    data_sources: DataSources

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "repositoryRoot": self.repository_root,
            "branch": self.branch,
            "windowDays": self.window_days,
            "dataSources": self.data_sources.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Metadata:
        return cls(
            generated_at=_str(data.get("generatedAt")) or "",
            repository_root=_str(data.get("repositoryRoot")) or "",
            branch=_str(data.get("branch")),
            window_days=_int(data.get("windowDays")) or 0,
            data_sources=DataSources.from_dict(_dict(data.get("dataSources"))),
        )


@dataclass(frozen=True)
class DocsPresent:
    architecture: bool = False
    metrics_spec: bool = False
    executive_one_pager: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "architecture": self.architecture,
            "metricsSpec": self.metrics_spec,
            "executiveOnePager": self.executive_one_pager,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocsPresent:
        return cls(
            architecture=bool(data.get("architecture", False)),
            metrics_spec=bool(data.get("metricsSpec", False)),
            executive_one_pager=bool(data.get("executiveOnePager", False)),
        )


@dataclass(frozen=True)
class RepoActivity:
    total_commits: int | None = None
    commits_in_window: int | None = None
    first_commit_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCommits": self.total_commits,
            "commitsInWindow": self.commits_in_window,
            "firstCommitAt": self.first_commit_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoActivity:
        return cls(
            total_commits=_int(data.get("totalCommits")),
            commits_in_window=_int(data.get("commitsInWindow")),
            first_commit_at=_str(data.get("firstCommitAt")),
        )


@dataclass(frozen=True)
class GithubActivity:
    workflow_runs_evaluated: int | None = None
    merged_pulls_evaluated: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflowRunsEvaluated": self.workflow_runs_evaluated,
            "mergedPullsEvaluated": self.merged_pulls_evaluated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GithubActivity:
        return cls(
            workflow_runs_evaluated=_int(data.get("workflowRunsEvaluated")),
            merged_pulls_evaluated=_int(data.get("mergedPullsEvaluated")),
        )


@dataclass(frozen=True)
class Signals:
    command_file_count: int | None
    test_file_count: int | None
    docs_present: DocsPresent
    ci_config_present: bool
    repo_activity: RepoActivity
    github_activity: GithubActivity

    def to_dict(self) -> dict[str, Any]:
        return {
            "commandFileCount": self.command_file_count,
            "testFileCount": self.test_file_count,
            "docsPresent": self.docs_present.to_dict(),
            "ciConfigPresent": self.ci_config_present,
            "repoActivity": self.repo_activity.to_dict(),
            "githubActivity": self.github_activity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Signals:
        return cls(
            command_file_count=_int(data.get("commandFileCount")),
            test_file_count=_int(data.get("testFileCount")),
            docs_present=DocsPresent.from_dict(_dict(data.get("docsPresent"))),
            ci_config_present=bool(data.get("ciConfigPresent", False)),
            repo_activity=RepoActivity.from_dict(_dict(data.get("repoActivity"))),
            github_activity=GithubActivity.from_dict(_dict(data.get("githubActivity"))),
        )


@dataclass(frozen=True)
class Kpi:
    time_to_first_feature_hours: float | None = None
    ci_pass_rate_before_merge_percent: float | None = None
    merge_friction_median_hours: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeToFirstFeatureHours": self.time_to_first_feature_hours,
            "ciPassRateBeforeMergePercent": self.ci_pass_rate_before_merge_percent,
            "mergeFrictionMedianHours": self.merge_friction_median_hours,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Kpi:
        return cls(
            time_to_first_feature_hours=_number(data.get("timeToFirstFeatureHours")),
            ci_pass_rate_before_merge_percent=_number(data.get("ciPassRateBeforeMergePercent")),
            merge_friction_median_hours=_number(data.get("mergeFrictionMedianHours")),
        )


@dataclass(frozen=True)
class NumericDelta:
    previous: float | int | None
    current: float | int | None
    delta: float | int | None
    direction: Direction

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous": self.previous,
            "current": self.current,
            "delta": self.delta,
            "direction": self.direction,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NumericDelta:
        direction = data.get("direction")
        return cls(
            previous=_number(data.get("previous")),
            current=_number(data.get("current")),
            delta=_number(data.get("delta")),
            direction=direction if direction in ("up", "down", "flat", "na") else "na",
        )


@dataclass(frozen=True)
class PreviousSnapshot:
    generated_at: str
    file_path: str

    def to_dict(self) -> dict[str, Any]:
        return {"generatedAt": self.generated_at, "filePath": self.file_path}


@dataclass(frozen=True)
class Trend:
    """Comparison against the most recent persisted snapshot."""
    previous_snapshot: PreviousSnapshot | None
    deltas: Mapping[str, NumericDelta]

    def __post_init__(self):
        # Reports are not mutated after assembly
        object.__setattr__(self, "deltas", MappingProxyType(dict(self.deltas)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "previousSnapshot": self.previous_snapshot.to_dict() if self.previous_snapshot else None,
            "deltas": {name: self.deltas[name].to_dict() for name in TRACKED_METRICS},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Trend:
        previous = _dict(data.get("previousSnapshot"))
        deltas_data = _dict(data.get("deltas"))
        return cls(
            previous_snapshot=PreviousSnapshot(
                generated_at=_str(previous.get("generatedAt")) or "",
                file_path=_str(previous.get("filePath")) or "",
            ) if previous else None,
            deltas={
                name: NumericDelta.from_dict(_dict(deltas_data.get(name)))
                for name in TRACKED_METRICS
            },
        )


def metric_values(kpi: Kpi, signals: Signals) -> dict[str, float | int | None]:
    """Current values of the tracked trend metrics."""
    return {
        "timeToFirstFeatureHours": kpi.time_to_first_feature_hours,
        "ciPassRateBeforeMergePercent": kpi.ci_pass_rate_before_merge_percent,
        "mergeFrictionMedianHours": kpi.merge_friction_median_hours,
        "commitsInWindow": signals.repo_activity.commits_in_window,
        "commandFileCount": signals.command_file_count,
        "testFileCount": signals.test_file_count,
    }


@dataclass(frozen=True)
class SnapshotReport:
    """One immutable, timestamped measurement of delivery signals."""
    metadata: Metadata
    signals: Signals
    kpi: Kpi
    trend: Trend
    notes: tuple[str, ...] = ()

    def metric_values(self) -> dict[str, float | int | None]:
        return metric_values(self.kpi, self.signals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "signals": self.signals.to_dict(),
            "kpi": self.kpi.to_dict(),
            "trend": self.trend.to_dict(),
            "notes": list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotReport:
        """Parse a report, tolerating files written before trend tracking existed."""
        notes = data.get("notes")
        return cls(
            metadata=Metadata.from_dict(_dict(data.get("metadata"))),
            signals=Signals.from_dict(_dict(data.get("signals"))),
            kpi=Kpi.from_dict(_dict(data.get("kpi"))),
            trend=Trend.from_dict(_dict(data.get("trend"))),
            notes=tuple(n for n in notes if isinstance(n, str)) if isinstance(notes, list) else (),
        )


@dataclass(frozen=True)
class WorkflowRun:
    """A completed pull-request-triggered workflow run."""
    conclusion: str | None
    created_at: str


@dataclass(frozen=True)
class MergedPull:
    """A merged pull request."""
    number: int
    title: str
    created_at: str
    merged_at: str
    url: str


@dataclass
class LocalCollection:
    """Signals gathered from the local checkout."""
    branch: str | None
    command_file_count: int
    test_file_count: int
    docs_present: DocsPresent
    ci_config_present: bool
    repo_activity: RepoActivity
    notes: list[str] = field(default_factory=list)


@dataclass
class GithubCollection:
    """Signals gathered from the GitHub API, or the reason they are missing."""
    enabled: bool
    repository: str | None
    reason: str | None
    workflow_runs_in_window: list[WorkflowRun] = field(default_factory=list)
    merged_pulls_in_window: list[MergedPull] = field(default_factory=list)
    first_production_feature_merged_at: str | None = None
    notes: list[str] = field(default_factory=list)

    @classmethod
    def disabled(cls, reason: str, repository: str | None = None) -> GithubCollection:
        return cls(enabled=False, repository=repository, reason=reason)


@dataclass
class SnapshotBuildResult:
    report: SnapshotReport
    written_files: list[str] = field(default_factory=list)
