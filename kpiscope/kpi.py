"""
KPI calculations for Kpiscope.

Pure functions over collected signals. Each returns None when its input
is insufficient instead of raising.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

import numpy as np

from .models import Kpi, MergedPull, WorkflowRun


SECONDS_PER_HOUR = 3600


def round2(value: float) -> float:
    """Round to 2 decimals, halves toward positive infinity."""
    return math.floor(value * 100 + 0.5) / 100


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _hours_between(start: str | None, end: str | None) -> float | None:
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None or end_dt is None or end_dt < start_dt:
        return None
    return (end_dt - start_dt).total_seconds() / SECONDS_PER_HOUR


def calculate_ci_pass_rate_before_merge_percent(workflow_runs: list[WorkflowRun]) -> float | None:
    """Percentage of completed runs that concluded with success."""
    completed = [run for run in workflow_runs if run.conclusion is not None]
    if not completed:
        return None

    passing = sum(1 for run in completed if run.conclusion == "success")
    return round2(passing / len(completed) * 100)


def calculate_merge_friction_median_hours(merged_pulls: list[MergedPull]) -> float | None:
    """Median hours from PR creation to merge."""
    durations = [
        hours
        for hours in (_hours_between(pull.created_at, pull.merged_at) for pull in merged_pulls)
        if hours is not None
    ]
    if not durations:
        return None
    return round2(float(np.median(durations)))


def calculate_time_to_first_feature_hours(
    first_commit_at: str | None,
    first_production_feature_merged_at: str | None,
) -> float | None:
    """Hours from the first commit to the first non-scaffold feature merge."""
    hours = _hours_between(first_commit_at, first_production_feature_merged_at)
    return round2(hours) if hours is not None else None


def calculate_kpi_snapshot(
    workflow_runs: list[WorkflowRun],
    merged_pulls: list[MergedPull],
    first_commit_at: str | None,
    first_production_feature_merged_at: str | None,
) -> Kpi:
    return Kpi(
        time_to_first_feature_hours=calculate_time_to_first_feature_hours(
            first_commit_at, first_production_feature_merged_at
        ),
        ci_pass_rate_before_merge_percent=calculate_ci_pass_rate_before_merge_percent(workflow_runs),
        merge_friction_median_hours=calculate_merge_friction_median_hours(merged_pulls),
    )
