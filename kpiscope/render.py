"""
Report rendering for Kpiscope.

Renders a SnapshotReport as markdown (Jinja2 template) or JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, PackageLoader

from .models import TRACKED_METRICS, NumericDelta, SnapshotReport


METRIC_LABELS = {
    "timeToFirstFeatureHours": "Time to first feature (hours)",
    "ciPassRateBeforeMergePercent": "CI pass rate before merge (%)",
    "mergeFrictionMedianHours": "Merge friction median (hours)",
    "commitsInWindow": "Commits in window",
    "commandFileCount": "Command file count",
    "testFileCount": "Test file count",
}


def get_template_env() -> Environment:
    """Get Jinja2 environment with template loaders."""
    try:
        env = Environment(
            loader=PackageLoader("kpiscope", "templates"),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
    except Exception:
        template_dir = Path(__file__).parent / "templates"
        env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    env.filters["value"] = format_value
    env.filters["kpi"] = format_kpi
    env.filters["yesno"] = format_yes_no
    env.filters["delta"] = format_delta
    return env


def format_number(value: float | int) -> str:
    """Render 36.0 as 36 and 66.67 as 66.67."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_value(value: Any, missing: str = "n/a") -> str:
    if value is None:
        return missing
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


def format_kpi(value: float | None) -> str:
    return format_value(value, missing="pending data")


def format_yes_no(value: bool) -> str:
    return "yes" if value else "no"


def format_delta(delta: NumericDelta) -> str:
    """'+2 (up)', '-1.5 (down)', '0 (flat)' or 'n/a'."""
    if delta.delta is None:
        return "n/a"
    sign = "+" if delta.delta > 0 else ""
    return f"{sign}{format_number(delta.delta)} ({delta.direction})"


def build_render_context(report: SnapshotReport) -> dict[str, Any]:
    return {
        "report": report,
        "metadata": report.metadata,
        "sources": report.metadata.data_sources,
        "signals": report.signals,
        "kpi": report.kpi,
        "trend": report.trend,
        "deltas": [
            {"label": METRIC_LABELS[name], "delta": report.trend.deltas[name]}
            for name in TRACKED_METRICS
        ],
        "notes": report.notes,
    }


def render_snapshot_report_markdown(report: SnapshotReport) -> str:
    env = get_template_env()
    template = env.get_template("snapshot_report.md.j2")
    return template.render(**build_render_context(report))


def render_snapshot_report_json(report: SnapshotReport) -> str:
    return json.dumps(report.to_dict(), indent=2) + "\n"
