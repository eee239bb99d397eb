from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from kpiscope.cli import main
from kpiscope.models import GithubCollection


async def _no_github(*args, **kwargs):
    return GithubCollection.disabled("GitHub CLI (gh) is not installed.")


@pytest.fixture
def repo(tmp_path):
    with patch("kpiscope.cli.get_repo_root", return_value=tmp_path), \
         patch("kpiscope.report.collect_github_signals", side_effect=_no_github):
        yield tmp_path


def test_cli_help_lists_commands():
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "snapshot-report" in result.output
    assert "history" in result.output
    assert "init" in result.output
    assert "metrics" in result.output


@pytest.mark.parametrize(
    "args",
    [
        ["--format", "html"],
        ["--window-days", "0"],
        ["--window-days", "3651"],
        ["--repo", "not-a-slug"],
    ],
)
def test_snapshot_report_rejects_invalid_options(repo, args):
    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report", *args])
    assert result.exit_code == 2
    assert not (repo / "docs" / "reports").exists()


def test_snapshot_report_writes_artifacts(repo):
    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report"])

    assert result.exit_code == 0, result.output
    assert "Snapshot report generated in" in result.output
    assert "GitHub enrichment: disabled" in result.output
    assert "Trend baseline: none" in result.output

    written = sorted(p.name for p in (repo / "docs" / "reports").iterdir())
    assert len(written) == 2
    assert written[0].startswith("snapshot-report-") and written[0].endswith(".json")
    assert written[1].endswith(".md")
    assert f"- docs/reports/{written[0]}" in result.output


def test_snapshot_report_json_output(repo):
    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report", "--format", "json", "--path", "out", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["metadata"]["dataSources"]["github"] is False
    assert data["metadata"]["dataSources"]["githubReason"] == "GitHub CLI (gh) is not installed."
    assert data["trend"]["previousSnapshot"] is None
    assert [p.suffix for p in (repo / "out").iterdir()] == [".json"]


def test_snapshot_report_uses_config_defaults(repo):
    (repo / "kpiscope.yml").write_text("snapshot:\n  output_path: kpi\n  format: markdown\n")

    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report"])

    assert result.exit_code == 0, result.output
    assert [p.suffix for p in (repo / "kpi").iterdir()] == [".md"]


def test_snapshot_report_invalid_config(repo):
    (repo / "kpiscope.yml").write_text("snapshot:\n  format: html\n")

    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report"])

    assert result.exit_code == 1
    assert "Invalid kpiscope.yml" in result.output


def test_snapshot_report_config_section_not_a_mapping(repo):
    (repo / "kpiscope.yml").write_text("snapshot: [1, 2]\n")

    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report"])

    assert result.exit_code == 1
    assert not isinstance(result.exception, AttributeError)
    assert "Invalid kpiscope.yml: snapshot must be a mapping" in result.output


def test_snapshot_report_write_failure(repo):
    (repo / "blocked").write_text("")

    runner = CliRunner()
    result = runner.invoke(main, ["snapshot-report", "--path", "blocked/reports"])

    assert result.exit_code == 1
    assert "Snapshot report generation failed." in result.output
    assert "Details:" in result.output


def test_metrics_snapshot_alias(repo):
    runner = CliRunner()
    result = runner.invoke(main, ["metrics", "snapshot", "--format", "json"])

    assert result.exit_code == 0, result.output
    assert "Deprecated" in result.output
    assert "Trend baseline: none" in result.output
    assert len(list((repo / "docs" / "reports").glob("snapshot-report-*.json"))) == 1


def test_history_empty(repo):
    runner = CliRunner()
    result = runner.invoke(main, ["history"])

    assert result.exit_code == 0
    assert "No snapshots found" in result.output


def test_history_lists_written_snapshots(repo):
    runner = CliRunner()
    runner.invoke(main, ["snapshot-report", "--format", "json"])

    result = runner.invoke(main, ["history", "--json"])

    assert result.exit_code == 0, result.output
    entries = json.loads(result.output)
    assert len(entries) == 1
    assert entries[0]["file"].startswith("docs/reports/snapshot-report-")
    assert entries[0]["github"] is False
    assert entries[0]["kpi"]["ciPassRateBeforeMergePercent"] is None


def test_init_creates_config(repo):
    runner = CliRunner()
    result = runner.invoke(main, ["init"])

    assert result.exit_code == 0
    assert (repo / "kpiscope.yml").exists()
    assert "scaffold_commands" in (repo / "kpiscope.yml").read_text()


def test_init_skips_existing_config(repo):
    (repo / "kpiscope.yml").write_text("snapshot: {}\n")

    runner = CliRunner()
    result = runner.invoke(main, ["init"])

    assert "Skipped" in result.output
    assert (repo / "kpiscope.yml").read_text() == "snapshot: {}\n"
