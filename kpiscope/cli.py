"""
Kpiscope CLI - Delivery KPI snapshots from git history and GitHub activity.

Commands:
    init              - Write a sample kpiscope.yml
    snapshot-report   - Generate a snapshot report (JSON + markdown)
    metrics snapshot  - Deprecated alias for snapshot-report
    history           - List previously written snapshots
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
from pathlib import Path

import click
import yaml
from dotenv import load_dotenv

from . import __version__
from .config import CONFIG_FILENAME, KpiscopeConfig, get_repo_root

# Load .env so GH_TOKEN / GITHUB_TOKEN reach the gh CLI
load_dotenv()
load_dotenv(get_repo_root() / ".env")

from .github import is_valid_repo_slug
from .models import SNAPSHOT_FORMATS, SnapshotOptions
from .render import format_kpi, format_value
from .report import build_snapshot_report
from .trend import list_snapshots


SAMPLE_CONFIG = """\
# Kpiscope Configuration

# Defaults for `kpiscope snapshot-report` (CLI flags override these)
snapshot:
  output_path: docs/reports  # Where snapshot-report-*.json/.md are written
  format: both               # markdown, json, both
  window_days: 30            # Trailing activity window (1-3650)
  # repo: owner/name         # Override the origin remote for GitHub lookups

# Where local signals are read from
layout:
  commands_dir: src/commands
  command_extension: .ts
  tests_dir: tests
  test_extension: .ts
  docs:
    architecture: docs/architecture.md
    metrics_spec: docs/metrics-dashboard-spec.md
    executive_one_pager: docs/executive-one-pager.md
  ci_config: .github/workflows/ci.yml

# GitHub enrichment (requires an authenticated `gh` CLI)
github:
  # Commands that only scaffold the project; PRs touching nothing else
  # do not count as the first production feature
  scaffold_commands:
    - init
    - generate-command
    - metrics
    - registry
"""


def _validate_repo(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is not None and not is_valid_repo_slug(value):
        raise click.BadParameter("Expected owner/name.")
    return value


def _load_config(repo_root: Path) -> KpiscopeConfig:
    try:
        return KpiscopeConfig.load(repo_root)
    except (ValueError, yaml.YAMLError) as e:
        raise click.ClickException(f"Invalid {CONFIG_FILENAME}: {e}")


def _relative(path: str, root: Path) -> str:
    try:
        return os.path.relpath(path, root)
    except ValueError:
        return path


def snapshot_report_options(func):
    """Options shared by `snapshot-report` and `metrics snapshot`."""
    func = click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")(func)
    func = click.option("--repo", callback=_validate_repo, help="GitHub repository override (owner/name)")(func)
    func = click.option(
        "--window-days",
        type=click.IntRange(1, 3650),
        default=None,
        help="Trailing activity window in days (1-3650)",
    )(func)
    func = click.option(
        "--format", "fmt", type=click.Choice(SNAPSHOT_FORMATS), default=None, help="Artifacts to write"
    )(func)
    func = click.option("--path", "output_path", default=None, help="Output directory for snapshot files")(func)
    return func


def run_snapshot_report(
    output_path: str | None,
    fmt: str | None,
    window_days: int | None,
    repo: str | None,
    as_json: bool,
) -> None:
    repo_root = get_repo_root()
    config = _load_config(repo_root)
    defaults = config.snapshot.to_options()

    options = SnapshotOptions(
        output_path=output_path or defaults.output_path,
        format=fmt or defaults.format,  # type: ignore[arg-type]
        window_days=window_days or defaults.window_days,
        repo_override=repo or defaults.repo_override,
    )

    start = time.monotonic()
    try:
        result = asyncio.run(build_snapshot_report(repo_root, options, config))
    except OSError as e:
        click.echo("Snapshot report generation failed.", err=True)
        click.echo(f"Details: {e}", err=True)
        sys.exit(1)
    elapsed_ms = int((time.monotonic() - start) * 1000)

    report = result.report
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.echo(f"Snapshot report generated in {elapsed_ms}ms.")
    for path in result.written_files:
        click.echo(f"- {_relative(path, repo_root)}")
    click.echo(f"GitHub enrichment: {'enabled' if report.metadata.data_sources.github else 'disabled'}")
    baseline = report.trend.previous_snapshot
    click.echo(f"Trend baseline: {baseline.generated_at if baseline else 'none'}")


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """Kpiscope - Delivery KPI snapshots from git history and GitHub activity."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Write a sample kpiscope.yml in the current repository."""
    repo_root = get_repo_root()
    click.echo(f"Initializing Kpiscope in: {repo_root}")

    config_path = repo_root / CONFIG_FILENAME
    if not config_path.exists() or force:
        config_path.write_text(SAMPLE_CONFIG)
        click.echo(f"  Created: {config_path}")
    else:
        click.echo(f"  Skipped: {config_path} (already exists)")

    click.echo("\nNext steps:")
    click.echo("  1. Adjust layout paths in kpiscope.yml")
    click.echo("  2. Run `gh auth login` to enable GitHub KPIs")
    click.echo("  3. Run: kpiscope snapshot-report")


@main.command(name="snapshot-report")
@snapshot_report_options
def snapshot_report(output_path: str | None, fmt: str | None, window_days: int | None, repo: str | None, as_json: bool):
    """Generate a KPI snapshot report.

    Collects local git signals and, when `gh` is installed and
    authenticated, GitHub workflow runs and merged PRs. The report is
    compared against the newest previous snapshot in the output path.

    Examples:

        kpiscope snapshot-report
        kpiscope snapshot-report --format json --window-days 14
        kpiscope snapshot-report --repo owner/name --path reports
    """
    run_snapshot_report(output_path, fmt, window_days, repo, as_json)


@main.group()
def metrics():
    """Deprecated metrics commands."""
    pass


@metrics.command(name="snapshot")
@snapshot_report_options
def metrics_snapshot(output_path: str | None, fmt: str | None, window_days: int | None, repo: str | None, as_json: bool):
    """Deprecated: use `kpiscope snapshot-report` instead."""
    click.echo("Deprecated: `metrics snapshot` is an alias. Use `kpiscope snapshot-report`.", err=True)
    run_snapshot_report(output_path, fmt, window_days, repo, as_json)


@main.command()
@click.option("--path", "output_path", default=None, help="Snapshot directory")
@click.option("--limit", default=10, help="Number of snapshots to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def history(output_path: str | None, limit: int, as_json: bool):
    """List previously written snapshots, newest first."""
    repo_root = get_repo_root()
    config = _load_config(repo_root)
    output_dir = repo_root / (output_path or config.snapshot.output_path)

    snapshots = list_snapshots(output_dir, limit=limit)

    history_data = [
        {
            "file": _relative(str(snapshot.path), repo_root),
            "generated_at": snapshot.report.metadata.generated_at,
            "github": snapshot.report.metadata.data_sources.github,
            "kpi": snapshot.report.kpi.to_dict(),
        }
        for snapshot in snapshots
    ]

    if as_json:
        click.echo(json.dumps(history_data, indent=2))
        return

    if not history_data:
        click.echo(f"No snapshots found in {output_dir}")
        click.echo("Run: kpiscope snapshot-report")
        return

    click.echo(f"Snapshot History ({len(history_data)} entries):\n")
    for snapshot in snapshots:
        kpi = snapshot.report.kpi
        click.echo(f"{snapshot.report.metadata.generated_at}  {_relative(str(snapshot.path), repo_root)}")
        click.echo(f"    Time to first feature (h): {format_kpi(kpi.time_to_first_feature_hours)}")
        click.echo(f"    CI pass rate (%): {format_kpi(kpi.ci_pass_rate_before_merge_percent)}")
        click.echo(f"    Merge friction median (h): {format_kpi(kpi.merge_friction_median_hours)}")
        click.echo(f"    Commits in window: {format_value(snapshot.report.signals.repo_activity.commits_in_window)}")
        click.echo()


if __name__ == "__main__":
    main()
