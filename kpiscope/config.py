"""
Configuration management for Kpiscope.

Loads kpiscope.yml from the repository root:
- snapshot: default output path, format, window and repository override
- layout: where command sources, tests, docs and CI config live
- github: scaffold command names excluded from first-feature detection
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import SNAPSHOT_FORMATS, SnapshotOptions


CONFIG_FILENAME = "kpiscope.yml"

DEFAULT_SCAFFOLD_COMMANDS = ("init", "generate-command", "metrics", "registry")


@dataclass
class SnapshotConfig:
    """Default snapshot-report settings."""
    output_path: str = "docs/reports"
    format: str = "both"  # markdown, json, both
    window_days: int = 30
    repo: str | None = None  # owner/name override for origin remote

    def to_options(self) -> SnapshotOptions:
        return SnapshotOptions(
            output_path=self.output_path,
            format=self.format,  # type: ignore[arg-type]
            window_days=self.window_days,
            repo_override=self.repo,
        )


@dataclass
class DocsLayout:
    architecture: str = "docs/architecture.md"
    metrics_spec: str = "docs/metrics-dashboard-spec.md"
    executive_one_pager: str = "docs/executive-one-pager.md"


@dataclass
class LayoutConfig:
    """Repository paths scanned for local signals."""
    commands_dir: str = "src/commands"
    command_extension: str = ".ts"
    tests_dir: str = "tests"
    test_extension: str = ".ts"
    docs: DocsLayout = field(default_factory=DocsLayout)
    ci_config: str = ".github/workflows/ci.yml"


@dataclass
class GitHubConfig:
    """GitHub enrichment settings."""
    scaffold_commands: list[str] = field(default_factory=lambda: list(DEFAULT_SCAFFOLD_COMMANDS))


@dataclass
class KpiscopeConfig:
    """Complete Kpiscope configuration."""
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)

    @classmethod
    def load(cls, repo_root: Path) -> "KpiscopeConfig":
        """Load configuration from repo root directory."""
        config_path = repo_root / CONFIG_FILENAME
        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{config_path} must contain a mapping at the top level")

        return cls._parse(data)

    @classmethod
    def _parse(cls, data: dict[str, Any]) -> "KpiscopeConfig":
        config = cls()

        # Parse snapshot defaults
        snapshot_data = _section(data, "snapshot")
        fmt = snapshot_data.get("format", "both")
        if fmt not in SNAPSHOT_FORMATS:
            raise ValueError(f"snapshot.format must be one of {', '.join(SNAPSHOT_FORMATS)}, got {fmt!r}")
        raw_window = snapshot_data.get("window_days", 30)
        try:
            window_days = int(raw_window)
        except (TypeError, ValueError):
            raise ValueError(f"snapshot.window_days must be an integer, got {raw_window!r}")
        if not 1 <= window_days <= 3650:
            raise ValueError(f"snapshot.window_days must be between 1 and 3650, got {window_days}")
        config.snapshot = SnapshotConfig(
            output_path=str(snapshot_data.get("output_path", "docs/reports")),
            format=fmt,
            window_days=window_days,
            repo=snapshot_data.get("repo"),
        )

        # Parse layout
        layout_data = _section(data, "layout")
        docs_data = _section(layout_data, "docs", "layout.docs")
        config.layout = LayoutConfig(
            commands_dir=layout_data.get("commands_dir", "src/commands"),
            command_extension=layout_data.get("command_extension", ".ts"),
            tests_dir=layout_data.get("tests_dir", "tests"),
            test_extension=layout_data.get("test_extension", ".ts"),
            docs=DocsLayout(
                architecture=docs_data.get("architecture", "docs/architecture.md"),
                metrics_spec=docs_data.get("metrics_spec", "docs/metrics-dashboard-spec.md"),
                executive_one_pager=docs_data.get("executive_one_pager", "docs/executive-one-pager.md"),
            ),
            ci_config=layout_data.get("ci_config", ".github/workflows/ci.yml"),
        )

        # Parse GitHub settings
        github_data = _section(data, "github")
        scaffold = github_data.get("scaffold_commands")
        config.github = GitHubConfig(
            scaffold_commands=[str(name) for name in scaffold]
            if isinstance(scaffold, list)
            else list(DEFAULT_SCAFFOLD_COMMANDS),
        )

        return config


def _section(data: dict[str, Any], key: str, name: str | None = None) -> dict[str, Any]:
    """Return a config section, or raise if it is present but not a mapping."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{name or key} must be a mapping, got {type(value).__name__}")
    return value


def get_repo_root() -> Path:
    """Find the repository root (directory containing .git)."""
    current = Path.cwd()
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent
    # No .git found, use current directory
    return Path.cwd()
