"""
Kpiscope - Delivery KPI snapshots from git history and GitHub activity.

A CLI tool that:
1. Collects local repository signals (git metadata, command/test files, docs)
2. Optionally enriches them with GitHub workflow runs and merged PRs via `gh`
3. Computes delivery KPIs (time to first feature, CI pass rate, merge friction)
4. Diffs each snapshot against the previous one and writes JSON + markdown

Usage:
    kpiscope init              # Write a sample kpiscope.yml
    kpiscope snapshot-report   # Generate a snapshot report
    kpiscope history           # List previously written snapshots
"""

__version__ = "0.1.0"
__author__ = "Kpiscope"
