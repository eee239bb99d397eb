"""
External command execution for Kpiscope.

Every git and gh invocation goes through `try_run`, which never raises:
any failure (missing executable, non-zero exit, empty or oversized output)
comes back as None so callers can degrade a single field instead of
aborting the whole report.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

# Output cap for API responses piped through the gh CLI
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


def _run(args: Sequence[str], cwd: Path | str) -> subprocess.CompletedProcess | None:
    try:
        return subprocess.run(
            list(args),
            cwd=str(cwd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except (OSError, ValueError) as e:
        logger.debug("Command %s could not start: %s", args[0], e)
        return None


def try_run(
    args: Sequence[str],
    cwd: Path | str,
    max_bytes: int | None = None,
) -> str | None:
    """
    Run a command and return its trimmed stdout.

    Returns None when the command cannot be started, exits non-zero,
    prints nothing, or prints more than max_bytes.
    """
    result = _run(args, cwd)
    if result is None:
        return None

    if result.returncode != 0:
        logger.debug(
            "Command %s exited %d: %s",
            " ".join(args),
            result.returncode,
            (result.stderr or "")[:200],
        )
        return None

    output = result.stdout or ""
    if max_bytes is not None and len(output.encode("utf-8")) > max_bytes:
        logger.debug("Command %s exceeded output cap of %d bytes", " ".join(args), max_bytes)
        return None

    output = output.strip()
    return output or None


def command_succeeds(args: Sequence[str], cwd: Path | str) -> bool:
    """Check whether a command runs and exits zero."""
    result = _run(args, cwd)
    return result is not None and result.returncode == 0


async def try_run_async(
    args: Sequence[str],
    cwd: Path | str,
    max_bytes: int | None = None,
) -> str | None:
    return await asyncio.to_thread(try_run, args, cwd, max_bytes)


async def command_succeeds_async(args: Sequence[str], cwd: Path | str) -> bool:
    return await asyncio.to_thread(command_succeeds, args, cwd)
