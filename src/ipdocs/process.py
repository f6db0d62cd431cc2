"""Async subprocess helper for the external cargo toolchain."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

log = structlog.get_logger()


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


async def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    verbose: bool = False,
    capture_stdout: bool = False,
) -> CommandResult:
    """Run a command to completion.

    Output is captured unless ``verbose`` is set, in which case it streams to
    the terminal. ``capture_stdout`` forces stdout capture for commands whose
    output is parsed. Raises ``OSError`` if the executable cannot be started.
    """
    full_env = {**os.environ, **env} if env else None
    stdout = asyncio.subprocess.PIPE if capture_stdout or not verbose else None
    stderr = None if verbose else asyncio.subprocess.PIPE

    log.debug("command_started", args=list(args), cwd=str(cwd) if cwd else None)
    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=full_env,
        stdout=stdout,
        stderr=stderr,
    )
    out, err = await proc.communicate()
    returncode = proc.returncode if proc.returncode is not None else -1
    log.debug("command_finished", program=args[0], returncode=returncode)
    return CommandResult(
        returncode=returncode,
        stdout=out.decode("utf-8", errors="replace") if out else "",
        stderr=err.decode("utf-8", errors="replace") if err else "",
    )


def tail(text: str, lines: int = 20) -> str:
    """Last ``lines`` lines of captured output, for error messages."""
    return "\n".join(text.splitlines()[-lines:])
