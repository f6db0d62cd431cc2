"""Unit tests for ipdocs.process."""

from __future__ import annotations

import sys

import pytest

from ipdocs.process import run_command, tail


async def test_captures_output_when_quiet() -> None:
    result = await run_command(
        [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"]
    )
    assert result.returncode == 0
    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"


async def test_reports_nonzero_exit() -> None:
    result = await run_command([sys.executable, "-c", "raise SystemExit(3)"])
    assert result.returncode == 3


async def test_env_overrides_are_merged() -> None:
    result = await run_command(
        [sys.executable, "-c", "import os; print(os.environ['DOCS_RS'], 'PATH' in os.environ)"],
        env={"DOCS_RS": "1"},
        capture_stdout=True,
    )
    assert result.stdout.split() == ["1", "True"]


async def test_env_overrides_win_over_inherited(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARGO_TARGET_DIR", "/inherited")
    result = await run_command(
        [sys.executable, "-c", "import os; print(os.environ['CARGO_TARGET_DIR'])"],
        env={"CARGO_TARGET_DIR": "/explicit"},
        capture_stdout=True,
    )
    assert result.stdout.strip() == "/explicit"


async def test_verbose_still_captures_stdout_when_requested() -> None:
    result = await run_command(
        [sys.executable, "-c", "print('{}')"], verbose=True, capture_stdout=True
    )
    assert result.stdout.strip() == "{}"
    assert result.stderr == ""


async def test_missing_executable_raises_oserror() -> None:
    with pytest.raises(OSError):
        await run_command(["/nonexistent/ipdocs-tool"])


def test_tail_keeps_last_lines() -> None:
    text = "\n".join(str(i) for i in range(50))
    assert tail(text, 3) == "47\n48\n49"
