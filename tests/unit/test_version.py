"""Tests for the installed-version lookup."""

from __future__ import annotations

import importlib.metadata
import importlib.util
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import pytest

import ipdocs


def test_version_comes_from_distribution_metadata() -> None:
    try:
        expected = version("ipdocs")
    except PackageNotFoundError:
        expected = "0.0.0+unknown"

    assert ipdocs.__version__ == expected


def test_source_tree_without_metadata_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    def _not_installed(_name: str) -> str:
        raise PackageNotFoundError

    monkeypatch.setattr(importlib.metadata, "version", _not_installed)

    init_path = Path(__file__).resolve().parents[2] / "src" / "ipdocs" / "__init__.py"
    module_spec = importlib.util.spec_from_file_location("ipdocs_fallback", init_path)
    assert module_spec is not None
    assert module_spec.loader is not None

    module = importlib.util.module_from_spec(module_spec)
    with pytest.warns(RuntimeWarning, match="Package metadata for 'ipdocs' not found"):
        module_spec.loader.exec_module(module)

    assert module.__version__ == "0.0.0+unknown"
