"""ipdocs: publish documentation for a crate and its dependency graph to IPFS."""

from __future__ import annotations

import warnings
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ipdocs")
except PackageNotFoundError:
    # Source-tree execution without installed package metadata.
    warnings.warn(
        "Package metadata for 'ipdocs' not found; using fallback version '0.0.0+unknown'.",
        RuntimeWarning,
        stacklevel=2,
    )
    __version__ = "0.0.0+unknown"
