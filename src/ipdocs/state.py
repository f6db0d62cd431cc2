"""Run-scoped build context.

BuildContext is created once per CLI invocation (inside ``open_context``)
and passed explicitly through every recursive ``build`` call. Nothing about a
run lives in module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from ipdocs.config import Settings
    from ipdocs.models.package import PackageVersion
    from ipdocs.protocols import (
        CacheProtocol,
        FetcherProtocol,
        GeneratorProtocol,
        MetadataProtocol,
        StoreProtocol,
    )


@dataclass
class BuildContext:
    """Holds all shared state for one root build."""

    settings: Settings
    workspace: Path
    store: StoreProtocol
    cache: CacheProtocol
    fetcher: FetcherProtocol
    metadata: MetadataProtocol
    generator: GeneratorProtocol

    # Every package entered during this run, not only the active chain
    seen: set[PackageVersion] = field(default_factory=set)
    # Hashes produced during this run, independent of cache write success
    built: dict[PackageVersion, str] = field(default_factory=dict)
    verbose: bool = False
