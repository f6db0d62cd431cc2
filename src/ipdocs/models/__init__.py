from __future__ import annotations

from ipdocs.models.cache import CacheEntry
from ipdocs.models.package import (
    BuildConfig,
    DependencyLink,
    DependencySpec,
    PackageVersion,
    ResolvedPackage,
)

__all__ = [
    # package
    "PackageVersion",
    "BuildConfig",
    "DependencySpec",
    "ResolvedPackage",
    "DependencyLink",
    # cache
    "CacheEntry",
]
