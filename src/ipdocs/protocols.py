"""Protocol interfaces for swappable components.

The builder and BuildContext reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory implementations
- Other stores or toolchains to be swapped without changing the builder
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from ipdocs.models.cache import CacheEntry
    from ipdocs.models.package import BuildConfig, DependencyLink, PackageVersion, ResolvedPackage


class StoreProtocol(Protocol):
    """Interface for the content-addressed store."""

    async def add(self, path: Path) -> str: ...

    async def patch_add_link(self, parent: str, name: str, child: str) -> str: ...

    async def get_link(self, parent: str, name: str) -> str | None: ...

    async def pin(self, hash_: str) -> None: ...


class CacheProtocol(Protocol):
    """Interface for the durable build cache."""

    async def get(self, pv: PackageVersion) -> str | None: ...

    async def get_entry(self, pv: PackageVersion) -> CacheEntry | None: ...

    async def put(self, pv: PackageVersion, hash_: str) -> None: ...


class FetcherProtocol(Protocol):
    """Interface for the package source fetcher."""

    async def fetch(self, name: str, version: str) -> Path: ...

    async def unpack(self, archive: Path, dest: Path) -> Path: ...


class MetadataProtocol(Protocol):
    """Interface for the manifest/metadata resolver."""

    async def resolve(self, source_dir: Path) -> ResolvedPackage: ...


class GeneratorProtocol(Protocol):
    """Interface for the external documentation generator."""

    async def generate(
        self,
        source_dir: Path,
        config: BuildConfig,
        links: Sequence[DependencyLink],
    ) -> Path: ...
