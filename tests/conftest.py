"""Shared test fixtures for the ipdocs test suite.

Provides an in-memory content-addressed store, a fake crate toolchain
(fetcher, metadata resolver, and doc generator in one object), and a wired
BuildContext over an in-memory SQLite build cache.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from ipdocs.cache import Cache
from ipdocs.config import DEFAULT_PLACEHOLDER, Settings
from ipdocs.errors import FetchError, GenerationError, MetadataError, StoreError
from ipdocs.metadata import docs_profile
from ipdocs.models.package import BuildConfig, DependencySpec, PackageVersion, ResolvedPackage
from ipdocs.state import BuildContext
from ipdocs.store import EMPTY_DIR_HASH

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ipdocs.models.package import DependencyLink


class FakeStore:
    """Deterministic in-memory stand-in for the IPFS store."""

    def __init__(self) -> None:
        self.dirs: dict[str, dict[str, str]] = {EMPTY_DIR_HASH: {}}
        self.files: dict[str, bytes] = {}
        self.pinned: list[str] = []
        self.added: list[Path] = []

    def _put_dir(self, links: dict[str, str]) -> str:
        if not links:
            return EMPTY_DIR_HASH
        payload = json.dumps(sorted(links.items())).encode("utf-8")
        digest = "dir-" + hashlib.sha256(payload).hexdigest()[:16]
        self.dirs[digest] = dict(links)
        return digest

    def _put_tree(self, path: Path) -> str:
        if path.is_dir():
            return self._put_dir({child.name: self._put_tree(child) for child in path.iterdir()})
        content = path.read_bytes()
        digest = "file-" + hashlib.sha256(content).hexdigest()[:16]
        self.files[digest] = content
        return digest

    async def add(self, path: Path) -> str:
        self.added.append(path)
        return self._put_tree(path)

    async def patch_add_link(self, parent: str, name: str, child: str) -> str:
        if parent not in self.dirs:
            raise StoreError(f"unknown node {parent}")
        return self._put_dir({**self.dirs[parent], name: child})

    async def get_link(self, parent: str, name: str) -> str | None:
        if parent not in self.dirs:
            raise StoreError(f"unknown node {parent}")
        return self.dirs[parent].get(name)

    async def pin(self, hash_: str) -> None:
        self.pinned.append(hash_)

    def resolve(self, root: str, path: str) -> str:
        node = root
        for part in path.split("/"):
            node = self.dirs[node][part]
        return node

    def read(self, root: str, path: str) -> str:
        return self.files[self.resolve(root, path)].decode("utf-8")


class FakeToolchain:
    """Fetcher, metadata resolver, and doc generator over a declared package graph."""

    def __init__(self) -> None:
        self.packages: dict[PackageVersion, ResolvedPackage] = {}
        self.failures: dict[PackageVersion, str] = {}
        self.manifests: dict[PackageVersion, dict] = {}
        self.fetched: list[PackageVersion] = []
        self.generated: list[tuple[PackageVersion, list[DependencyLink]]] = []
        self._archives: dict[str, PackageVersion] = {}
        self._sources: dict[Path, PackageVersion] = {}

    def add(
        self,
        name: str,
        version: str,
        deps: Sequence[tuple[str, str] | DependencySpec] = (),
        *,
        proc_macro: bool = False,
    ) -> PackageVersion:
        specs = [
            dep
            if isinstance(dep, DependencySpec)
            else DependencySpec(name=dep[0], version=dep[1], lib_name=dep[0].replace("-", "_"))
            for dep in deps
        ]
        pv = PackageVersion(name, version)
        self.packages[pv] = ResolvedPackage(
            config=BuildConfig(is_proc_macro=proc_macro),
            dependencies=specs,
        )
        return pv

    def fail(self, pv: PackageVersion, stage: str) -> None:
        self.failures[pv] = stage

    async def fetch(self, name: str, version: str) -> Path:
        pv = PackageVersion(name, version)
        self.fetched.append(pv)
        if self.failures.get(pv) == "fetch" or pv not in self.packages:
            raise FetchError(f"HTTP 404 fetching {pv}")
        archive = Path(f"{name}-{version}.crate")
        self._archives[archive.name] = pv
        return archive

    async def unpack(self, archive: Path, dest: Path) -> Path:
        source_dir = dest / archive.name.removesuffix(".crate")
        source_dir.mkdir(parents=True, exist_ok=True)
        self._sources[source_dir] = self._archives[archive.name]
        return source_dir

    async def resolve(self, source_dir: Path) -> ResolvedPackage:
        pv = self._sources[source_dir]
        if self.failures.get(pv) == "metadata":
            raise MetadataError(f"Manifest not found for {pv}")
        if pv in self.manifests:
            docs_profile(self.manifests[pv])
        return self.packages[pv]

    async def generate(
        self,
        source_dir: Path,
        config: BuildConfig,
        links: Sequence[DependencyLink],
    ) -> Path:
        pv = self._sources[source_dir]
        if self.failures.get(pv) == "generate":
            raise GenerationError(f"cargo rustdoc failed for {pv}")
        self.generated.append((pv, list(links)))

        lib = pv.name.replace("-", "_")
        doc_dir = source_dir / "target" / "doc"
        (doc_dir / lib / "nested").mkdir(parents=True, exist_ok=True)
        hrefs = "".join(
            f'<a href="{DEFAULT_PLACEHOLDER}/{link.name}/{link.lib_name}/index.html"></a>'
            for link in links
        )
        (doc_dir / "index.html").write_text(f"<h1>{pv}</h1>{hrefs}", encoding="utf-8")
        (doc_dir / lib / "index.html").write_text(hrefs, encoding="utf-8")
        (doc_dir / lib / "nested" / "page.html").write_text(hrefs, encoding="utf-8")
        return doc_dir


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture()
async def cache() -> Cache:
    """Build cache over an in-memory SQLite database."""
    async with aiosqlite.connect(":memory:") as db:
        build_cache = Cache(db)
        await build_cache.init_db()
        yield build_cache


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        cache={"db_path": str(tmp_path / "cache.db")},
        index={"pointer_path": str(tmp_path / "index-root")},
        fetcher={"crates_dir": str(tmp_path / "crates")},
    )


@pytest.fixture()
def make_context(
    tmp_path: Path,
    settings: Settings,
    store: FakeStore,
    cache: Cache,
    toolchain: FakeToolchain,
):
    """Factory for fresh run contexts sharing one store, cache, and toolchain."""
    runs = 0

    def _make() -> BuildContext:
        nonlocal runs
        runs += 1
        workspace = tmp_path / f"workspace-{runs}"
        workspace.mkdir()
        return BuildContext(
            settings=settings,
            workspace=workspace,
            store=store,
            cache=cache,
            fetcher=toolchain,
            metadata=toolchain,
            generator=toolchain,
        )

    return _make


@pytest.fixture()
def build_context(make_context) -> BuildContext:
    return make_context()
