"""Package metadata resolution.

Turns an unpacked crate into a ResolvedPackage: the doc-build configuration
taken from the docs.rs profile in ``Cargo.toml`` (``[package.metadata.docs.rs]``)
and the direct non-dev dependencies reported by ``cargo metadata``.

The parsing functions are pure and operate on already-decoded data; only
``MetadataResolver.resolve`` touches the filesystem or runs cargo.
"""

from __future__ import annotations

import json
import tomllib
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from ipdocs.errors import MetadataError
from ipdocs.models.package import BuildConfig, DependencySpec, ResolvedPackage
from ipdocs.process import run_command, tail

if TYPE_CHECKING:
    from pathlib import Path

    from ipdocs.config import GeneratorSettings

log = structlog.get_logger()

# Environment docs.rs exposes to builds; crates use it to enable doc-only cfgs.
DOCS_ENV = {"DOCS_RS": "1"}


def read_manifest(manifest_path: Path) -> dict[str, Any]:
    try:
        with manifest_path.open("rb") as file_obj:
            return tomllib.load(file_obj)
    except FileNotFoundError as exc:
        raise MetadataError(f"Manifest not found: {manifest_path}") from exc
    except (tomllib.TOMLDecodeError, UnicodeDecodeError, OSError) as exc:
        raise MetadataError(f"Could not parse manifest {manifest_path}: {exc}") from exc


def docs_profile(manifest: dict[str, Any]) -> dict[str, Any]:
    """Return the ``[package.metadata.docs.rs]`` table, or an empty dict."""
    # [package.metadata] accepts arbitrary TOML, so any level may be a non-table
    table: Any = manifest
    path: list[str] = []
    for key in ("package", "metadata", "docs", "rs"):
        path.append(key)
        table = table.get(key, {})
        if not isinstance(table, dict):
            raise MetadataError(
                f"[{'.'.join(path)}] must be a table, not {type(table).__name__}"
            )
    return table


def select_target(profile: dict[str, Any], *, is_proc_macro: bool) -> str | None:
    """Pick the documentation target.

    Priority: ``default-target``, then the first entry of ``targets``, then
    ``None`` (the generator's host default). Proc-macros always get ``None``:
    a cross-compiled proc-macro cannot be loaded by the host compiler.
    """
    if is_proc_macro:
        return None
    default_target = profile.get("default-target")
    if default_target:
        return str(default_target)
    targets = profile.get("targets") or []
    if not isinstance(targets, list):
        raise MetadataError("docs.rs `targets` must be a list")
    if targets:
        return str(targets[0])
    return None


def build_config(profile: dict[str, Any], *, is_proc_macro: bool) -> BuildConfig:
    try:
        return BuildConfig(
            all_features=profile.get("all-features", False),
            no_default_features=profile.get("no-default-features", False),
            features=profile.get("features", []),
            target=select_target(profile, is_proc_macro=is_proc_macro),
            rustdoc_args=profile.get("rustdoc-args", []),
            cargo_args=profile.get("cargo-args", []),
            env=dict(DOCS_ENV),
            is_proc_macro=is_proc_macro,
        )
    except ValidationError as exc:
        raise MetadataError(f"Invalid docs.rs profile: {exc}") from exc


def find_root_package(metadata: dict[str, Any]) -> dict[str, Any]:
    """Return the ``packages`` entry for the resolve root."""
    root_id = (metadata.get("resolve") or {}).get("root")
    if not root_id:
        raise MetadataError("cargo metadata reported no resolve root")
    for package in metadata.get("packages", []):
        if package.get("id") == root_id:
            return package
    raise MetadataError(f"Root package {root_id!r} missing from cargo metadata")


def is_proc_macro(package: dict[str, Any]) -> bool:
    return any("proc-macro" in target.get("kind", []) for target in package.get("targets", []))


def direct_dependencies(metadata: dict[str, Any], root_id: str) -> list[DependencySpec]:
    """Direct non-dev dependencies of ``root_id`` in resolve-node order.

    ``lib_name`` is the extern crate name as seen by the root, so renames
    (``foo = { package = "bar" }``) are reflected there while ``name`` stays
    the package name.
    """
    packages = {package["id"]: package for package in metadata.get("packages", [])}
    nodes = (metadata.get("resolve") or {}).get("nodes", [])
    root_node = next((node for node in nodes if node.get("id") == root_id), None)
    if root_node is None:
        raise MetadataError(f"Root package {root_id!r} has no resolve node")

    dependencies: list[DependencySpec] = []
    seen_names: set[str] = set()
    for dep in root_node.get("deps", []):
        # Cargo older than 1.41 omits dep_kinds; treat those as normal deps
        kinds = [kind.get("kind") for kind in dep.get("dep_kinds", [{"kind": None}])]
        if all(kind == "dev" for kind in kinds):
            continue
        package = packages.get(dep.get("pkg"))
        if package is None:
            raise MetadataError(f"Dependency {dep.get('pkg')!r} missing from cargo metadata")
        if package["name"] in seen_names:
            continue
        seen_names.add(package["name"])
        dependencies.append(
            DependencySpec(name=package["name"], version=package["version"], lib_name=dep["name"])
        )
    return dependencies


class MetadataResolver:
    """Resolves build configuration and dependencies with ``cargo metadata``."""

    def __init__(self, settings: GeneratorSettings, *, verbose: bool = False) -> None:
        self._cargo = settings.cargo
        self._verbose = verbose

    async def resolve(self, source_dir: Path) -> ResolvedPackage:
        manifest_path = source_dir / "Cargo.toml"
        profile = docs_profile(read_manifest(manifest_path))

        # Feature flags must match the doc build so optional deps resolve the same way
        features = build_config(profile, is_proc_macro=False).feature_args()
        metadata = await self._cargo_metadata(manifest_path, features)

        root = find_root_package(metadata)
        proc_macro = is_proc_macro(root)
        config = build_config(profile, is_proc_macro=proc_macro)
        dependencies = direct_dependencies(metadata, root["id"])

        log.debug(
            "metadata_resolved",
            package=f"{root['name']}@{root['version']}",
            proc_macro=proc_macro,
            target=config.target,
            dependencies=len(dependencies),
        )
        return ResolvedPackage(config=config, dependencies=dependencies)

    async def _cargo_metadata(self, manifest_path: Path, features: list[str]) -> dict[str, Any]:
        args = [
            self._cargo,
            "metadata",
            "--format-version",
            "1",
            "--manifest-path",
            str(manifest_path),
            *features,
        ]
        try:
            result = await run_command(args, verbose=self._verbose, capture_stdout=True)
        except OSError as exc:
            raise MetadataError(
                f"Could not run {self._cargo}: {exc}",
                suggestion="Install a Rust toolchain or set generator.cargo.",
            ) from exc
        if result.returncode != 0:
            raise MetadataError(
                f"cargo metadata exited with status {result.returncode}: {tail(result.stderr)}"
            )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise MetadataError(f"cargo metadata produced invalid JSON: {exc}") from exc
