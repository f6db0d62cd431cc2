from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class PackageVersion:
    """Identity of one buildable unit. Both fields are opaque strings."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class BuildConfig(BaseModel):
    """Resolved doc-build configuration for a single package.

    Serialised to concrete cargo/rustdoc arguments only inside generator.py.
    """

    all_features: bool = False
    no_default_features: bool = False
    features: list[str] = []
    target: str | None = None
    rustdoc_args: list[str] = []
    cargo_args: list[str] = []
    env: dict[str, str] = {}
    is_proc_macro: bool = False

    def feature_args(self) -> list[str]:
        """Cargo feature selection flags, shared by ``cargo metadata`` and ``cargo rustdoc``."""
        args: list[str] = []
        if self.all_features:
            args.append("--all-features")
        if self.no_default_features:
            args.append("--no-default-features")
        if self.features:
            args.extend(["--features", ",".join(self.features)])
        return args


class DependencySpec(BaseModel):
    """A direct, non-dev dependency as reported by the metadata resolver."""

    name: str  # package name, unique within one dependency set
    version: str
    lib_name: str  # extern crate name after renames

    @property
    def package_version(self) -> PackageVersion:
        return PackageVersion(self.name, self.version)


class ResolvedPackage(BaseModel):
    config: BuildConfig
    dependencies: list[DependencySpec] = []


class DependencyLink(BaseModel):
    """A successfully built dependency, attached under ``.deps/<name>``."""

    name: str
    lib_name: str
    hash: str
