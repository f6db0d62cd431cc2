"""Documentation generation via ``cargo rustdoc``.

BuildConfig is serialised to concrete command-line arguments here and
nowhere else. Dependency documentation URLs are emitted as
``<placeholder>/<package>/``; once the tree exists, ``rewrite_placeholders``
turns each occurrence into a relative path into the node's ``.deps`` child,
so the published tree is valid under any mount point.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ipdocs.errors import GenerationError
from ipdocs.process import run_command, tail

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from ipdocs.config import GeneratorSettings
    from ipdocs.models.package import BuildConfig, DependencyLink

log = structlog.get_logger()

DEPS_DIR_NAME = ".deps"


def rustdoc_command(
    settings: GeneratorSettings,
    manifest_path: Path,
    config: BuildConfig,
    links: Sequence[DependencyLink],
) -> list[str]:
    args = [settings.cargo]
    if settings.toolchain:
        args.append(f"+{settings.toolchain}")
    args += ["rustdoc", "--lib", "--manifest-path", str(manifest_path)]
    args += config.feature_args()
    if config.target is not None:
        args += ["--target", config.target]
    args += config.cargo_args

    args += ["--", "-Z", "unstable-options"]
    for link in links:
        args += ["--extern-html-root-url", f"{link.lib_name}={settings.placeholder}/{link.name}/"]
    args += config.rustdoc_args
    return args


def cargo_target_dir(source_dir: Path) -> Path:
    return source_dir / "target"


def doc_output_dir(source_dir: Path, config: BuildConfig) -> Path:
    target_dir = cargo_target_dir(source_dir)
    if config.target is not None:
        target_dir = target_dir / config.target
    return target_dir / "doc"


def relative_deps_prefix(depth: int) -> str:
    """``.deps`` as seen from a file ``depth`` directories below the doc root."""
    return "../" * depth + DEPS_DIR_NAME


def rewrite_placeholders(doc_root: Path, placeholder: str) -> int:
    """Replace every placeholder occurrence under ``doc_root``.

    Returns the number of files rewritten.
    """
    token = placeholder.encode("utf-8")
    rewritten = 0
    for path in sorted(doc_root.rglob("*")):
        if not path.is_file():
            continue
        content = path.read_bytes()
        if token not in content:
            continue
        depth = len(path.relative_to(doc_root).parts) - 1
        path.write_bytes(content.replace(token, relative_deps_prefix(depth).encode("utf-8")))
        rewritten += 1
    return rewritten


class DocGenerator:
    """Runs rustdoc for one unpacked crate and returns its doc tree."""

    def __init__(self, settings: GeneratorSettings, *, verbose: bool = False) -> None:
        self._settings = settings
        self._verbose = verbose

    async def generate(
        self,
        source_dir: Path,
        config: BuildConfig,
        links: Sequence[DependencyLink],
    ) -> Path:
        args = rustdoc_command(self._settings, source_dir / "Cargo.toml", config, links)
        # An inherited CARGO_TARGET_DIR would move the output away from doc_output_dir
        env = {**config.env, "CARGO_TARGET_DIR": str(cargo_target_dir(source_dir))}
        try:
            result = await run_command(args, cwd=source_dir, env=env, verbose=self._verbose)
        except OSError as exc:
            raise GenerationError(
                f"Could not run {self._settings.cargo}: {exc}",
                suggestion="Install a Rust toolchain or set generator.cargo.",
            ) from exc

        if result.returncode != 0:
            raise GenerationError(
                f"cargo rustdoc exited with status {result.returncode}: {tail(result.stderr)}",
                suggestion="Re-run with --verbose to see the full compiler output.",
            )

        doc_dir = doc_output_dir(source_dir, config)
        if not doc_dir.is_dir():
            raise GenerationError(f"cargo rustdoc succeeded but {doc_dir} does not exist")
        return doc_dir
