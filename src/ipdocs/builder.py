"""Recursive documentation builder.

``build`` resolves one package version to the hash of its published
documentation node, recursing depth-first into direct dependencies first so
their hashes are known before rustdoc runs. Completed builds are recorded in
the build cache, which is authoritative: a cached package is never fetched,
resolved, or regenerated again. Hashes produced during the current run are
also kept on the context, so a lost cache write never turns a later diamond
visit into a failure.

Failure policy: an error in a dependency subtree is logged and that
dependency's link is omitted; its siblings and its parent still build. Only
errors for the package passed in by the caller propagate. This favours
maximal coverage over strict completeness.

The one exception is a true cycle: every package on it fails, up to and
including the repeated package, whose own parent then omits it as usual.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ipdocs.depgraph import build_deps_node
from ipdocs.errors import CycleDetected, GenerationError, IpdocsError, format_chain
from ipdocs.generator import DEPS_DIR_NAME, rewrite_placeholders
from ipdocs.models.package import DependencyLink

if TYPE_CHECKING:
    from collections.abc import Sequence

    from structlog.typing import FilteringBoundLogger

    from ipdocs.models.package import PackageVersion, ResolvedPackage
    from ipdocs.state import BuildContext


async def build(
    pv: PackageVersion,
    chain: Sequence[PackageVersion],
    ctx: BuildContext,
) -> str:
    """Return the published hash for ``pv``.

    ``chain`` is the active recursion path leading to ``pv`` (empty for the
    root). Raises an ``IpdocsError`` subclass carrying the chain on failure.
    """
    log = structlog.get_logger().bind(package=str(pv), depth=len(chain))

    built = ctx.built.get(pv)
    if built is not None:
        log.debug("already_built", hash=built)
        return built

    cached = await ctx.cache.get(pv)
    if cached is not None:
        log.info("cache_hit", hash=cached)
        return cached

    if pv in ctx.seen:
        # Anything seen but uncached is either on the active chain or failed
        # earlier in this run; both are reported as a cycle.
        full_chain = (*chain, pv)
        if pv in chain:
            message = f"Dependency cycle: {format_chain(full_chain)}"
        else:
            message = f"{pv} was already attempted in this run without producing a hash"
        raise CycleDetected(message, chain=full_chain)
    ctx.seen.add(pv)

    log.info("build_started")
    try:
        return await _build_uncached(pv, tuple(chain), ctx, log)
    except IpdocsError as exc:
        if not exc.chain:
            exc.chain = (*chain, pv)
        raise


async def _build_uncached(
    pv: PackageVersion,
    chain: tuple[PackageVersion, ...],
    ctx: BuildContext,
    log: FilteringBoundLogger,
) -> str:
    archive = await ctx.fetcher.fetch(pv.name, pv.version)
    source_dir = await ctx.fetcher.unpack(archive, ctx.workspace)
    resolved = await ctx.metadata.resolve(source_dir)

    if resolved.config.is_proc_macro:
        # Proc-macro docs never embed dependency links
        log.info("dependencies_skipped", reason="proc_macro", declared=len(resolved.dependencies))
        links: list[DependencyLink] = []
    else:
        links = await _build_dependencies(pv, chain, resolved, ctx, log)

    doc_dir = await ctx.generator.generate(source_dir, resolved.config, links)
    try:
        rewritten = rewrite_placeholders(doc_dir, ctx.settings.generator.placeholder)
    except OSError as exc:
        raise GenerationError(f"Could not rewrite dependency links in {doc_dir}: {exc}") from exc
    log.debug("placeholders_rewritten", files=rewritten)

    doc_hash = await ctx.store.add(doc_dir)
    deps_node = await build_deps_node(ctx.store, links)
    artifact = await ctx.store.patch_add_link(doc_hash, DEPS_DIR_NAME, deps_node)

    ctx.built[pv] = artifact
    await ctx.cache.put(pv, artifact)
    log.info("build_complete", hash=artifact, dependencies=len(links))
    return artifact


async def _build_dependencies(
    pv: PackageVersion,
    chain: tuple[PackageVersion, ...],
    resolved: ResolvedPackage,
    ctx: BuildContext,
    log: FilteringBoundLogger,
) -> list[DependencyLink]:
    """Build each direct dependency in order, collecting links for those that succeed."""
    child_chain = (*chain, pv)
    links: list[DependencyLink] = []
    for dep in resolved.dependencies:
        try:
            dep_hash = await build(dep.package_version, child_chain, ctx)
        except IpdocsError as exc:
            if isinstance(exc, CycleDetected) and exc.repeated in child_chain:
                # A cycle unwinds every package on it, up to the repeated one
                raise
            log.warning(
                "dependency_omitted",
                dependency=str(dep.package_version),
                code=exc.code,
                message=exc.message,
                chain=format_chain(exc.chain),
            )
            continue
        links.append(DependencyLink(name=dep.name, lib_name=dep.lib_name, hash=dep_hash))
    return links
