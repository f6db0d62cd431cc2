"""Command-line entrypoint: ``ipdocs <name> <version> [--verbose]``.

Responsibilities (and nothing more):
- Configure structlog
- Open the run context (clients, cache database, temp workspace)
- Build the root package and publish it into the global index
- Map failures to a non-zero exit status
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import aiosqlite
import structlog
import typer

from ipdocs import __version__
from ipdocs.builder import build
from ipdocs.cache import Cache
from ipdocs.config import Settings
from ipdocs.errors import IpdocsError, StoreError
from ipdocs.fetcher import Fetcher, build_http_client
from ipdocs.generator import DocGenerator
from ipdocs.index import add_to_index, load_index_root, lookup, save_index_root
from ipdocs.metadata import MetadataResolver
from ipdocs.models.package import PackageVersion
from ipdocs.state import BuildContext
from ipdocs.store import IpfsStore, build_store_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings, *, verbose: bool = False) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    level_name = "DEBUG" if verbose else settings.logging.level
    log_level = logging.getLevelNamesMapping()[level_name]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout carries only the published hash
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------------


@asynccontextmanager
async def open_context(
    settings: Settings,
    *,
    verbose: bool = False,
) -> AsyncGenerator[BuildContext, None]:
    """Create and tear down all shared resources for one run."""
    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    workspace_dir: Path | None = None
    if settings.workspace.root is not None:
        workspace_dir = Path(settings.workspace.root).expanduser()
        workspace_dir.mkdir(parents=True, exist_ok=True)
    workspace = Path(tempfile.mkdtemp(prefix="ipdocs-", dir=workspace_dir))

    http_client = build_http_client(settings.fetcher)
    store_client = build_store_client(settings.store)
    db = await aiosqlite.connect(str(db_path))
    try:
        cache = Cache(db)
        await cache.init_db()

        yield BuildContext(
            settings=settings,
            workspace=workspace,
            store=IpfsStore(store_client),
            cache=cache,
            fetcher=Fetcher(http_client, settings.fetcher),
            metadata=MetadataResolver(settings.generator, verbose=verbose),
            generator=DocGenerator(settings.generator, verbose=verbose),
            verbose=verbose,
        )
    finally:
        await db.close()
        await store_client.aclose()
        await http_client.aclose()
        if settings.workspace.keep:
            log.info("workspace_kept", path=str(workspace))
        else:
            shutil.rmtree(workspace, ignore_errors=True)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


@dataclass
class BuildOutcome:
    artifact: str
    indexed: str | None
    index_root: str


async def publish(pv: PackageVersion, ctx: BuildContext) -> BuildOutcome:
    """Build ``pv``, pin it, and record it in the global index."""
    pointer_path = Path(ctx.settings.index.pointer_path).expanduser()
    index_root = load_index_root(pointer_path)

    artifact = await build(pv, (), ctx)
    await ctx.store.pin(artifact)

    new_root = await add_to_index(ctx.store, index_root, pv, artifact)
    if new_root != index_root:
        await ctx.store.pin(new_root)
        try:
            save_index_root(pointer_path, new_root)
        except OSError as exc:
            raise StoreError(
                f"Could not persist index pointer {pointer_path}: {exc}",
                suggestion=f"The new index root is {new_root}; write it to the pointer manually.",
            ) from exc

    indexed = await lookup(ctx.store, new_root, pv)
    return BuildOutcome(artifact=artifact, indexed=indexed, index_root=new_root)


async def run_build(
    pv: PackageVersion,
    settings: Settings,
    *,
    verbose: bool = False,
) -> BuildOutcome:
    async with open_context(settings, verbose=verbose) as ctx:
        return await publish(pv, ctx)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="ipdocs",
    help="Build documentation for a crate and its dependencies and publish it to IPFS.",
    add_completion=False,
    pretty_exceptions_enable=False,
)


@app.command()
def main(
    name: Annotated[str, typer.Argument(help="Package name")],
    version: Annotated[str, typer.Argument(help="Exact package version")],
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show external tool output and debug logs")
    ] = False,
) -> None:
    settings = Settings()
    _setup_logging(settings, verbose=verbose)

    pv = PackageVersion(name, version)
    log.info("run_starting", version=__version__, package=str(pv))

    try:
        outcome = asyncio.run(run_build(pv, settings, verbose=verbose))
    except IpdocsError as exc:
        log.error("build_failed", package=str(pv), **exc.to_dict()["error"])
        raise typer.Exit(code=1) from exc

    log.info(
        "run_complete",
        package=str(pv),
        hash=outcome.artifact,
        indexed=outcome.indexed,
        index_root=outcome.index_root,
    )
    typer.echo(outcome.artifact)


if __name__ == "__main__":
    app()
