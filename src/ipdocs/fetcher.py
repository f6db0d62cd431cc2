"""Crate source fetcher.

Downloads ``.crate`` archives over HTTP and keeps them in a persistent
directory keyed by identity, so a package is downloaded at most once across
runs. The Fetcher receives an httpx.AsyncClient via constructor injection;
the run context owns the client lifecycle.
"""

from __future__ import annotations

import asyncio
import os
import tarfile
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import structlog

from ipdocs.errors import FetchError

if TYPE_CHECKING:
    from ipdocs.config import FetcherSettings

log = structlog.get_logger()


def build_http_client(settings: FetcherSettings) -> httpx.AsyncClient:
    """Create the download client. Called once per run."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": "ipdocs/1.0"},
        limits=httpx.Limits(
            max_connections=4,
            max_keepalive_connections=2,
        ),
    )


def is_safe_member(member: tarfile.TarInfo, dest: Path) -> bool:
    """Reject absolute paths, ``..`` components, links, and anything resolving outside ``dest``."""
    if member.name.startswith(("/", "\\")):
        return False
    if ".." in Path(member.name).parts:
        return False
    if member.issym() or member.islnk():
        return False
    resolved = (dest / member.name).resolve()
    try:
        resolved.relative_to(dest.resolve())
    except ValueError:
        return False
    return True


def _extract(archive: Path, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "r:gz") as tar:
        for member in tar.getmembers():
            if not is_safe_member(member, dest):
                log.warning("unsafe_archive_member_skipped", archive=str(archive), member=member.name)
                continue
            tar.extract(member, path=dest, set_attrs=False, filter="data")


class Fetcher:
    """Crate archive fetcher with an on-disk archive cache."""

    def __init__(self, client: httpx.AsyncClient, settings: FetcherSettings) -> None:
        self._client = client
        self._url_template = settings.download_url
        self._crates_dir = Path(settings.crates_dir).expanduser()

    def archive_path(self, name: str, version: str) -> Path:
        return self._crates_dir / f"{name}-{version}.crate"

    async def fetch(self, name: str, version: str) -> Path:
        """Return the local archive path, downloading it on first use.

        Raises FetchError on network errors and non-2xx responses.
        """
        archive = self.archive_path(name, version)
        if archive.is_file():
            log.debug("fetch_cache_hit", package=f"{name}@{version}", path=str(archive))
            return archive

        url = self._url_template.format(name=name, version=version)
        tmp = archive.with_suffix(archive.suffix + ".tmp")
        try:
            archive.parent.mkdir(parents=True, exist_ok=True)
            async with self._client.stream("GET", url) as response:
                if response.status_code == 404:
                    raise FetchError(
                        f"HTTP 404 fetching {url}",
                        suggestion="Check that the package name and version exist on the registry.",
                    )
                if not response.is_success:
                    raise FetchError(f"HTTP {response.status_code} fetching {url}")
                with tmp.open("wb") as file_obj:
                    async for chunk in response.aiter_bytes():
                        file_obj.write(chunk)
            os.replace(tmp, archive)
        except httpx.HTTPError as exc:
            raise FetchError(
                f"Network error fetching {url}: {exc}",
                suggestion="The package registry may be temporarily unavailable.",
            ) from exc
        except OSError as exc:
            raise FetchError(f"Could not write archive {archive}: {exc}") from exc
        finally:
            with suppress(OSError):
                tmp.unlink(missing_ok=True)

        log.info("fetch_complete", url=url, size=archive.stat().st_size)
        return archive

    async def unpack(self, archive: Path, dest: Path) -> Path:
        """Extract ``archive`` into ``dest`` and return the package source directory.

        Crate archives hold a single top-level ``<name>-<version>/`` directory.
        """
        source_dir = dest / archive.name.removesuffix(".crate")
        try:
            await asyncio.to_thread(_extract, archive, dest)
        except (tarfile.TarError, OSError, EOFError) as exc:
            raise FetchError(
                f"Could not unpack {archive}: {exc}",
                suggestion="Delete the cached archive to force a fresh download.",
            ) from exc
        if not source_dir.is_dir():
            raise FetchError(f"Archive {archive} did not contain {source_dir.name}/")
        return source_dir
