"""IPFS content-store client over the Kubo RPC API.

A single ``IpfsStore`` wraps an ``httpx.AsyncClient`` injected by the CLI's
run context, which owns the client lifecycle. Every RPC failure (network
error, non-2xx status, malformed payload) is translated to ``StoreError``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx
import structlog

from ipdocs.errors import StoreError

if TYPE_CHECKING:
    from pathlib import Path

    from ipdocs.config import StoreSettings

log = structlog.get_logger()

# CID of the empty UnixFS directory; Kubo returns it for `ipfs object new unixfs-dir`.
EMPTY_DIR_HASH = "QmUNLLsPACCz1vLxQVkXqqLX5R1X345qqfHbsf67hvA3Nn"

_DIRECTORY_CONTENT_TYPE = "application/x-directory"
_FILE_CONTENT_TYPE = "application/octet-stream"


def build_store_client(settings: StoreSettings) -> httpx.AsyncClient:
    """Create the Kubo RPC client. Called once per run."""
    return httpx.AsyncClient(
        base_url=settings.api_url.rstrip("/") + "/",
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": "ipdocs/1.0"},
    )


class IpfsStore:
    """Content-addressed store operations backed by a Kubo daemon."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def add(self, path: Path) -> str:
        """Add a file or directory tree and return its root hash."""
        root_name = path.name
        try:
            files = _multipart_entries(path)
        except OSError as exc:
            raise StoreError(f"Could not read {path} for upload: {exc}") from exc

        response = await self._post("add", files=files)

        root_hash: str | None = None
        for line in response.text.splitlines():
            if not line.strip():
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError as exc:
                raise StoreError(f"Malformed add response line: {line!r}") from exc
            if item.get("Name") == root_name:
                root_hash = item.get("Hash")

        if not root_hash:
            raise StoreError(
                f"Store did not report a root hash for {path}",
                suggestion="Check that the Kubo daemon version supports multipart directory adds.",
            )
        log.debug("store_add_complete", path=str(path), hash=root_hash)
        return root_hash

    async def patch_add_link(self, parent: str, name: str, child: str) -> str:
        """Return a new node equal to ``parent`` with ``name`` linking to ``child``."""
        response = await self._post(
            "object/patch/add-link",
            params=[("arg", parent), ("arg", name), ("arg", child), ("create", "true")],
        )
        return self._hash_from(response, "Hash")

    async def get_link(self, parent: str, name: str) -> str | None:
        """Return the hash linked under ``name``, or ``None`` if there is no such link."""
        try:
            response = await self._post("resolve", params={"arg": f"/ipfs/{parent}/{name}"})
        except StoreError as exc:
            if "no link named" in exc.message:
                return None
            raise
        path = self._hash_from(response, "Path")
        return path.removeprefix("/ipfs/")

    async def pin(self, hash_: str) -> None:
        await self._post("pin/add", params={"arg": hash_})
        log.info("store_pinned", hash=hash_)

    async def _post(self, endpoint: str, **kwargs: object) -> httpx.Response:
        try:
            response = await self._client.post(endpoint, **kwargs)  # type: ignore[arg-type]
        except httpx.HTTPError as exc:
            raise StoreError(
                f"Network error calling store endpoint {endpoint}: {exc}",
                suggestion="Check that the IPFS daemon is running and store.api_url is correct.",
            ) from exc

        if not response.is_success:
            raise StoreError(
                f"Store endpoint {endpoint} failed with HTTP {response.status_code}: "
                f"{_error_message(response)}"
            )
        return response

    @staticmethod
    def _hash_from(response: httpx.Response, key: str) -> str:
        try:
            value = response.json()[key]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise StoreError(f"Malformed store response: missing {key!r}") from exc
        if not isinstance(value, str) or not value:
            raise StoreError(f"Malformed store response: {key!r} is not a hash")
        return value


def _multipart_entries(path: Path) -> list[tuple[str, tuple[str, bytes, str]]]:
    """Build the ``add`` form parts for a file or directory tree.

    Contents are read eagerly, one file at a time; no file handle outlives
    its read.
    """
    root_name = path.name
    if not path.is_dir():
        return [("file", (quote(root_name), path.read_bytes(), _FILE_CONTENT_TYPE))]

    files = [("file", (quote(root_name), b"", _DIRECTORY_CONTENT_TYPE))]
    for entry in sorted(path.rglob("*")):
        rel = quote(f"{root_name}/{entry.relative_to(path).as_posix()}")
        if entry.is_dir():
            files.append(("file", (rel, b"", _DIRECTORY_CONTENT_TYPE)))
        elif entry.is_file():
            files.append(("file", (rel, entry.read_bytes(), _FILE_CONTENT_TYPE)))
    return files


def _error_message(response: httpx.Response) -> str:
    """Extract Kubo's ``Message`` field, falling back to the raw body."""
    try:
        return str(response.json()["Message"])
    except (json.JSONDecodeError, KeyError, TypeError):
        return response.text
