"""Global documentation index.

The index is a store node shaped ``root/<name>/<version> → artifact``. Its
current root hash lives in a single pointer file that is read once at the
start of a run and atomically replaced at the end.
"""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from typing import TYPE_CHECKING

import structlog

from ipdocs.errors import StoreError
from ipdocs.store import EMPTY_DIR_HASH

if TYPE_CHECKING:
    from pathlib import Path

    from ipdocs.models.package import PackageVersion
    from ipdocs.protocols import StoreProtocol

log = structlog.get_logger()


def load_index_root(pointer_path: Path) -> str:
    """Return the persisted index root, or the empty node when no pointer exists."""
    try:
        value = pointer_path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        log.info("index_pointer_missing", path=str(pointer_path))
        return EMPTY_DIR_HASH
    except OSError as exc:
        raise StoreError(f"Could not read index pointer {pointer_path}: {exc}") from exc

    if not value:
        log.warning("index_pointer_empty", path=str(pointer_path))
        return EMPTY_DIR_HASH
    return value


def save_index_root(pointer_path: Path, root: str) -> None:
    """Persist the index root with atomic replace semantics."""
    pointer_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = pointer_path.with_suffix(pointer_path.suffix + ".tmp")
    try:
        _write_bytes_fsync(tmp_path, (root + "\n").encode("utf-8"))
        os.replace(tmp_path, pointer_path)
        _fsync_directory(pointer_path.parent)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)


async def add_to_index(
    store: StoreProtocol,
    root: str,
    pv: PackageVersion,
    artifact: str,
) -> str:
    """Return a new index root that maps ``pv`` to ``artifact``.

    Recorded versions are never replaced: if ``pv`` already maps to a
    different hash the existing mapping is kept and the old root returned.
    """
    name_node = await store.get_link(root, pv.name)
    if name_node is None:
        name_node = EMPTY_DIR_HASH
    else:
        existing = await store.get_link(name_node, pv.version)
        if existing == artifact:
            log.info("index_unchanged", package=str(pv), hash=artifact)
            return root
        if existing is not None:
            log.warning(
                "index_conflict",
                package=str(pv),
                recorded=existing,
                rejected=artifact,
            )
            return root

    name_node = await store.patch_add_link(name_node, pv.version, artifact)
    new_root = await store.patch_add_link(root, pv.name, name_node)
    log.info("index_updated", package=str(pv), hash=artifact, root=new_root)
    return new_root


async def lookup(store: StoreProtocol, root: str, pv: PackageVersion) -> str | None:
    """Return the artifact recorded for ``pv``, if any."""
    name_node = await store.get_link(root, pv.name)
    if name_node is None:
        return None
    return await store.get_link(name_node, pv.version)


def _write_bytes_fsync(path: Path, data: bytes) -> None:
    with path.open("wb") as file_obj:
        file_obj.write(data)
        file_obj.flush()
        os.fsync(file_obj.fileno())


def _fsync_directory(path: Path) -> None:
    if sys.platform == "win32":
        return  # Windows does not support fsync on directory handles
    directory_fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(directory_fd)
    finally:
        os.close(directory_fd)
