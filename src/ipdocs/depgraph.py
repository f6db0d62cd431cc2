"""Dependency graph node assembly."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ipdocs.store import EMPTY_DIR_HASH

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ipdocs.models.package import DependencyLink
    from ipdocs.protocols import StoreProtocol


async def build_deps_node(store: StoreProtocol, links: Sequence[DependencyLink]) -> str:
    """Return a node with one child per link, named by package name.

    Package names are unique within one dependency set, while library names
    may collide. No links yields the canonical empty directory.
    """
    node = EMPTY_DIR_HASH
    for link in links:
        node = await store.patch_add_link(node, link.name, link.hash)
    return node
