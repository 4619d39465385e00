from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

from docvault.errors import NotFoundError
from docvault.models import CompleteTree, FolderNode, Node, Scope
from docvault.services.storage_interface import HierarchyBackend
from docvault.services.tree_builder import build_tree, walk

logger = logging.getLogger(__name__)


def split_path(path: str) -> List[str]:
    return [p for p in (path or "").replace("\\", "/").split("/") if p]


class TreeCache:
    """Holds the last complete tree for the active scope.

    ``rebuild`` builds the new forest off to the side and swaps it in under a
    lock, so readers see either the old snapshot or the new one. Nodes handed
    out are snapshots; a rebuild or scope switch invalidates them.
    """

    def __init__(self, backend: HierarchyBackend) -> None:
        self.backend = backend
        self._lock = threading.Lock()
        self._tree = CompleteTree(scope=None)

    @property
    def tree(self) -> CompleteTree:
        with self._lock:
            return self._tree

    @property
    def scope(self) -> Optional[Scope]:
        return self.tree.scope

    def rebuild(self, scope: Scope) -> CompleteTree:
        folders, files = self.backend.list_scope(scope)
        tree = build_tree(folders, files, scope=scope)
        with self._lock:
            self._tree = tree
        logger.info(f"Rebuilt {scope.label()}: {len(tree)} nodes")
        return tree

    def clear(self) -> None:
        with self._lock:
            self._tree = CompleteTree(scope=None)

    # ---- lookups ----
    def find_by_path(self, path: str) -> Optional[Node]:
        """Resolve a slash path. Root ("/" or "") returns None; misses raise NotFoundError."""
        parts = split_path(path)
        if not parts:
            return None
        node = _walk_segments(self.tree.roots, parts)
        if node is None:
            raise NotFoundError(f"No item at {path}")
        return node

    def find_by_id(self, node_id: str) -> Node:
        node = self.tree.by_id.get(node_id)
        if node is None:
            raise NotFoundError(f"No item with id {node_id}")
        return node

    def children_of(self, folder_id: Optional[str]) -> List[Node]:
        tree = self.tree
        if folder_id is None:
            return list(tree.roots)
        node = tree.by_id.get(folder_id)
        if not isinstance(node, FolderNode):
            raise NotFoundError(f"No folder with id {folder_id}")
        return list(node.children)

    def ancestor_ids(self, node_id: str) -> List[str]:
        """Ids from the node's parent up to the top-level folder."""
        by_id = self.tree.by_id
        out: List[str] = []
        node = by_id.get(node_id)
        while node is not None and node.parent_id is not None:
            out.append(node.parent_id)
            node = by_id.get(node.parent_id)
        return out

    def search(self, query: str) -> List[Node]:
        """Case-insensitive substring match on names across the whole scope."""
        needle = (query or "").strip().lower()
        if not needle:
            return []
        return [n for n in walk(self.tree.roots) if needle in n.name.lower()]


def _walk_segments(level: Sequence[Node], parts: List[str]) -> Optional[Node]:
    # Sibling names may repeat; try each candidate before giving up
    head, rest = parts[0], parts[1:]
    for node in level:
        if node.name != head:
            continue
        if not rest:
            return node
        if isinstance(node, FolderNode) and node.children:
            found = _walk_segments(node.children, rest)
            if found is not None:
                return found
    return None
