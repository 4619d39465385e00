from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from docvault.errors import NotFoundError
from docvault.models import FileNode, FolderNode, Node
from docvault.services.tree_cache import TreeCache, split_path

logger = logging.getLogger(__name__)

ROOT_PATH = "/"
SORT_KEYS = ("name", "date", "size", "type")


@dataclass
class NavigationState:
    """Where the user currently is inside the active scope."""

    current_path: str = ROOT_PATH
    current_folder_id: Optional[str] = None

    @property
    def at_root(self) -> bool:
        return self.current_folder_id is None


@dataclass(frozen=True)
class Breadcrumb:
    label: str
    path: str


def _sort_value(node: Node, sort_by: str):
    if sort_by == "date":
        stamp = node.updated_at if isinstance(node, FileNode) else node.created_at
        return stamp.timestamp() if stamp is not None else 0.0
    if sort_by == "size":
        return node.size if isinstance(node, FileNode) else 0
    if sort_by == "type":
        return node.mime_type.lower() if isinstance(node, FileNode) else "folder"
    return node.name.lower()


def sort_nodes(nodes: List[Node], sort_by: str = "name", order: str = "asc") -> List[Node]:
    """Folders first, then by key; ``desc`` reverses within each group."""
    if sort_by not in SORT_KEYS:
        sort_by = "name"
    reverse = order == "desc"
    folders = [n for n in nodes if isinstance(n, FolderNode)]
    files = [n for n in nodes if not isinstance(n, FolderNode)]
    folders.sort(key=lambda n: _sort_value(n, sort_by), reverse=reverse)
    files.sort(key=lambda n: _sort_value(n, sort_by), reverse=reverse)
    return folders + files


class NavigationController:
    """Owns the navigation state and derives the current view from the cache."""

    def __init__(self, cache: TreeCache, state: Optional[NavigationState] = None) -> None:
        self.cache = cache
        self.state = state or NavigationState()
        self._history: List[str] = [self.state.current_path]
        self._history_index = 0

    def reset(self) -> None:
        """Back to the scope root; called whenever the scope changes."""
        self.state.current_path = ROOT_PATH
        self.state.current_folder_id = None
        self._history = [ROOT_PATH]
        self._history_index = 0

    # ---- transitions ----
    def enter_folder(self, target_path: str) -> bool:
        if self._resolve_into(target_path):
            self._push(self.state.current_path)
            return True
        return False

    def navigate_to_breadcrumb_segment(self, accumulated_path: str) -> bool:
        if not split_path(accumulated_path):
            return self.go_home()
        return self.enter_folder(accumulated_path)

    def go_home(self) -> bool:
        self.state.current_path = ROOT_PATH
        self.state.current_folder_id = None
        self._push(ROOT_PATH)
        return True

    def go_up(self) -> bool:
        parts = split_path(self.state.current_path)
        if not parts:
            return False
        return self.navigate_to_breadcrumb_segment("/" + "/".join(parts[:-1]))

    def can_go_back(self) -> bool:
        return self._history_index > 0

    def can_go_forward(self) -> bool:
        return 0 <= self._history_index < len(self._history) - 1

    def go_back(self) -> bool:
        if not self.can_go_back():
            return False
        target = self._history[self._history_index - 1]
        if self._resolve_into(target):
            self._history_index -= 1
            return True
        return False

    def go_forward(self) -> bool:
        if not self.can_go_forward():
            return False
        target = self._history[self._history_index + 1]
        if self._resolve_into(target):
            self._history_index += 1
            return True
        return False

    def revalidate(self) -> None:
        """Re-anchor the state after a rebuild (renamed, moved or deleted folder)."""
        folder_id = self.state.current_folder_id
        if folder_id is None:
            return
        node = self.cache.tree.by_id.get(folder_id)
        if isinstance(node, FolderNode):
            self.state.current_path = node.path
            return
        parts = split_path(self.state.current_path)
        # Fall back to the nearest surviving ancestor
        while parts:
            parts.pop()
            if self._resolve_into("/" + "/".join(parts)):
                return
        self.state.current_path = ROOT_PATH
        self.state.current_folder_id = None

    # ---- derived views ----
    def current_view(self, sort_by: Optional[str] = None, order: str = "asc") -> List[Node]:
        """Direct children of the active folder, always read fresh from the cache."""
        try:
            nodes = self.cache.children_of(self.state.current_folder_id)
        except NotFoundError:
            logger.warning(
                f"Current folder {self.state.current_folder_id} is gone from the tree"
            )
            return []
        if sort_by:
            return sort_nodes(nodes, sort_by, order)
        return nodes

    def breadcrumb_trail(self) -> List[Breadcrumb]:
        trail: List[Breadcrumb] = []
        accumulated = ""
        for part in split_path(self.state.current_path):
            accumulated += f"/{part}"
            trail.append(Breadcrumb(part, accumulated))
        return trail

    # ---- internals ----
    def _resolve_into(self, target_path: str) -> bool:
        try:
            node = self.cache.find_by_path(target_path)
        except NotFoundError:
            logger.warning(f"Cannot navigate to {target_path!r}: path no longer exists")
            return False
        if node is None:
            self.state.current_path = ROOT_PATH
            self.state.current_folder_id = None
            return True
        if not isinstance(node, FolderNode):
            logger.warning(f"Cannot navigate to {target_path!r}: not a folder")
            return False
        self.state.current_path = node.path
        self.state.current_folder_id = node.id
        return True

    def _push(self, path: str) -> None:
        if self._history and self._history[self._history_index] == path:
            return
        # Truncate forward history and append
        self._history = self._history[: self._history_index + 1]
        self._history.append(path)
        self._history_index = len(self._history) - 1
