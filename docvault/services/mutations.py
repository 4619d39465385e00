from __future__ import annotations

import logging
import re
from typing import Optional

from docvault.errors import HierarchyError, NotFoundError, ValidationError
from docvault.models import FolderNode, FolderRecord, Node, NodeKind, Scope
from docvault.services.storage_interface import HierarchyBackend
from docvault.services.sync import SyncEventType, SyncNotifier
from docvault.services.tree_cache import TreeCache

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
_INVALID_NAME = re.compile(r'[<>:"/\\|?*]')


def validate_name(name: str, what: str = "name") -> str:
    """Return the stripped name or raise ValidationError."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"The {what} is required")
    if cleaned in (".", ".."):
        raise ValidationError(f"{cleaned!r} is not a valid {what}")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"The {what} is longer than {MAX_NAME_LENGTH} characters")
    if _INVALID_NAME.search(cleaned) or any(ord(c) < 32 for c in cleaned):
        raise ValidationError(f'Invalid characters in {what} (not allowed: < > : " / \\ | ? *)')
    return cleaned


class MutationService:
    """Create, rename, move and delete against the store, then rebuild.

    Targets are always resolved against the complete tree, never the current
    view. When the store call fails the cache is left untouched and the typed
    error propagates. When the store call succeeds but the follow-up rebuild
    fails, the change stands: the event is still emitted and the rebuild error
    is kept on ``refresh_error``.
    """

    def __init__(
        self,
        backend: HierarchyBackend,
        cache: TreeCache,
        notifier: Optional[SyncNotifier] = None,
    ) -> None:
        self.backend = backend
        self.cache = cache
        self.notifier = notifier
        self.refresh_error: Optional[str] = None

    def _scope(self) -> Scope:
        scope = self.cache.scope
        if scope is None:
            raise NotFoundError("No scope is loaded")
        return scope

    def _emit(self, kind: SyncEventType, node_id: str, node_kind: NodeKind) -> None:
        if self.notifier:
            self.notifier.emit(kind, node_id, node_kind)

    def _rebuild(self, scope: Scope) -> None:
        try:
            self.cache.rebuild(scope)
        except HierarchyError as e:
            logger.error(f"Rebuild after change failed: {e}")
            self.refresh_error = str(e)

    def create_folder(
        self,
        scope: Scope,
        parent_folder_id: Optional[str],
        name: str,
        description: Optional[str] = None,
    ) -> FolderRecord:
        self.refresh_error = None
        name = validate_name(name, "folder name")
        if scope != self._scope():
            raise ValidationError(f"{scope.label()} is not the open scope")
        if parent_folder_id is not None:
            parent = self.cache.find_by_id(parent_folder_id)
            if not isinstance(parent, FolderNode):
                raise ValidationError(f"{parent.name} is not a folder")
        record = self.backend.create_folder(
            scope, parent_folder_id, name, (description or "").strip() or None
        )
        logger.info(f"Created folder {record.id} ({name!r})")
        self._rebuild(scope)
        self._emit(SyncEventType.CREATE, record.id, NodeKind.FOLDER)
        return record

    def rename(self, node_id: str, new_name: str) -> Node:
        self.refresh_error = None
        new_name = validate_name(new_name)
        node = self.cache.find_by_id(node_id)
        if node.kind == NodeKind.FOLDER:
            self.backend.rename_folder(node.id, new_name)
        else:
            self.backend.rename_file(node.id, new_name)
        logger.info(f"Renamed {node.kind.value} {node.id}: {node.name!r} -> {new_name!r}")
        self._rebuild(self._scope())
        self._emit(SyncEventType.RENAME, node.id, node.kind)
        return self.cache.tree.by_id.get(node.id, node)

    def move(self, node_id: str, target_folder_id: Optional[str]) -> Node:
        self.refresh_error = None
        node = self.cache.find_by_id(node_id)
        if target_folder_id is not None:
            target = self.cache.find_by_id(target_folder_id)
            if not isinstance(target, FolderNode):
                raise ValidationError(f"{target.name} is not a folder")
            if node.kind == NodeKind.FOLDER and (
                target.id == node.id or node.id in self.cache.ancestor_ids(target.id)
            ):
                raise ValidationError("Cannot move a folder into itself or its own child")
        if node.parent_id == target_folder_id:
            return node
        if node.kind == NodeKind.FOLDER:
            self.backend.move_folder(node.id, target_folder_id)
        else:
            self.backend.move_file(node.id, target_folder_id)
        logger.info(f"Moved {node.kind.value} {node.id} to {target_folder_id or 'root'}")
        self._rebuild(self._scope())
        self._emit(SyncEventType.MOVE, node.id, node.kind)
        return self.cache.tree.by_id.get(node.id, node)

    def remove(self, node_id: str) -> None:
        self.refresh_error = None
        node = self.cache.find_by_id(node_id)
        # Folder deletes cascade server-side
        if node.kind == NodeKind.FOLDER:
            self.backend.delete_folder(node.id)
        else:
            self.backend.delete_file(node.id)
        logger.info(f"Deleted {node.kind.value} {node.id} ({node.name!r})")
        self._rebuild(self._scope())
        self._emit(SyncEventType.DELETE, node.id, node.kind)
