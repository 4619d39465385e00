from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from docvault.config import DEFAULT_CHUNK_SIZE, Settings
from docvault.errors import HierarchyError, NotFoundError, ValidationError
from docvault.models import CompleteTree, FileNode, FolderRecord, Node, Scope
from docvault.services.mutations import MutationService
from docvault.services.navigation import Breadcrumb, NavigationController
from docvault.services.storage_interface import HierarchyBackend, get_backend
from docvault.services.sync import SyncNotifier
from docvault.services.tree_cache import TreeCache
from docvault.services.uploads import (
    PendingFile,
    ProgressCallback,
    StatusCallback,
    UploadBatch,
    UploadCoordinator,
)

logger = logging.getLogger(__name__)


class FileManager:
    """One scope's cache, navigation state, mutations and uploads, wired together.

    Every successful mutation or upload batch ends with a full rebuild followed
    by a navigation revalidation, so the current view is always one child
    lookup away from the complete tree.

    Callers that run the store work on a worker thread pass
    ``revalidate=False`` (or ``reset=False`` for ``open_scope``) and call
    ``revalidate()`` / ``navigation.reset()`` back on the UI thread, so the
    navigation state is only ever written from one thread.
    """

    def __init__(
        self,
        backend: HierarchyBackend,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        notifier: Optional[SyncNotifier] = None,
    ) -> None:
        self.backend = backend
        self.notifier = notifier or SyncNotifier()
        self.cache = TreeCache(backend)
        self.navigation = NavigationController(self.cache)
        self.mutations = MutationService(backend, self.cache, self.notifier)
        self.uploads = UploadCoordinator(backend, chunk_size, self.notifier)
        self.scope: Optional[Scope] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "FileManager":
        return cls(get_backend(settings), chunk_size=settings.chunk_size)

    def _require_scope(self) -> Scope:
        if self.scope is None:
            raise NotFoundError("No scope is open")
        return self.scope

    # ---- loading ----
    def open_scope(self, scope: Scope, *, reset: bool = True) -> CompleteTree:
        # A failed load keeps the previous scope, tree and position
        tree = self.cache.rebuild(scope)
        self.scope = scope
        if reset:
            self.navigation.reset()
        return tree

    def rebuild(self) -> CompleteTree:
        return self.cache.rebuild(self._require_scope())

    def revalidate(self) -> None:
        self.navigation.revalidate()

    def refresh(self) -> CompleteTree:
        tree = self.rebuild()
        self.revalidate()
        return tree

    @property
    def refresh_error(self) -> Optional[str]:
        """Rebuild failure left behind by the last mutation, if any."""
        return self.mutations.refresh_error

    # ---- navigation ----
    def enter_folder(self, path: str) -> bool:
        return self.navigation.enter_folder(path)

    def current_view(self, sort_by: Optional[str] = None, order: str = "asc") -> List[Node]:
        return self.navigation.current_view(sort_by, order)

    def breadcrumb_trail(self) -> List[Breadcrumb]:
        return self.navigation.breadcrumb_trail()

    def search(self, query: str) -> List[Node]:
        return self.cache.search(query)

    # ---- mutations ----
    def create_folder(
        self,
        name: str,
        description: Optional[str] = None,
        *,
        revalidate: bool = True,
    ) -> FolderRecord:
        record = self.mutations.create_folder(
            self._require_scope(),
            self.navigation.state.current_folder_id,
            name,
            description,
        )
        if revalidate:
            self.revalidate()
        return record

    def rename(self, node_id: str, new_name: str, *, revalidate: bool = True) -> Node:
        node = self.mutations.rename(node_id, new_name)
        if revalidate:
            self.revalidate()
        return node

    def move(
        self, node_id: str, target_folder_id: Optional[str], *, revalidate: bool = True
    ) -> Node:
        node = self.mutations.move(node_id, target_folder_id)
        if revalidate:
            self.revalidate()
        return node

    def remove(self, node_id: str, *, revalidate: bool = True) -> None:
        self.mutations.remove(node_id)
        if revalidate:
            self.revalidate()

    # ---- transfers ----
    def upload(
        self,
        files: Sequence[PendingFile],
        on_progress: Optional[ProgressCallback] = None,
        on_status: Optional[StatusCallback] = None,
        *,
        revalidate: bool = True,
    ) -> UploadBatch:
        """Upload into the current folder, then rebuild if anything landed."""
        scope = self._require_scope()
        batch = self.uploads.upload(
            scope,
            self.navigation.state.current_folder_id,
            files,
            on_progress=on_progress,
            on_status=on_status,
        )
        if batch.any_succeeded:
            try:
                self.rebuild()
            except HierarchyError as e:
                logger.error(f"Rebuild after upload failed: {e}")
                batch.refresh_error = str(e)
            if revalidate:
                self.revalidate()
        return batch

    def download(self, node_id: str, local_path: str) -> None:
        node = self.cache.find_by_id(node_id)
        if not isinstance(node, FileNode):
            raise ValidationError(f"{node.name} is a folder and cannot be downloaded")
        if not node.url:
            raise NotFoundError(f"{node.name} has no download location")
        self.backend.download(node.url, local_path)
