from __future__ import annotations

from typing import BinaryIO, Dict, List, Optional, Protocol, Tuple, Union

from docvault.config import Settings
from docvault.models import FileRecord, FolderRecord, Scope, ScopeKind

Listing = Tuple[List[FolderRecord], List[FileRecord]]


class HierarchyBackend(Protocol):
    """What the tree cache, mutation and upload services need from a store."""

    def list_scope(self, scope: Scope) -> Listing: ...
    def list_folder(self, scope: Scope, folder_id: Optional[str] = None) -> Listing: ...
    def create_folder(
        self,
        scope: Scope,
        parent_id: Optional[str],
        name: str,
        description: Optional[str] = None,
    ) -> FolderRecord: ...
    def rename_folder(self, folder_id: str, name: str) -> FolderRecord: ...
    def rename_file(self, file_id: str, name: str) -> FileRecord: ...
    def move_folder(self, folder_id: str, parent_id: Optional[str]) -> FolderRecord: ...
    def move_file(self, file_id: str, folder_id: Optional[str]) -> FileRecord: ...
    def delete_folder(self, folder_id: str) -> None: ...
    def delete_file(self, file_id: str) -> None: ...
    def upload_single(
        self,
        scope: Scope,
        folder_id: Optional[str],
        data: Union[bytes, BinaryIO],
        file_name: str,
        mime_type: str = "application/octet-stream",
    ) -> FileRecord: ...
    def open_upload_session(
        self,
        scope: Scope,
        folder_id: Optional[str],
        file_name: str,
        size: int,
        total_chunks: int,
        chunk_size: int,
        mime_type: str = "application/octet-stream",
    ) -> str: ...
    def upload_chunk(
        self, session_id: str, chunk_index: int, chunk: bytes, file_name: str
    ) -> None: ...
    def complete_upload_session(self, session_id: str) -> FileRecord: ...
    def abort_upload_session(self, session_id: str) -> None: ...
    def download(self, url: str, local_path: str) -> None: ...


def get_backend(settings: Settings) -> HierarchyBackend:
    # Lazy import keeps requests out of pure tree/navigation use
    from docvault.services.hierarchy.client import HierarchyClient

    if not settings.base_url.strip():
        raise RuntimeError("Not connected: no server URL configured")
    return HierarchyClient(
        base_url=settings.base_url.strip(),
        token=settings.token.strip(),
        tenant_id=settings.tenant_id.strip(),
        timeout=settings.api_timeout,
        chunk_timeout=settings.chunk_timeout,
        verify=settings.verify_tls,
    )


def scope_from_session(session_info: Dict[str, str]) -> Scope:
    """Resolve the active scope from UI session fields (mode + target id)."""
    mode = (session_info.get("scope") or session_info.get("mode") or "").strip().lower()
    target = (session_info.get("scope_id") or "").strip()
    if mode in {"library", "libraries"}:
        if not target:
            raise ValueError("A library id is required for library scope")
        return Scope(ScopeKind.LIBRARY, target)
    if mode in {"user_files", "user files", "user", "users"}:
        target = target or (session_info.get("user_id") or "").strip()
        if not target:
            raise ValueError("A user id is required for user files scope")
        return Scope(ScopeKind.USER_FILES, target)
    return Scope(ScopeKind.PUBLIC_DOCUMENTS)
