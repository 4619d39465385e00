import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Ensure root is importable as package base (so `import docvault...` works)
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Make Qt operate without a display during tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from docvault.errors import NetworkFailure, NotFoundError  # noqa: E402
from docvault.models import FileRecord, FolderRecord, Scope, ScopeKind  # noqa: E402


class FakeHierarchyBackend:
    """In-memory store speaking the same interface as HierarchyClient."""

    def __init__(self) -> None:
        self.folders: Dict[str, FolderRecord] = {}
        self.files: Dict[str, FileRecord] = {}
        self.calls: List[Tuple] = []
        self.chunks: List[Tuple[str, int, int]] = []
        self.sessions: Dict[str, Dict] = {}
        self.aborted: List[str] = []
        # Method name -> exception raised on the next call(s)
        self.fail: Dict[str, Exception] = {}
        self.fail_upload_names: set = set()
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    def _check(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        exc = self.fail.get(method)
        if exc is not None:
            raise exc

    # ---- seeding ----
    def add_folder(self, fid: str, name: str, parent_id: Optional[str] = None) -> None:
        self.folders[fid] = FolderRecord(id=fid, name=name, parent_id=parent_id)

    def add_file(
        self, fid: str, name: str, folder_id: Optional[str] = None, size: int = 0
    ) -> None:
        self.files[fid] = FileRecord(
            id=fid, name=name, folder_id=folder_id, size=size, url=f"/files/{fid}/content"
        )

    # ---- listing ----
    def list_scope(self, scope: Scope):
        self._check("list_scope", scope)
        return list(self.folders.values()), list(self.files.values())

    def list_folder(self, scope: Scope, folder_id: Optional[str] = None):
        self._check("list_folder", scope, folder_id)
        return (
            [f for f in self.folders.values() if f.parent_id == folder_id],
            [f for f in self.files.values() if f.folder_id == folder_id],
        )

    # ---- mutations ----
    def create_folder(self, scope, parent_id, name, description=None):
        self._check("create_folder", scope, parent_id, name)
        rec = FolderRecord(
            id=self._next_id("f"), name=name, parent_id=parent_id, description=description
        )
        self.folders[rec.id] = rec
        return rec

    def rename_folder(self, folder_id, name):
        self._check("rename_folder", folder_id, name)
        if folder_id not in self.folders:
            raise NotFoundError(f"Resource not found (404): {folder_id}")
        self.folders[folder_id] = replace(self.folders[folder_id], name=name)
        return self.folders[folder_id]

    def rename_file(self, file_id, name):
        self._check("rename_file", file_id, name)
        if file_id not in self.files:
            raise NotFoundError(f"Resource not found (404): {file_id}")
        self.files[file_id] = replace(self.files[file_id], name=name)
        return self.files[file_id]

    def move_folder(self, folder_id, parent_id):
        self._check("move_folder", folder_id, parent_id)
        self.folders[folder_id] = replace(self.folders[folder_id], parent_id=parent_id)
        return self.folders[folder_id]

    def move_file(self, file_id, folder_id):
        self._check("move_file", file_id, folder_id)
        self.files[file_id] = replace(self.files[file_id], folder_id=folder_id)
        return self.files[file_id]

    def delete_folder(self, folder_id):
        self._check("delete_folder", folder_id)
        doomed = {folder_id}
        changed = True
        while changed:
            changed = False
            for f in self.folders.values():
                if f.parent_id in doomed and f.id not in doomed:
                    doomed.add(f.id)
                    changed = True
        for fid in doomed:
            self.folders.pop(fid, None)
        for file_id in [k for k, v in self.files.items() if v.folder_id in doomed]:
            del self.files[file_id]

    def delete_file(self, file_id):
        self._check("delete_file", file_id)
        self.files.pop(file_id, None)

    # ---- uploads ----
    def upload_single(self, scope, folder_id, data, file_name, mime_type="application/octet-stream"):
        self._check("upload_single", scope, folder_id, file_name)
        if file_name in self.fail_upload_names:
            raise NetworkFailure(f"Server returned 500 while trying to upload {file_name}", 500)
        payload = data.read() if hasattr(data, "read") else data
        rec = FileRecord(
            id=self._next_id("u"),
            name=file_name,
            folder_id=folder_id,
            size=len(payload),
            mime_type=mime_type,
        )
        self.files[rec.id] = rec
        return rec

    def open_upload_session(
        self, scope, folder_id, file_name, size, total_chunks, chunk_size, mime_type="application/octet-stream"
    ):
        self._check("open_upload_session", scope, folder_id, file_name, size, total_chunks)
        sid = self._next_id("s")
        self.sessions[sid] = {
            "folder_id": folder_id,
            "name": file_name,
            "size": size,
            "total": total_chunks,
            "received": 0,
        }
        return sid

    def upload_chunk(self, session_id, chunk_index, chunk, file_name):
        self._check("upload_chunk", session_id, chunk_index)
        if file_name in self.fail_upload_names:
            raise NetworkFailure(f"Server returned 500 while uploading {file_name}", 500)
        self.chunks.append((session_id, chunk_index, len(chunk)))
        self.sessions[session_id]["received"] += len(chunk)

    def complete_upload_session(self, session_id):
        self._check("complete_upload_session", session_id)
        s = self.sessions[session_id]
        rec = FileRecord(
            id=self._next_id("u"), name=s["name"], folder_id=s["folder_id"], size=s["received"]
        )
        self.files[rec.id] = rec
        return rec

    def abort_upload_session(self, session_id):
        self._check("abort_upload_session", session_id)
        self.aborted.append(session_id)
        self.sessions.pop(session_id, None)

    def download(self, url, local_path):
        self._check("download", url, local_path)
        with open(local_path, "wb") as f:
            f.write(b"content of " + url.encode("utf-8"))


@pytest.fixture
def backend() -> FakeHierarchyBackend:
    """Docs/Reports/Q1.pdf, Docs/readme.txt, Images/ and a root file."""
    b = FakeHierarchyBackend()
    b.add_folder("docs", "Docs")
    b.add_folder("reports", "Reports", "docs")
    b.add_folder("images", "Images")
    b.add_file("q1", "Q1.pdf", "reports", size=2048)
    b.add_file("readme", "readme.txt", "docs", size=10)
    b.add_file("notes", "notes.md", None, size=300)
    return b


@pytest.fixture
def scope() -> Scope:
    return Scope(ScopeKind.LIBRARY, "lib-1")
