from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# Store payloads mark "scope root" in a few different ways
_ROOT_SENTINELS = (None, "", "root", "null")


class NodeKind(str, Enum):
    FOLDER = "folder"
    FILE = "file"


class ScopeKind(str, Enum):
    LIBRARY = "library"
    USER_FILES = "user_files"
    PUBLIC_DOCUMENTS = "public_documents"


@dataclass(frozen=True)
class Scope:
    """A named partition of the hierarchy. Trees are never merged across scopes."""

    kind: ScopeKind
    identifier: str = ""

    @property
    def prefix(self) -> str:
        if self.kind == ScopeKind.LIBRARY:
            return f"/libraries/{self.identifier}"
        if self.kind == ScopeKind.USER_FILES:
            return f"/users/{self.identifier}/files"
        return "/documents"

    def label(self) -> str:
        if self.kind == ScopeKind.PUBLIC_DOCUMENTS:
            return "Public documents"
        if self.kind == ScopeKind.USER_FILES:
            return f"User files ({self.identifier})"
        return f"Library ({self.identifier})"


def _normalize_parent(value: Any) -> Optional[str]:
    if value in _ROOT_SENTINELS:
        return None
    return str(value)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        if isinstance(value, (int, float)):
            ts = float(value)
            # Heuristic: values this large are milliseconds
            if ts > 10_000_000_000:
                ts = ts / 1000.0
            return datetime.fromtimestamp(ts)
        s = str(value).strip()
        if s.isdigit():
            return _parse_timestamp(int(s))
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _record_id(data: Dict[str, Any]) -> str:
    raw = data.get("id")
    if raw in (None, ""):
        raise ValueError(f"record without an id: {sorted(data)}")
    return str(raw)


def _owner(data: Dict[str, Any]) -> Optional[str]:
    raw = data.get("ownerId") or data.get("userId") or data.get("createdBy")
    if isinstance(raw, dict):
        raw = raw.get("id")
    return str(raw) if raw not in (None, "") else None


@dataclass
class FolderRecord:
    id: str
    name: str
    parent_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    owner_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FolderRecord":
        return cls(
            id=_record_id(data),
            name=str(data.get("name") or ""),
            parent_id=_normalize_parent(data.get("parentId", data.get("parent_id"))),
            description=data.get("description") or None,
            created_at=_parse_timestamp(data.get("createdAt") or data.get("created_at")),
            owner_id=_owner(data),
        )


@dataclass
class FileRecord:
    id: str
    name: str
    folder_id: Optional[str] = None
    size: int = 0
    mime_type: str = "application/octet-stream"
    url: str = ""
    owner_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        try:
            size = max(0, int(data.get("size") or 0))
        except (TypeError, ValueError):
            size = 0
        return cls(
            id=_record_id(data),
            name=str(data.get("name") or data.get("originalName") or ""),
            folder_id=_normalize_parent(
                data.get("folderId", data.get("parentId", data.get("folder_id")))
            ),
            size=size,
            mime_type=str(
                data.get("mimeType")
                or data.get("mimetype")
                or data.get("type")
                or "application/octet-stream"
            ),
            url=str(data.get("url") or ""),
            owner_id=_owner(data),
            updated_at=_parse_timestamp(
                data.get("updatedAt") or data.get("updated_at") or data.get("createdAt")
            ),
        )


@dataclass
class FolderNode:
    id: str
    name: str
    parent_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    owner_id: Optional[str] = None
    children: List["Node"] = field(default_factory=list)
    # Derived; recomputed after every rebuild
    path: str = ""
    kind: NodeKind = field(default=NodeKind.FOLDER, init=False)

    @property
    def is_folder(self) -> bool:
        return True

    @classmethod
    def from_record(cls, record: FolderRecord) -> "FolderNode":
        return cls(
            id=record.id,
            name=record.name,
            parent_id=record.parent_id,
            description=record.description,
            created_at=record.created_at,
            owner_id=record.owner_id,
        )


@dataclass
class FileNode:
    id: str
    name: str
    parent_id: Optional[str] = None
    size: int = 0
    mime_type: str = "application/octet-stream"
    url: str = ""
    owner_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    path: str = ""
    kind: NodeKind = field(default=NodeKind.FILE, init=False)

    @property
    def is_folder(self) -> bool:
        return False

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileNode":
        return cls(
            id=record.id,
            name=record.name,
            parent_id=record.folder_id,
            size=record.size,
            mime_type=record.mime_type,
            url=record.url,
            owner_id=record.owner_id,
            updated_at=record.updated_at,
        )


Node = Union[FolderNode, FileNode]


@dataclass(frozen=True)
class CompleteTree:
    """Immutable snapshot of one scope's forest plus its id index."""

    scope: Optional[Scope]
    roots: Tuple[Node, ...] = ()
    by_id: Dict[str, Node] = field(default_factory=dict)
    orphans: Tuple[str, ...] = ()
    built_at: datetime = field(default_factory=datetime.now)

    def __len__(self) -> int:
        return len(self.by_id)


def parse_listing(
    payload: Dict[str, Any],
) -> Tuple[List[FolderRecord], List[FileRecord]]:
    """Turn a ``{folders, files}`` store payload into typed records."""
    folders = [FolderRecord.from_dict(f) for f in payload.get("folders") or []]
    files = [FileRecord.from_dict(f) for f in payload.get("files") or []]
    return folders, files
