from __future__ import annotations

import io
import logging
import math
import mimetypes
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, List, Optional, Sequence

from docvault.config import DEFAULT_CHUNK_SIZE
from docvault.errors import (
    HierarchyError,
    PartialUploadFailure,
    UploadCancelled,
)
from docvault.models import FileRecord, NodeKind, Scope
from docvault.services.storage_interface import HierarchyBackend
from docvault.services.sync import SyncEventType, SyncNotifier

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class CancelToken:
    """Per-file cancellation flag, safe to set from the UI thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, name: str = "") -> None:
        if self._event.is_set():
            raise UploadCancelled(f"Upload of {name or 'file'} was cancelled")


@dataclass
class PendingFile:
    name: str
    size: int
    path: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: str = "application/octet-stream"
    cancel_token: CancelToken = field(default_factory=CancelToken)

    @classmethod
    def from_path(cls, path: str) -> "PendingFile":
        mime, _ = mimetypes.guess_type(path)
        return cls(
            name=os.path.basename(path),
            size=os.path.getsize(path),
            path=path,
            mime_type=mime or "application/octet-stream",
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> "PendingFile":
        guessed, _ = mimetypes.guess_type(name)
        return cls(
            name=name,
            size=len(data),
            data=data,
            mime_type=mime_type or guessed or "application/octet-stream",
        )

    def open(self) -> BinaryIO:
        if self.data is not None:
            return io.BytesIO(self.data)
        if self.path is None:
            raise HierarchyError(f"No content for {self.name}")
        return open(self.path, "rb")


@dataclass
class FileOutcome:
    index: int
    name: str
    status: UploadStatus = UploadStatus.PENDING
    progress: float = 0.0
    total_chunks: int = 1
    uploaded_chunks: int = 0
    error: Optional[str] = None
    record: Optional[FileRecord] = None

    @property
    def ok(self) -> bool:
        return self.status == UploadStatus.SUCCESS


@dataclass
class UploadBatch:
    outcomes: List[FileOutcome]
    # Set by callers when the follow-up rebuild failed
    refresh_error: Optional[str] = None

    @property
    def all_succeeded(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def any_succeeded(self) -> bool:
        return any(o.ok for o in self.outcomes)

    @property
    def failed(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialUploadFailure(self.outcomes)


ProgressCallback = Callable[[int, float], None]
StatusCallback = Callable[[FileOutcome], None]


class UploadCoordinator:
    """Uploads a batch sequentially, chunking files above ``chunk_size``.

    Progress per file is reported as a percentage that never decreases and
    ends at exactly 100 on success. One file failing does not stop the batch.
    The coordinator never touches the tree cache; callers rebuild afterwards.
    """

    def __init__(
        self,
        backend: HierarchyBackend,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        notifier: Optional[SyncNotifier] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.backend = backend
        self.chunk_size = chunk_size
        self.notifier = notifier

    def total_chunks(self, size: int) -> int:
        if size <= self.chunk_size:
            return 1
        return math.ceil(size / self.chunk_size)

    def upload(
        self,
        scope: Scope,
        target_folder_id: Optional[str],
        files: Sequence[PendingFile],
        on_progress: Optional[ProgressCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> UploadBatch:
        outcomes = [
            FileOutcome(index=i, name=f.name, total_chunks=self.total_chunks(f.size))
            for i, f in enumerate(files)
        ]
        for pending, outcome in zip(files, outcomes):
            outcome.status = UploadStatus.UPLOADING
            if on_status:
                on_status(outcome)

            def report(percent: float, _o: FileOutcome = outcome) -> None:
                # Never report a regress
                if percent < _o.progress:
                    return
                _o.progress = percent
                if on_progress:
                    on_progress(_o.index, percent)

            try:
                outcome.record = self._upload_one(
                    scope, target_folder_id, pending, outcome, report
                )
                outcome.status = UploadStatus.SUCCESS
                if self.notifier and outcome.record is not None:
                    self.notifier.emit(
                        SyncEventType.UPLOAD, outcome.record.id, NodeKind.FILE
                    )
            except UploadCancelled as e:
                logger.info(str(e))
                outcome.status = UploadStatus.CANCELLED
                outcome.error = str(e)
            except Exception as e:
                # One file failing never stops the rest of the batch
                logger.error(f"Upload of {pending.name} failed: {e}")
                outcome.status = UploadStatus.ERROR
                outcome.error = str(e)
            if on_status:
                on_status(outcome)
        return UploadBatch(outcomes)

    def _upload_one(
        self,
        scope: Scope,
        folder_id: Optional[str],
        pending: PendingFile,
        outcome: FileOutcome,
        report: Callable[[float], None],
    ) -> FileRecord:
        pending.cancel_token.raise_if_cancelled(pending.name)
        report(0.0)
        if pending.size > self.chunk_size:
            return self._upload_chunked(scope, folder_id, pending, outcome, report)
        with pending.open() as fh:
            record = self.backend.upload_single(
                scope, folder_id, fh, pending.name, pending.mime_type
            )
        outcome.uploaded_chunks = 1
        report(100.0)
        return record

    def _upload_chunked(
        self,
        scope: Scope,
        folder_id: Optional[str],
        pending: PendingFile,
        outcome: FileOutcome,
        report: Callable[[float], None],
    ) -> FileRecord:
        total = outcome.total_chunks
        session_id = self.backend.open_upload_session(
            scope,
            folder_id,
            pending.name,
            pending.size,
            total,
            self.chunk_size,
            pending.mime_type,
        )
        logger.debug(f"Upload session {session_id} for {pending.name}: {total} chunks")
        try:
            with pending.open() as fh:
                # Chunks go out in index order, each awaited before the next
                for index in range(total):
                    pending.cancel_token.raise_if_cancelled(pending.name)
                    chunk = fh.read(self.chunk_size)
                    if not chunk:
                        raise HierarchyError(
                            f"{pending.name} ended after {index} of {total} chunks"
                        )
                    self.backend.upload_chunk(session_id, index, chunk, pending.name)
                    outcome.uploaded_chunks = index + 1
                    report(100.0 * (index + 1) / total)
            return self.backend.complete_upload_session(session_id)
        except Exception:
            self._abort(session_id)
            raise

    def _abort(self, session_id: str) -> None:
        try:
            self.backend.abort_upload_session(session_id)
        except HierarchyError as e:
            logger.warning(f"Could not abort upload session {session_id}: {e}")
