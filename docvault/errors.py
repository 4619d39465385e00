from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from docvault.services.uploads import FileOutcome


class HierarchyError(Exception):
    """Base exception for file/folder hierarchy operations."""


class NotFoundError(HierarchyError):
    """A path or id could not be resolved (lookup miss or 404)."""


class NetworkFailure(HierarchyError):
    """A store call did not complete (timeout, reset, non-success status)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(NetworkFailure):
    """Authentication/authorization related errors (401/403)."""


class ValidationError(HierarchyError):
    """Rejected client-side before any request was issued."""


class DataIntegrityError(HierarchyError):
    """The store returned records that cannot form a tree (cycles, duplicate ids)."""


class UploadCancelled(HierarchyError):
    """A file upload was cancelled through its token."""


class PartialUploadFailure(HierarchyError):
    """Some files of an upload batch failed while others may have succeeded."""

    def __init__(self, outcomes: List["FileOutcome"]) -> None:
        self.outcomes = outcomes
        failed = [o for o in outcomes if not o.ok]
        names = ", ".join(o.name for o in failed)
        super().__init__(
            f"{len(outcomes) - len(failed)} of {len(outcomes)} files uploaded; "
            f"failed: {names}"
        )

    @property
    def failed(self) -> List["FileOutcome"]:
        return [o for o in self.outcomes if not o.ok]
