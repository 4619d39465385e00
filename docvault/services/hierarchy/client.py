import logging
import os
from typing import Any, BinaryIO, Callable, Dict, Optional, TypeVar, Union
from urllib.parse import urljoin

import requests

from docvault.errors import AuthError, NetworkFailure, NotFoundError
from docvault.models import FileRecord, FolderRecord, Scope, parse_listing
from docvault.services.storage_interface import Listing

T = TypeVar("T")


class HierarchyClient:
    """
    Thin request/response wrapper around the folder/file hierarchy REST API.
    Base is the API root, for example:
        https://HOST/api/
    All calls carry a bearer token and the tenant header when configured.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        tenant_id: str = "",
        timeout: float = 30.0,
        chunk_timeout: float = 300.0,
        verify: bool = True,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        if not base_url.endswith("/"):
            base_url += "/"
        self.base = base_url
        self.timeout = timeout
        self.chunk_timeout = chunk_timeout
        self.logger = logger or logging.getLogger(__name__)

        self.session = session or requests.Session()
        self.session.verify = verify
        self.session.headers["Accept"] = "application/json"
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        if tenant_id:
            self.session.headers["X-Tenant-Id"] = tenant_id

    # -------- helpers --------
    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return urljoin(self.base, path.lstrip("/"))

    def _server_message(self, resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return (resp.text or "").strip()[:200]
        if isinstance(body, dict):
            for key in ("error", "message", "detail"):
                if body.get(key):
                    return str(body[key])
        return ""

    def _raise_mapped(
        self,
        action: str,
        exc: Optional[Exception] = None,
        resp: Optional[requests.Response] = None,
    ) -> None:
        """Map transport errors and HTTP statuses to typed errors with friendly messages."""
        if resp is not None:
            status = resp.status_code
            detail = self._server_message(resp)
            suffix = f": {detail}" if detail else "."
            if status == 401:
                raise AuthError(
                    f"Authentication failed (401) while trying to {action}. "
                    "Please verify your access token and server URL.",
                    status,
                )
            if status == 403:
                raise AuthError(
                    f"Access forbidden (403) while trying to {action}. Check your permissions.",
                    status,
                )
            if status == 404:
                raise NotFoundError(
                    f"Resource not found (404) while trying to {action}{suffix}"
                )
            raise NetworkFailure(
                f"Server returned {status} while trying to {action}{suffix}", status
            )
        if isinstance(exc, requests.Timeout):
            raise NetworkFailure(f"Timed out while trying to {action}.") from exc
        if isinstance(exc, requests.ConnectionError):
            raise NetworkFailure(
                f"Could not reach the server while trying to {action}."
            ) from exc
        raise NetworkFailure(f"Request failed during {action}: {exc}") from exc

    def _request(
        self,
        action: str,
        method: str,
        path: str,
        *,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        url = self._url(path)
        try:
            resp = self.session.request(
                method, url, timeout=timeout or self.timeout, **kwargs
            )
        except requests.RequestException as e:
            self.logger.error(f"{method} {url} failed: {e}")
            self._raise_mapped(action, exc=e)
        if not resp.ok:
            self.logger.error(f"{method} {url} returned {resp.status_code}")
            self._raise_mapped(action, resp=resp)
        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            body = resp.json()
        except ValueError as e:
            self._raise_mapped(action, exc=e)
        # Some endpoints wrap the payload in {"data": ...}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body if isinstance(body, dict) else {"items": body}

    def _parse(self, action: str, parse: Callable[[], T]) -> T:
        try:
            return parse()
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"Malformed response while trying to {action}: {e}")
            raise NetworkFailure(f"Malformed response while trying to {action}.") from e

    def _folder(self, action: str, body: Dict[str, Any]) -> FolderRecord:
        return self._parse(
            action, lambda: FolderRecord.from_dict(body.get("folder") or body)
        )

    def _file(self, action: str, body: Dict[str, Any]) -> FileRecord:
        return self._parse(action, lambda: FileRecord.from_dict(body.get("file") or body))

    # -------- listing --------
    def list_scope(self, scope: Scope) -> Listing:
        """Full flat listing of every folder and file in the scope."""
        body = self._request("load files", "GET", f"{scope.prefix}/tree")
        return self._parse("load files", lambda: parse_listing(body))

    def list_folder(self, scope: Scope, folder_id: Optional[str] = None) -> Listing:
        """Direct children of one folder (or of the scope root)."""
        params = {"folderId": folder_id} if folder_id else {}
        body = self._request(
            "list folder", "GET", f"{scope.prefix}/contents", params=params
        )
        return self._parse("list folder", lambda: parse_listing(body))

    # -------- mutations --------
    def create_folder(
        self,
        scope: Scope,
        parent_id: Optional[str],
        name: str,
        description: Optional[str] = None,
    ) -> FolderRecord:
        payload: Dict[str, Any] = {"name": name, "parentId": parent_id}
        if description:
            payload["description"] = description
        body = self._request(
            "create folder", "POST", f"{scope.prefix}/folders", json=payload
        )
        return self._folder("create folder", body)

    def rename_folder(self, folder_id: str, name: str) -> FolderRecord:
        body = self._request(
            "rename folder", "PATCH", f"/folders/{folder_id}/rename", json={"name": name}
        )
        return self._folder("rename folder", body)

    def rename_file(self, file_id: str, name: str) -> FileRecord:
        body = self._request(
            "rename file", "PATCH", f"/files/{file_id}/rename", json={"name": name}
        )
        return self._file("rename file", body)

    def move_folder(self, folder_id: str, parent_id: Optional[str]) -> FolderRecord:
        body = self._request(
            "move folder",
            "PATCH",
            f"/folders/{folder_id}/move",
            json={"parentId": parent_id},
        )
        return self._folder("move folder", body)

    def move_file(self, file_id: str, folder_id: Optional[str]) -> FileRecord:
        body = self._request(
            "move file", "PATCH", f"/files/{file_id}/move", json={"folderId": folder_id}
        )
        return self._file("move file", body)

    def delete_folder(self, folder_id: str) -> None:
        # The store cascades to descendants
        self._request("delete folder", "DELETE", f"/folders/{folder_id}")

    def delete_file(self, file_id: str) -> None:
        self._request("delete file", "DELETE", f"/files/{file_id}")

    # -------- uploads --------
    def upload_single(
        self,
        scope: Scope,
        folder_id: Optional[str],
        data: Union[bytes, BinaryIO],
        file_name: str,
        mime_type: str = "application/octet-stream",
    ) -> FileRecord:
        form = {"folderId": folder_id} if folder_id else {}
        body = self._request(
            "upload file",
            "POST",
            f"{scope.prefix}/files",
            files={"file": (file_name, data, mime_type)},
            data=form,
            timeout=self.chunk_timeout,
        )
        return self._file("upload file", body)

    def open_upload_session(
        self,
        scope: Scope,
        folder_id: Optional[str],
        file_name: str,
        size: int,
        total_chunks: int,
        chunk_size: int,
        mime_type: str = "application/octet-stream",
    ) -> str:
        body = self._request(
            "start upload",
            "POST",
            f"{scope.prefix}/uploads",
            json={
                "fileName": file_name,
                "size": size,
                "totalChunks": total_chunks,
                "chunkSize": chunk_size,
                "mimeType": mime_type,
                "folderId": folder_id,
            },
        )
        session_id = body.get("sessionId") or body.get("uploadId")
        if not session_id:
            raise NetworkFailure("Server did not return an upload session id.")
        return str(session_id)

    def upload_chunk(
        self, session_id: str, chunk_index: int, chunk: bytes, file_name: str
    ) -> None:
        self._request(
            f"upload chunk {chunk_index} of {file_name}",
            "PUT",
            f"/uploads/{session_id}/chunks/{chunk_index}",
            files={"chunk": (file_name, chunk, "application/octet-stream")},
            timeout=self.chunk_timeout,
        )

    def complete_upload_session(self, session_id: str) -> FileRecord:
        body = self._request(
            "finish upload", "POST", f"/uploads/{session_id}/complete"
        )
        return self._file("finish upload", body)

    def abort_upload_session(self, session_id: str) -> None:
        self._request("abort upload", "DELETE", f"/uploads/{session_id}")

    # -------- download --------
    def download(self, url: str, local_path: str) -> None:
        """Stream a file to local_path."""
        os.makedirs(os.path.dirname(os.path.abspath(local_path)) or ".", exist_ok=True)
        target = self._url(url)
        try:
            with self.session.get(
                target, stream=True, timeout=self.chunk_timeout
            ) as resp:
                if not resp.ok:
                    self._raise_mapped("download file", resp=resp)
                with open(local_path, "wb") as f_out:
                    for block in resp.iter_content(chunk_size=1024 * 1024):
                        if block:
                            f_out.write(block)
        except requests.RequestException as e:
            self.logger.error(f"Download of {target} failed: {e}")
            self._raise_mapped("download file", exc=e)
