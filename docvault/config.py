from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from docvault.models import Scope, ScopeKind

logger = logging.getLogger(__name__)

# Single source of truth for settings and credentials
CREDENTIALS_PATH = ".docvault/credentials.json"

LOG_FORMAT = "%(asctime)s | %(filename)s:%(lineno)s \t [%(levelname)s] %(message)s"

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024  # 5 MiB
MIN_CHUNK_SIZE = 64 * 1024
DEFAULT_API_TIMEOUT = 30.0
# Chunk payloads are large relative to JSON calls
DEFAULT_CHUNK_TIMEOUT = 300.0


@dataclass
class Settings:
    base_url: str = ""
    token: str = ""
    tenant_id: str = ""
    user_id: str = ""
    verify_tls: bool = True
    api_timeout: float = DEFAULT_API_TIMEOUT
    chunk_timeout: float = DEFAULT_CHUNK_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    scope_kind: str = ScopeKind.PUBLIC_DOCUMENTS.value
    scope_id: str = ""

    def is_connectable(self) -> bool:
        return bool(self.base_url.strip() and self.token.strip())

    def scope(self) -> Scope:
        try:
            kind = ScopeKind(self.scope_kind)
        except ValueError:
            kind = ScopeKind.PUBLIC_DOCUMENTS
        if kind == ScopeKind.USER_FILES:
            return Scope(kind, self.scope_id or self.user_id)
        if kind == ScopeKind.LIBRARY:
            return Scope(kind, self.scope_id)
        return Scope(kind)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def encode_secret(s: str) -> str:
    if not s:
        return ""
    return "b64:" + base64.b64encode(s.encode("utf-8")).decode("ascii")


def decode_secret(s: str) -> str:
    if not s:
        return ""
    if s.startswith("b64:"):
        try:
            return base64.b64decode(s[4:].encode("ascii")).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return ""
    return s


def _env_number(name: str, default: float, minimum: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}")
        return default
    return max(minimum, value)


def read_credentials(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or CREDENTIALS_PATH
    try:
        if os.path.exists(path):
            with open(path, "r") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    return data
    except (OSError, ValueError):
        logger.warning(f"Could not read {path}", exc_info=True)
    return {}


def write_credentials(data: Dict[str, Any], path: Optional[str] = None) -> None:
    path = path or CREDENTIALS_PATH
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def load_settings(path: Optional[str] = None) -> Settings:
    """Build settings from the credentials file, then apply env overrides."""
    data = read_credentials(path)
    s = Settings()
    for key in ("base_url", "tenant_id", "user_id", "scope_kind", "scope_id"):
        if isinstance(data.get(key), str):
            setattr(s, key, data[key])
    s.token = decode_secret(str(data.get("token") or ""))
    if "verify_tls" in data:
        s.verify_tls = bool(data["verify_tls"])

    s.base_url = os.getenv("DOCVAULT_BASE_URL", s.base_url)
    s.token = os.getenv("DOCVAULT_TOKEN", s.token)
    s.chunk_size = int(
        _env_number("DOCVAULT_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, MIN_CHUNK_SIZE)
    )
    s.api_timeout = _env_number("DOCVAULT_API_TIMEOUT", DEFAULT_API_TIMEOUT, 1.0)
    s.chunk_timeout = _env_number(
        "DOCVAULT_CHUNK_TIMEOUT", DEFAULT_CHUNK_TIMEOUT, s.api_timeout
    )
    return s


def save_settings(settings: Settings, path: Optional[str] = None) -> None:
    # Read-modify-write to preserve unknown fields
    data = read_credentials(path)
    stored = asdict(settings)
    for transient in ("api_timeout", "chunk_timeout", "chunk_size"):
        stored.pop(transient, None)
    stored["token"] = encode_secret(settings.token)
    data.update(stored)
    write_credentials(data, path)
