"""
Document storage on the local filesystem.

Keys look like "<user_id>/<name>" and map to files below the storage root.
Downloads go through short-lived signed URLs: a JWT carrying the key, served
by GET /documents/files/{token}.
"""
import logging
import re
from pathlib import Path

from careconnect.core.config import settings
from careconnect.core.errors import StorageFailure
from careconnect.core.security import create_signed_token, decode_signed_token

logger = logging.getLogger(__name__)

_KEY_PART_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
SIGNED_URL_PREFIX = "/documents/files/"
_DOWNLOAD_PURPOSE = "document_download"


class DocumentStorage:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        if len(parts) != 2 or not all(_KEY_PART_RE.match(p) for p in parts) or ".." in key:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / parts[0] / parts[1]

    def put(self, key: str, content: bytes) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            logger.exception("Storage write failed for %s", key)
            raise StorageFailure() from e

    def read(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise
        except OSError as e:
            logger.exception("Storage read failed for %s", key)
            raise StorageFailure() from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure() from e

    def get_signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        self._path(key)
        ttl = ttl_seconds if ttl_seconds is not None else settings.signed_url_ttl_seconds
        token = create_signed_token({"key": key, "purpose": _DOWNLOAD_PURPOSE}, ttl)
        return SIGNED_URL_PREFIX + token

    def resolve_signed_url(self, token: str) -> str | None:
        """Key behind a signed URL token; None when forged or expired."""
        payload = decode_signed_token(token)
        if not payload or payload.get("purpose") != _DOWNLOAD_PURPOSE:
            return None
        key = payload.get("key")
        return key if isinstance(key, str) else None


def get_storage() -> DocumentStorage:
    return DocumentStorage(settings.storage_dir)
