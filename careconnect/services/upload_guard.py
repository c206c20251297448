"""
Medical document upload guard.

Checks run in a fixed order and stop at the first failure, each with its own
user-visible reason: hourly quota, size, declared MIME type, extension vs
MIME type, magic bytes vs MIME type. The SHA-256 digest of accepted content
is stored with the record (integrity reference; duplicates are not rejected).
"""
import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from careconnect.core.clock import utcnow
from careconnect.core.config import upload_max_bytes
from careconnect.core.errors import ContentMismatch, ExtensionMismatch, StorageFailure, TooLarge, UnsupportedType
from careconnect.core.throttle import RequestThrottle, log_quota_denial, raise_if_denied, upload_throttle
from careconnect.models import MedicalDocument
from careconnect.services.storage import DocumentStorage

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "application/pdf": ("pdf",),
    "image/png": ("png",),
    "image/jpeg": ("jpg", "jpeg"),
}

SIGNATURES: dict[str, bytes] = {
    "application/pdf": b"%PDF",  # 25 50 44 46
    "image/png": b"\x89PNG",  # 89 50 4E 47
    "image/jpeg": b"\xff\xd8\xff",
}


@dataclass
class UploadCandidate:
    content: bytes
    file_name: str
    declared_mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." not in self.file_name:
            return ""
        return self.file_name.rsplit(".", 1)[-1].lower()

    @property
    def mime_type(self) -> str:
        return (self.declared_mime_type or "").split(";", 1)[0].strip().lower()


def compute_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def check_size(candidate: UploadCandidate, max_bytes: int | None = None) -> None:
    max_bytes = upload_max_bytes() if max_bytes is None else max_bytes
    if candidate.size > max_bytes:
        raise TooLarge(f"Maximum file size is {max_bytes // (1024 * 1024)}MB")


def check_type(candidate: UploadCandidate) -> None:
    if candidate.mime_type not in ALLOWED_EXTENSIONS:
        raise UnsupportedType()


def check_extension(candidate: UploadCandidate) -> None:
    if candidate.extension not in ALLOWED_EXTENSIONS[candidate.mime_type]:
        raise ExtensionMismatch()


def check_signature(candidate: UploadCandidate) -> None:
    head = candidate.content[:4]
    if not head.startswith(SIGNATURES[candidate.mime_type]):
        raise ContentMismatch()


def validate_upload(candidate: UploadCandidate, max_bytes: int | None = None) -> str:
    """Content checks (everything but the quota); returns the SHA-256 hex digest."""
    check_size(candidate, max_bytes)
    check_type(candidate)
    check_extension(candidate)
    check_signature(candidate)
    return compute_hash(candidate.content)


def storage_key(user_id: int, extension: str, now: datetime) -> str:
    """Per-user, time based, unique: "<user_id>/<epoch-ms>-<random>.<ext>"."""
    millis = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return f"{user_id}/{millis}-{uuid.uuid4().hex[:8]}.{extension}"


def validate_and_accept(
    db: Session,
    storage: DocumentStorage,
    candidate: UploadCandidate,
    user_id: int,
    now: datetime | None = None,
    throttle: RequestThrottle | None = None,
    endpoint: str = "/documents",
) -> MedicalDocument:
    now = now or utcnow()
    throttle = throttle or upload_throttle()
    decision = throttle.check_and_consume(db, user_id, now=now)
    log_quota_denial(db, user_id, endpoint, decision)
    raise_if_denied(decision, "file uploads")
    file_hash = validate_upload(candidate)

    key = storage_key(user_id, candidate.extension, now)
    storage.put(key, candidate.content)
    doc = MedicalDocument(
        user_id=user_id,
        file_name=candidate.file_name,
        file_type=candidate.mime_type,
        storage_path=key,
        file_hash=file_hash,
        file_size=candidate.size,
        created_at=now,
    )
    try:
        db.add(doc)
        db.commit()
        db.refresh(doc)
    except SQLAlchemyError:
        db.rollback()
        try:
            storage.delete(key)
        except StorageFailure:
            logger.warning("Orphaned document object left in storage: %s", key)
        raise
    logger.info("Document stored: user_id=%s key=%s size=%s", user_id, key, candidate.size)
    return doc
