"""Medical documents: guarded upload, listing with signed URLs, download, delete."""
import logging
import mimetypes
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from sqlmodel import Session, col, select

from careconnect.api.deps import get_current_user, get_document_storage
from careconnect.core.database import get_db
from careconnect.core.errors import StorageFailure
from careconnect.core.throttle import upload_throttle
from careconnect.models import MedicalDocument, User
from careconnect.schemas.diagnosis import QuotaUsageResponse
from careconnect.schemas.documents import DocumentResponse
from careconnect.services.storage import DocumentStorage
from careconnect.services.upload_guard import UploadCandidate, validate_and_accept

log = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def _document_response(doc: MedicalDocument, storage: DocumentStorage) -> DocumentResponse:
    return DocumentResponse(
        id=doc.id or 0,
        file_name=doc.file_name,
        file_type=doc.file_type,
        file_hash=doc.file_hash,
        file_size=doc.file_size,
        file_url=storage.get_signed_url(doc.storage_path),
        created_at=doc.created_at,
    )


@router.post("", response_model=DocumentResponse)
async def upload_document(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage),
):
    """multipart/form-data, field name 'file'. The declared type is the part's Content-Type."""
    log.info("documents/upload: user_id=%s filename=%s", user.id, file.filename)
    content = await file.read()
    candidate = UploadCandidate(
        content=content,
        file_name=file.filename or "",
        declared_mime_type=file.content_type or "",
    )
    doc = validate_and_accept(db, storage, candidate, user.id or 0)
    return _document_response(doc, storage)


@router.get("", response_model=list[DocumentResponse])
def list_documents(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage),
):
    stmt = (
        select(MedicalDocument)
        .where(MedicalDocument.user_id == user.id)
        .order_by(col(MedicalDocument.created_at).desc(), col(MedicalDocument.id).desc())
    )
    return [_document_response(d, storage) for d in db.exec(stmt).all()]


@router.get("/usage", response_model=QuotaUsageResponse)
def upload_usage(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    usage = upload_throttle().quota.usage(db, user.id or 0)
    return QuotaUsageResponse(count=usage.count, limit=usage.limit, remaining=usage.remaining, resets_at=usage.resets_at)


@router.get("/files/{token}")
def download_document(
    token: str,
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage),
):
    """Signed URL target; the token alone authorizes the download until it expires."""
    key = storage.resolve_signed_url(token)
    if not key:
        raise HTTPException(status_code=403, detail="Link is invalid or has expired.")
    doc = db.exec(select(MedicalDocument).where(MedicalDocument.storage_path == key)).first()
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found.")
    try:
        content = storage.read(key)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Document not found.")
    media_type = doc.file_type or mimetypes.guess_type(doc.file_name)[0] or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(doc.file_name)}"},
    )


@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage),
):
    doc = db.get(MedicalDocument, document_id)
    if not doc or doc.user_id != user.id:
        raise HTTPException(status_code=404, detail="Document not found.")
    try:
        storage.delete(doc.storage_path)
    except StorageFailure as e:
        log.error("Storage delete failed for %s: %s", doc.storage_path, e)
    db.delete(doc)
    db.commit()
    return {"message": "Document deleted successfully"}
