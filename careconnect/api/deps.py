import hmac

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from careconnect.core.config import settings
from careconnect.core.database import get_db
from careconnect.core.security import decode_access_token
from careconnect.core.throttle import ChatSession, SessionRegistry
from careconnect.models import User
from careconnect.services.storage import DocumentStorage, get_storage

security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please log in to continue.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
        )
    return payload


def get_current_user_id(payload: dict = Depends(get_token_payload)) -> int:
    return int(payload["sub"])


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.chat_sessions


def get_chat_session(
    payload: dict = Depends(get_token_payload),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ChatSession:
    """Volatile state of the calling login; tokens without a session id share one per user."""
    session_id = payload.get("sid") or f"user-{payload['sub']}"
    return registry.get(session_id)


def get_document_storage() -> DocumentStorage:
    return get_storage()


def require_admin(x_admin_secret: str | None = Header(None, alias="X-Admin-Secret")) -> None:
    """Directory management: X-Admin-Secret header, constant-time compare."""
    expected = settings.admin_secret
    if not expected:
        raise HTTPException(status_code=503, detail="Admin access is not configured (ADMIN_SECRET missing).")
    if not hmac.compare_digest((x_admin_secret or "").encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Forbidden.")
