import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from careconnect.core.clock import utcnow
from careconnect.core.database import get_db
from careconnect.core.rate_limit import LOGIN_RATE_LIMIT, REGISTER_RATE_LIMIT, _get_client_ip, limiter
from careconnect.core.security import create_access_token, hash_password, verify_password
from careconnect.api.deps import get_current_user
from careconnect.models import SecurityLog, User
from careconnect.schemas import ProfileUpdate, Token, UserCreate, UserResponse
from careconnect.services.validation import validate_gender

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id or 0,
        email=user.email,
        full_name=user.full_name or "",
        phone=user.phone,
        date_of_birth=user.date_of_birth,
        gender=user.gender,
        blood_type=user.blood_type,
        allergies=user.allergies,
    )


@router.post("/register", response_model=UserResponse)
@limiter.limit(REGISTER_RATE_LIMIT)
async def register(
    request: Request,
    db: Session = Depends(get_db),
):
    form = await request.form()
    try:
        body = UserCreate(
            email=(form.get("email") or "").strip(),
            password=form.get("password") or "",
            full_name=(form.get("full_name") or "").strip(),
            phone=(form.get("phone") or "").strip() or None,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][-1]) if first.get("loc") else "body"
        if field == "password":
            detail = "Password must be at least 6 characters."
        elif field == "email":
            detail = "Please enter a valid email address."
        else:
            detail = "Invalid registration data."
        raise HTTPException(status_code=422, detail=detail)
    if db.exec(select(User).where(User.email == body.email)).first():
        raise HTTPException(status_code=400, detail="This email address is already registered.")
    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        full_name=body.full_name,
        phone=body.phone,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("User registered: id=%s", user.id)
    return _user_response(user)


@router.post("/login", response_model=Token)
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    db: Session = Depends(get_db),
):
    form = await request.form()
    email = (form.get("email") or "").strip()
    password = form.get("password") or ""
    if not email:
        raise HTTPException(status_code=422, detail="Please enter your email.")
    if not password:
        raise HTTPException(status_code=422, detail="Please enter your password.")
    user = db.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(password, user.hashed_password):
        try:
            db.add(SecurityLog(event="failed_login", ip=_get_client_ip(request), endpoint="/auth/login", detail=email))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.warning("SecurityLog failed_login write failed: %s", e)
        raise HTTPException(status_code=401, detail="Incorrect email or password.")
    token = create_access_token({"sub": str(user.id)})
    user.last_login_at = utcnow()
    db.add(user)
    db.commit()
    return Token(access_token=token)


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return _user_response(user)


@router.patch("/me", response_model=UserResponse)
def update_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Profile update; gender and date of birth feed the AI triage patient context."""
    if body.full_name is not None:
        user.full_name = body.full_name.strip() or user.full_name
    if body.phone is not None:
        user.phone = body.phone.strip() or None
    if body.date_of_birth is not None:
        if body.date_of_birth > utcnow().date():
            raise HTTPException(status_code=422, detail="Date of birth cannot be in the future.")
        user.date_of_birth = body.date_of_birth
    if body.gender is not None:
        if body.gender.strip() and validate_gender(body.gender) is None:
            raise HTTPException(status_code=422, detail="Gender must be male, female or other.")
        user.gender = validate_gender(body.gender)
    if body.blood_type is not None:
        user.blood_type = body.blood_type.strip().upper() or None
    if body.allergies is not None:
        user.allergies = body.allergies.strip() or None
    db.add(user)
    db.commit()
    db.refresh(user)
    return _user_response(user)
