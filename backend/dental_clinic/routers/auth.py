from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from dental_clinic.core.security import create_access_token, verify_password
from dental_clinic.core.settings import settings
from dental_clinic.db.session import get_db
from dental_clinic.deps import get_current_user
from dental_clinic.models.user import Role, User
from dental_clinic.schemas.auth import LoginRequest, RegisterRequest, Token
from dental_clinic.schemas.user import UserOut
from dental_clinic.services.audit import log_event
from dental_clinic.services.context import Actor
from dental_clinic.services.rate_limit import SimpleRateLimiter
from dental_clinic.services.users import create_user, get_user_by_email

router = APIRouter(prefix="/auth", tags=["auth"])

LOGIN_LIMITER = SimpleRateLimiter(max_events=settings.login_attempts_per_minute, window_seconds=60)
LOGIN_IP_LIMITER = SimpleRateLimiter(max_events=settings.login_attempts_per_minute * 2, window_seconds=60)


def _issue_token(user: User) -> Token:
    token = create_access_token(
        subject=str(user.id),
        secret=settings.secret_key,
        alg=settings.jwt_alg,
        expires_minutes=settings.access_token_expire_minutes,
        extra={"role": user.role.value, "email": user.email},
    )
    return Token(access_token=token)


@router.post("/login", response_model=Token)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    ip_address = request.client.host if request.client else "unknown"
    rate_key = f"{ip_address}:{payload.email.lower().strip()}"
    if not LOGIN_LIMITER.allow(rate_key) or not LOGIN_IP_LIMITER.allow(ip_address):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many login attempts")

    user = get_user_by_email(db, payload.email)
    if user and not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _issue_token(user)


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    if get_user_by_email(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    user = create_user(
        db,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        phone=payload.phone,
        role=Role.patient,
        commit=False,
    )
    log_event(
        db,
        actor=Actor.from_user(user),
        action="user.registered",
        entity_type="user",
        entity_id=str(user.id),
        after_data={"email": user.email, "role": user.role.value},
        request_id=request.headers.get("x-request-id"),
        ip_address=request.client.host if request.client else None,
    )
    db.commit()
    db.refresh(user)
    return _issue_token(user)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user
