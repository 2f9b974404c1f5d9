from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_clinic.db.session import get_db
from dental_clinic.deps import require_admin
from dental_clinic.models.user import Role, User
from dental_clinic.schemas.user import UserCreate, UserOut, UserUpdate
from dental_clinic.services.audit import log_event
from dental_clinic.services.context import Actor
from dental_clinic.services.users import create_user, get_user_by_email, get_user_by_id, update_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserOut])
def list_users(
    role: Role | None = Query(default=None),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    stmt = select(User).order_by(User.id)
    if role is not None:
        stmt = stmt.where(User.role == role)
    return list(db.scalars(stmt))


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if payload.role == Role.dentist:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Create dentists through /dentists",
        )
    existing = get_user_by_email(db, payload.email)
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    user = create_user(
        db,
        email=payload.email,
        password=payload.temp_password,
        full_name=payload.full_name,
        phone=payload.phone,
        role=payload.role,
        commit=False,
    )
    log_event(
        db,
        actor=Actor.from_user(admin),
        action="user.created",
        entity_type="user",
        entity_id=str(user.id),
        after_data={"email": user.email, "role": user.role.value},
    )
    db.commit()
    db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    user = get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.patch("/{user_id}", response_model=UserOut)
def patch_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == admin.id and payload.is_active is False:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot disable your own account")
    log_event(
        db,
        actor=Actor.from_user(admin),
        action="user.updated",
        entity_type="user",
        entity_id=str(user.id),
        after_data=payload.model_dump(exclude_unset=True, exclude={"password"}),
    )
    return update_user(
        db,
        user=user,
        full_name=payload.full_name,
        phone=payload.phone,
        is_active=payload.is_active,
        password=payload.password,
    )
