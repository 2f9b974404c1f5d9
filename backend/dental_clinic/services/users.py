from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dental_clinic.core.security import hash_password, verify_password
from dental_clinic.models.user import Role, User


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower().strip()))


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.scalar(select(User).where(User.id == user_id))


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str = "",
    phone: str | None = None,
    role: Role = Role.patient,
    is_active: bool = True,
    commit: bool = True,
) -> User:
    user = User(
        email=email.lower().strip(),
        full_name=full_name,
        phone=phone,
        role=role,
        is_active=is_active,
        hashed_password=hash_password(password),
    )
    db.add(user)
    if commit:
        db.commit()
        db.refresh(user)
    else:
        db.flush()
    return user


def user_count(db: Session) -> int:
    return int(db.scalar(select(func.count(User.id))) or 0)


def seed_initial_admin(db: Session, *, email: str, password: str) -> bool:
    if user_count(db) > 0:
        return False
    create_user(
        db,
        email=email,
        password=password,
        full_name="Admin",
        role=Role.admin,
        is_active=True,
    )
    return True


def update_user(
    db: Session,
    *,
    user: User,
    full_name: str | None = None,
    phone: str | None = None,
    is_active: bool | None = None,
    password: str | None = None,
) -> User:
    if full_name is not None:
        user.full_name = full_name
    if phone is not None:
        user.phone = phone
    if is_active is not None:
        user.is_active = is_active
    if password:
        user.hashed_password = hash_password(password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
