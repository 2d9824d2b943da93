"""User lookup, registration and OAuth sign-in."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlmodel import Session, func, select

from ..core.errors import Conflict, Unauthorized, ValidationError
from ..core.time import isoformat, utcnow
from ..models import User
from .passwords import hash_password, verify_password

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def normalize_email(email: Any) -> str:
    return email.strip().lower() if isinstance(email, str) else ""


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name or user.email.split("@")[0],
        "avatarUrl": user.avatar_url,
        "createdAt": isoformat(user.created_at),
    }


def find_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(func.lower(User.email) == normalize_email(email))).first()


def register_user(
    session: Session, *, email: Any, password: Any, name: Optional[str] = None
) -> User:
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if find_by_email(session, email):
        raise Conflict("A user with this email already exists")

    user = User(email=email, name=(name or "").strip() or None, password_hash=hash_password(password))
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(session: Session, *, email: Any, password: Any) -> User:
    user = find_by_email(session, normalize_email(email))
    if (
        not user
        or not user.password_hash
        or not isinstance(password, str)
        or not verify_password(password, user.password_hash)
    ):
        raise Unauthorized(INVALID_CREDENTIALS)
    return user


def upsert_oauth_user(
    session: Session,
    *,
    email: str,
    name: Optional[str],
    picture: Optional[str],
) -> User:
    """Find the user by email, filling in profile fields, or create one."""

    email = normalize_email(email)
    user = find_by_email(session, email)
    if user:
        changed = False
        if name and user.name != name:
            user.name = name
            changed = True
        if picture and user.avatar_url != picture:
            user.avatar_url = picture
            changed = True
        if changed:
            user.updated_at = utcnow()
            session.add(user)
            session.commit()
            session.refresh(user)
        return user

    user = User(email=email, name=name, avatar_url=picture)
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Created user %s from OAuth sign-in", user.id)
    return user


__all__ = [
    "authenticate",
    "find_by_email",
    "normalize_email",
    "register_user",
    "upsert_oauth_user",
    "user_to_dict",
]
