"""
Account service — registration, password login, profile and password reset.

Passwords and password-reset answers are stored as bcrypt hashes. Login
hands out the JWT access token that middleware.auth verifies on every
protected request.
"""
import logging

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import User
from domain.enums import Role
from domain.errors import (
    ConflictError,
    InvalidCredentialError,
    NotFoundError,
    RecoveryFailedError,
    ValidationError,
)
from middleware.auth import issue_access_token

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    if not password:
        raise ValidationError("Password is required")
    if len(password.encode("utf-8")) > 72:
        # bcrypt input limit
        raise ValidationError("Password must be at most 72 bytes")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str | None, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


def _hash_answer(answer: str | None) -> str | None:
    if not answer or not answer.strip():
        return None
    return hash_password(answer.strip())


def user_projection(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "address": user.address,
        "role": int(user.role),
    }


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == email.strip().lower()))
    return res.scalar_one_or_none()


async def register(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    password: str,
    phone: str | None = None,
    address: str | None = None,
    answer: str | None = None,
    role: Role = Role.STANDARD,
) -> User:
    if await get_user_by_email(db, email):
        raise ConflictError("Already registered, please login")

    user = User(
        name=name.strip(),
        email=email.strip().lower(),
        password_hash=hash_password(password),
        phone=phone,
        address=address,
        answer_hash=_hash_answer(answer),
        role=int(role),
    )
    db.add(user)
    await db.flush()
    logger.info(f"Registered user {user.id} (role={role.name})")
    return user


async def login(db: AsyncSession, *, email: str, password: str) -> tuple[User, str]:
    """Returns (user, access_token). Same error for unknown email and bad password."""
    user = await get_user_by_email(db, email)
    if not user or not check_password(password, user.password_hash):
        raise InvalidCredentialError("Invalid email or password")
    return user, issue_access_token(user_id=user.id)


async def set_role(db: AsyncSession, *, email: str, role: Role) -> User:
    """Change an account's privilege level (used by scripts/promote_admin.py)."""
    user = await get_user_by_email(db, email)
    if not user:
        raise NotFoundError("User", email)
    user.role = int(role)
    await db.flush()
    logger.info(f"User {user.id} role -> {role.name}")
    return user


async def update_profile(
    db: AsyncSession,
    *,
    user_id: str,
    name: str | None = None,
    password: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> User:
    """
    Change the caller's own name, password, phone or address.

    Blank fields are left as they are; email and role never change here.
    A new password is re-hashed and must be at least MIN_PASSWORD_LENGTH
    characters.
    """
    changes = {
        key: value
        for key, value in {"name": name, "password": password, "phone": phone, "address": address}.items()
        if value is not None and str(value).strip()
    }
    if not changes:
        raise ValidationError("No fields to update")
    if "password" in changes and len(changes["password"]) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password is required and at least 6 characters long")

    user = await get_user(db, user_id)
    if not user:
        raise NotFoundError("User", user_id)

    if "name" in changes:
        user.name = changes["name"].strip()
    if "password" in changes:
        user.password_hash = hash_password(changes["password"])
    if "phone" in changes:
        user.phone = changes["phone"].strip()
    if "address" in changes:
        user.address = changes["address"].strip()
    await db.flush()
    logger.info(f"User {user.id} updated profile fields: {', '.join(sorted(changes))}")
    return user


async def forgot_password(db: AsyncSession, *, email: str | None, answer: str | None, new_password: str | None) -> User:
    """
    Reset a password with the security answer given at registration.

    Unknown email and wrong answer raise the same RecoveryFailedError.
    """
    if not email or not email.strip():
        raise ValidationError("Email is required")
    if not answer or not answer.strip():
        raise ValidationError("Answer is required")
    if not new_password:
        raise ValidationError("New Password is required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password is required and at least 6 characters long")

    user = await get_user_by_email(db, email)
    if not user or not check_password(answer.strip(), user.answer_hash):
        raise RecoveryFailedError()

    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info(f"Password reset for user {user.id}")
    return user
