"""
Bearer credential verification.

Every protected route depends on require_sign_in(), which turns the
Authorization header into an Identity:

  - header missing/empty          -> UnauthenticatedError (401)
  - bad signature/expired/garbage -> InvalidCredentialError (401)

The header may carry "Bearer <jwt>" or the raw token (the storefront UI
sends the raw token). No database access happens here; privilege checks
live in deps.require_admin.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from domain.errors import InternalError, InvalidCredentialError, UnauthenticatedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Resolved caller. `is_admin` is only set once the privilege gate has run."""
    subject: str
    is_admin: bool = False


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_credential(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.strip():
        return None
    parts = authorization.strip().split(None, 1)
    if parts[0].lower() == "bearer":
        return parts[1].strip() if len(parts) == 2 else None
    return parts[0]


def decode_access_token(token: str) -> dict:
    if not settings.jwt_secret:
        logger.error("JWT secret missing; cannot verify credentials")
        raise InternalError("Server auth misconfigured")
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        raise InvalidCredentialError()
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected access token: {type(e).__name__}")
        raise InvalidCredentialError()


def issue_access_token(*, user_id: str) -> str:
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if not settings.jwt_secret:
        raise InternalError("Server auth misconfigured")
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def verify_credential(authorization: Optional[str]) -> Identity:
    token = _parse_credential(authorization)
    if not token:
        raise UnauthenticatedError()
    payload = decode_access_token(token)
    subject = payload.get("sub")
    if not subject:
        raise InvalidCredentialError()
    return Identity(subject=str(subject))


async def require_sign_in(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Identity:
    """Dependency for routes that need an authenticated caller."""
    return verify_credential(authorization)
