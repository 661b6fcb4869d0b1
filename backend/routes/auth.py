"""
Auth endpoints — registration, login, profile, password reset and route guards.

Flow:
  1) POST /auth/register        -> account (role STANDARD)
  2) POST /auth/login           -> JWT access token
  3) Send the token in the Authorization header ("Bearer <token>" or raw)
  4) PUT  /auth/profile         -> change own name, password, phone, address
  5) POST /auth/forgot-password -> reset password with the security answer
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import require_admin
from domain.responses import success_response
from middleware.auth import Identity, require_sign_in
from middleware.rate_limit import rate_limit
from models import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ProfileUpdateRequest,
    RegisterRequest,
)
from services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    user = await auth_service.register(
        db,
        name=request.name,
        email=request.email,
        password=request.password,
        phone=request.phone,
        address=request.address,
        answer=request.answer,
    )
    await db.commit()
    return success_response(data=auth_service.user_projection(user))


@router.post("/login", response_model=LoginResponse, response_model_by_alias=True)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=20, window_seconds=60)),
):
    user, token = await auth_service.login(db, email=request.email, password=request.password)
    logger.info(f"Login ok for user {user.id}")
    return LoginResponse(user=auth_service.user_projection(user), token=token)


@router.put("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    identity: Identity = Depends(require_sign_in),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.update_profile(
        db,
        user_id=identity.subject,
        name=request.name,
        password=request.password,
        phone=request.phone,
        address=request.address,
    )
    await db.commit()
    return success_response(data=auth_service.user_projection(user))


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=5, window_seconds=60)),
):
    await auth_service.forgot_password(
        db, email=request.email, answer=request.answer, new_password=request.new_password,
    )
    await db.commit()
    return success_response(data={"message": "Password Reset Successfully"})


@router.get("/user-auth")
async def user_auth(identity: Identity = Depends(require_sign_in)):
    """Route guard for signed-in pages."""
    return {"ok": True}


@router.get("/admin-auth")
async def admin_auth(identity: Identity = Depends(require_admin)):
    """Route guard for admin pages."""
    return {"ok": True}
