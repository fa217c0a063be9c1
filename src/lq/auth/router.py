"""Authentication router: /api/v1/auth/*."""

from __future__ import annotations

import hashlib
import uuid
from datetime import timedelta

import jwt as pyjwt
import structlog
from fastapi import APIRouter, Depends, HTTPException
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.jwt import create_access_token, create_refresh_token, verify_token
from lq.auth.password import PasswordStrengthError
from lq.auth.schemas import (
    AccountResponse,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
)
from lq.auth.service import (
    authenticate_account,
    get_account_by_id,
    get_refresh_token,
    register_account,
    revoke_all_tokens,
    revoke_refresh_token,
    rotate_refresh_token,
    store_refresh_token,
)
from lq.clock import utcnow
from lq.config import get_settings
from lq.database import get_session
from lq.db.models import Account
from lq.redis_client import get_optional_redis

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        email=account.email,
        name=account.name,
        role=account.role,
        created_at=account.created_at,
        last_login=account.last_login,
        login_count=account.login_count,
    )


def _hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


async def _issue_tokens(db: AsyncSession, account: Account) -> TokenResponse:
    """Create access + refresh tokens, store the refresh token hash and commit."""
    settings = get_settings()
    token_id = str(uuid.uuid4())
    access_token = create_access_token(account.id, account.email, account.role)
    refresh_token = create_refresh_token(account.id, account.email, account.role, token_id=token_id)

    await store_refresh_token(
        db,
        account_id=account.id,
        token_id=token_id,
        token_hash=_hash(refresh_token),
        expires_at=utcnow() + timedelta(days=settings.jwt_refresh_token_expire_days),
    )
    await db.commit()

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_account_response(account),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Register a student or teacher account."""
    try:
        account = await register_account(db, body.email, body.password, body.name, body.role)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return await _issue_tokens(db, account)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> TokenResponse:
    """Login with email + password. Updates the login streak."""
    try:
        account = await authenticate_account(db, redis, body.email, body.password)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except PermissionError as e:
        raise HTTPException(status_code=429, detail=str(e)) from e

    return await _issue_tokens(db, account)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Rotate a refresh token. Reusing a revoked token revokes the whole family."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
    except pyjwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    jti = payload.get("jti")
    old_token = await get_refresh_token(db, jti) if jti else None
    if old_token is None or old_token.token_hash != _hash(body.refresh_token):
        raise HTTPException(status_code=401, detail="Refresh token not found")
    if old_token.is_revoked:
        await revoke_all_tokens(db, old_token.account_id)
        await db.commit()
        logger.warning("refresh_token_reuse", account_id=old_token.account_id)
        raise HTTPException(status_code=401, detail="Refresh token has been revoked")

    account = await get_account_by_id(db, old_token.account_id)
    if account is None:
        raise HTTPException(status_code=401, detail="User not found")

    settings = get_settings()
    new_token_id = str(uuid.uuid4())
    new_access = create_access_token(account.id, account.email, account.role)
    new_refresh = create_refresh_token(account.id, account.email, account.role, token_id=new_token_id)
    await rotate_refresh_token(
        db,
        old_token=old_token,
        new_token_id=new_token_id,
        new_token_hash=_hash(new_refresh),
        new_expires_at=utcnow() + timedelta(days=settings.jwt_refresh_token_expire_days),
    )
    await db.commit()

    return TokenResponse(
        access_token=new_access,
        refresh_token=new_refresh,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_account_response(account),
    )


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Revoke a refresh token. Unknown or invalid tokens are ignored."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
    except pyjwt.InvalidTokenError:
        return {"detail": "Logged out"}

    if payload.get("jti"):
        await revoke_refresh_token(db, payload["jti"])
        await db.commit()
    return {"detail": "Logged out"}
