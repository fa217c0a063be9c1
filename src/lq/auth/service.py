"""
Account registration, login and refresh-token bookkeeping.

Login counts as qualifying streak activity and always broadcasts
``streak:update`` so every open view of the account refreshes.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update

from lq.auth.password import check_needs_rehash, hash_password, validate_password_strength, verify_password
from lq.clock import utcnow
from lq.config import get_settings
from lq.db.models import Account, RefreshToken
from lq.ledger.badge_service import evaluate_auto_badges
from lq.ledger.streak_service import record_qualifying_event

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

ROLES = frozenset({"student", "teacher"})


# ---------------------------------------------------------------------------
# Account queries
# ---------------------------------------------------------------------------


async def get_account_by_id(db: AsyncSession, account_id: int) -> Account | None:
    result = await db.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def get_account_by_email(db: AsyncSession, email: str) -> Account | None:
    """Fetch an account by email (case-insensitive)."""
    result = await db.execute(select(Account).where(func.lower(Account.email) == email.lower()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


async def register_account(
    db: AsyncSession,
    email: str,
    password: str,
    name: str,
    role: str = "student",
) -> Account:
    """
    Create an account. The role is fixed from here on.

    Raises:
        PasswordStrengthError: If the password is weak.
        ValueError: If the email is taken or the role is unknown.
    """
    if role not in ROLES:
        msg = f"Invalid role: {role}"
        raise ValueError(msg)
    validate_password_strength(password)

    if await get_account_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ValueError(msg)

    account = Account(
        email=email.lower(),
        name=name,
        password_hash=hash_password(password),
        role=role,
        xp=0,
        level=1,
        coins=0,
        game_points=0,
        current_streak=0,
        longest_streak=0,
        created_at=utcnow(),
        login_count=0,
    )
    db.add(account)
    await db.flush()
    logger.info("account_created", account_id=account.id, role=role)
    return account


async def authenticate_account(
    db: AsyncSession,
    redis: Any | None,
    email: str,
    password: str,
) -> Account:
    """
    Check credentials, then record the login as streak activity.

    Raises:
        ValueError: If credentials are invalid.
        PermissionError: If the account is locked after repeated failures.
    """
    account = await get_account_by_email(db, email)
    if account is None:
        msg = "Invalid email or password"
        raise ValueError(msg)

    if redis is not None and await check_account_lockout(redis, account.id):
        msg = "Account temporarily locked. Try again later."
        raise PermissionError(msg)

    if not verify_password(password, account.password_hash):
        if redis is not None:
            await increment_failed_login(redis, account.id)
        msg = "Invalid email or password"
        raise ValueError(msg)

    if redis is not None:
        await clear_failed_login(redis, account.id)

    now = utcnow()
    account.last_login = now
    account.login_count = (account.login_count or 0) + 1
    if check_needs_rehash(account.password_hash):
        account.password_hash = hash_password(password)
        logger.info("password_rehashed", account_id=account.id)
    await db.flush()

    await record_qualifying_event(db, redis, account, now=now, broadcast=True)
    await evaluate_auto_badges(db, redis, account)
    return account


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


async def check_account_lockout(redis: Any, account_id: int) -> bool:
    settings = get_settings()
    count_str = await redis.get(f"login_attempts:{account_id}")
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Any, account_id: int) -> int:
    settings = get_settings()
    key = f"login_attempts:{account_id}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Any, account_id: int) -> None:
    await redis.delete(f"login_attempts:{account_id}")


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


async def store_refresh_token(
    db: AsyncSession,
    account_id: int,
    token_id: str,
    token_hash: str,
    expires_at: datetime,
) -> RefreshToken:
    token = RefreshToken(
        id=token_id,
        account_id=account_id,
        token_hash=token_hash,
        issued_at=utcnow(),
        expires_at=expires_at,
        is_revoked=False,
    )
    db.add(token)
    await db.flush()
    return token


async def get_refresh_token(db: AsyncSession, token_id: str) -> RefreshToken | None:
    result = await db.execute(select(RefreshToken).where(RefreshToken.id == token_id))
    return result.scalar_one_or_none()


async def rotate_refresh_token(
    db: AsyncSession,
    old_token: RefreshToken,
    new_token_id: str,
    new_token_hash: str,
    new_expires_at: datetime,
) -> RefreshToken:
    """Revoke the presented token and store its replacement."""
    old_token.is_revoked = True
    old_token.revoked_at = utcnow()
    old_token.replaced_by = new_token_id
    return await store_refresh_token(db, old_token.account_id, new_token_id, new_token_hash, new_expires_at)


async def revoke_refresh_token(db: AsyncSession, token_id: str) -> bool:
    token = await get_refresh_token(db, token_id)
    if token is None:
        return False
    token.is_revoked = True
    token.revoked_at = utcnow()
    await db.flush()
    return True


async def revoke_all_tokens(db: AsyncSession, account_id: int) -> int:
    """Revoke every live refresh token of an account. Returns count revoked."""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.account_id == account_id, RefreshToken.is_revoked.is_(False))
        .values(is_revoked=True, revoked_at=utcnow())
    )
    await db.flush()
    return result.rowcount
