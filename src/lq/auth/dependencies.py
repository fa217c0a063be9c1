"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.jwt import verify_token
from lq.auth.service import get_account_by_id
from lq.database import get_session
from lq.db.models import Account

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Account:
    """Verify the bearer JWT and return the account. Raises 401 on failure."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    account = await get_account_by_id(db, int(payload["sub"]))
    if account is None:
        raise HTTPException(status_code=401, detail="User not found")
    return account


async def require_teacher(account: Account = Depends(get_current_user)) -> Account:
    if account.role != "teacher":
        raise HTTPException(status_code=403, detail="Teacher role required")
    return account


async def require_student(account: Account = Depends(get_current_user)) -> Account:
    if account.role != "student":
        raise HTTPException(status_code=403, detail="Student role required")
    return account
