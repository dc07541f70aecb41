from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, AsyncIterator

from fastapi import Depends, Path, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.db import SessionLocal
from taskboard.errors import Unauthenticated
from taskboard.models import User
from taskboard.security import INVALID_TOKEN, verify_token

# Row ids are BIGINT-sized at most; larger path values are rejected as bad input.
MAX_ROW_ID = 2**63 - 1
RowId = Annotated[int, Path(ge=1, le=MAX_ROW_ID)]


@dataclass(frozen=True)
class AuthContext:
  """Identity of a request whose bearer token has been verified."""

  user_id: int


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


def bearer_token(request: Request) -> str | None:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    return None
  return auth.split(" ", 1)[1].strip() or None


async def get_auth(request: Request, db: AsyncSession = Depends(get_db)) -> AuthContext:
  user_id = verify_token(bearer_token(request))
  res = await db.execute(select(User.id).where(User.id == user_id))
  if res.scalar_one_or_none() is None:
    # Token outlived its user.
    raise Unauthenticated(INVALID_TOKEN)
  return AuthContext(user_id=user_id)


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
