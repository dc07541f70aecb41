from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import settings
from taskboard.deps import AuthContext, client_ip, get_auth, get_db
from taskboard.errors import Conflict, Unauthenticated, ValidationError
from taskboard.membership import normalize_email
from taskboard.models import User
from taskboard.rate_limit import limiter
from taskboard.schemas import AuthOut, LoginIn, RegisterIn, UserOut
from taskboard.security import hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name)


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)) -> AuthOut:
  email = normalize_email(payload.email)
  name = payload.name.strip()
  if "@" not in email:
    raise ValidationError("Invalid email")
  if not name:
    raise ValidationError("name is required")

  res = await db.execute(select(User.id).where(User.email == email))
  if res.scalar_one_or_none() is not None:
    raise Conflict("User already exists")

  u = User(email=email, name=name, password_hash=hash_password(payload.password))
  db.add(u)
  try:
    await db.commit()
  except IntegrityError as exc:
    await db.rollback()
    raise Conflict("User already exists") from exc
  logger.info("registered user %s", u.id)
  return AuthOut(user=_user_out(u), token=issue_token(u.id))


@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  email = normalize_email(payload.email)
  limiter.enforce(f"auth:login:ip:{client_ip(request)}", limit=int(settings.rate_limit_login_ip_per_minute))
  if email:
    limiter.enforce(f"auth:login:email:{email}", limit=int(settings.rate_limit_login_email_per_minute))

  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if u is None or not verify_password(payload.password, u.password_hash):
    raise Unauthenticated("Invalid email or password")
  return AuthOut(user=_user_out(u), token=issue_token(u.id))


@router.get("/me", response_model=UserOut)
async def me(auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> UserOut:
  u = await db.get(User, auth.user_id)
  if u is None:
    raise Unauthenticated("Invalid token")
  return _user_out(u)
