from __future__ import annotations

import base64
import hashlib
import json
import time

from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext

from taskboard.config import settings
from taskboard.errors import Unauthenticated

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVALID_TOKEN = "Invalid token"
PLACEHOLDER_SECRETS = {"dev-secret-change-me", "replace_with_strong_random_secret"}


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def _fernet() -> Fernet:
  # Any APP_SECRET works; Fernet wants 32 urlsafe-base64 bytes.
  digest = hashlib.sha256((settings.app_secret or "").encode("utf-8")).digest()
  return Fernet(base64.urlsafe_b64encode(digest))


def _ttl_seconds() -> int:
  return max(1, int(settings.token_ttl_days)) * 24 * 60 * 60


def issue_token(user_id: int, *, now: int | None = None) -> str:
  """Return a signed session token carrying ``user_id`` and its expiry."""
  issued_at = int(now if now is not None else time.time())
  payload = {"uid": int(user_id), "exp": issued_at + _ttl_seconds()}
  raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
  return _fernet().encrypt_at_time(raw, issued_at).decode("utf-8")


def verify_token(token: str | None) -> int:
  """Return the user id in ``token``.

  Missing, malformed, forged and expired tokens all raise the same
  ``Unauthenticated`` error so callers cannot tell them apart.
  """
  if not token or not token.strip():
    raise Unauthenticated(INVALID_TOKEN)
  try:
    raw = _fernet().decrypt(token.strip().encode("utf-8"), ttl=_ttl_seconds())
    payload = json.loads(raw)
    user_id = int(payload["uid"])
    expires_at = int(payload["exp"])
  except (InvalidToken, ValueError, KeyError, TypeError) as exc:
    raise Unauthenticated(INVALID_TOKEN) from exc
  if expires_at <= int(time.time()):
    raise Unauthenticated(INVALID_TOKEN)
  return user_id


def secret_is_placeholder() -> bool:
  return not settings.app_secret or settings.app_secret.strip().lower() in PLACEHOLDER_SECRETS
