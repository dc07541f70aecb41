from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'taskboard_test.db'}")
os.environ.setdefault("APP_SECRET", "test-secret-not-for-production")

from sqlalchemy import delete

from taskboard.config import settings
from taskboard.db import SessionLocal, engine
from taskboard.main import app
from taskboard.models import Base
from taskboard.rate_limit import limiter


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    for table in reversed(Base.metadata.sorted_tables):
      await db.execute(delete(table))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  if not settings.is_test_db():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. taskboard_test)."
    )
  monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def auth(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}


async def register(client: AsyncClient, email: str, name: str | None = None, password: str = "secret123") -> dict:
  res = await client.post(
    "/auth/register",
    json={"email": email, "password": password, "name": name or email.split("@", 1)[0].title()},
  )
  assert res.status_code == 201, res.text
  return res.json()


async def create_project(client: AsyncClient, token: str, name: str = "Launch") -> dict:
  res = await client.post("/projects", json={"name": name, "description": "Q3 launch plan"}, headers=auth(token))
  assert res.status_code == 201, res.text
  return res.json()


async def project_detail(client: AsyncClient, token: str, project_id: int) -> dict:
  res = await client.get(f"/projects/{project_id}", headers=auth(token))
  assert res.status_code == 200, res.text
  return res.json()


async def add_member(client: AsyncClient, owner_token: str, project_id: int, member: dict) -> None:
  """Invite ``member`` (a register() result) and accept on their behalf."""
  inv = await client.post(f"/projects/{project_id}/invite", json={"email": member["user"]["email"]}, headers=auth(owner_token))
  assert inv.status_code == 200, inv.text
  ok = await client.patch(f"/projects/{project_id}/invitation/approve", headers=auth(member["token"]))
  assert ok.status_code == 200, ok.text
