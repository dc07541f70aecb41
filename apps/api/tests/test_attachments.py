from __future__ import annotations

import re
from pathlib import Path

import pytest
from httpx import AsyncClient

from taskboard.attachments import list_attachments, sweep_orphans
from taskboard.config import settings
from taskboard.db import SessionLocal

from conftest import add_member, auth, create_project, register

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


async def _task(client: AsyncClient):
  owner = await register(client, "owner@example.com", "Olivia")
  member = await register(client, "member@example.com", "Max")
  p = await create_project(client, owner["token"])
  await add_member(client, owner["token"], p["id"], member)
  res = await client.post("/tasks", json={"projectId": p["id"], "title": "Specs"}, headers=auth(owner["token"]))
  assert res.status_code == 201, res.text
  return owner, member, p, res.json()


async def _upload(client: AsyncClient, token: str, task_id: int, name: str, data: bytes, mime: str):
  return await client.post(f"/tasks/{task_id}/attachments", files={"file": (name, data, mime)}, headers=auth(token))


def _upload_dir() -> Path:
  return Path(settings.upload_dir)


@pytest.mark.anyio
async def test_upload_download_round_trip(client: AsyncClient) -> None:
  owner, member, _, t = await _task(client)

  res = await _upload(client, member["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")
  assert res.status_code == 201, res.text
  a = res.json()
  assert a["original_name"] == "brief.pdf"
  assert a["file_size"] == len(PDF_BYTES)
  assert a["mime_type"] == "application/pdf"
  assert a["uploaded_by"] == member["user"]["id"]
  assert a["uploader_name"] == "Max"
  assert re.fullmatch(r"\d+-\d+\.pdf", a["filename"])
  assert (_upload_dir() / a["filename"]).read_bytes() == PDF_BYTES

  dl = await client.get(f"/tasks/{t['id']}/attachments/{a['id']}/download", headers=auth(owner["token"]))
  assert dl.status_code == 200
  assert dl.content == PDF_BYTES
  assert dl.headers["content-type"].startswith("application/pdf")
  assert "brief.pdf" in dl.headers["content-disposition"]


@pytest.mark.anyio
async def test_unsupported_type_is_rejected_and_nothing_is_stored(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)

  res = await _upload(client, owner["token"], t["id"], "virus.exe", b"MZ\x90\x00", "application/x-msdownload")
  assert res.status_code == 400
  assert res.json() == {"error": "Unsupported file type"}
  assert not _upload_dir().exists() or list(_upload_dir().iterdir()) == []

  # A known MIME type is enough even when the extension is unfamiliar.
  ok = await _upload(client, owner["token"], t["id"], "notes.md", b"# hi\n", "text/plain")
  assert ok.status_code == 201, ok.text


@pytest.mark.anyio
async def test_size_limit_is_inclusive(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  limit = settings.max_attachment_bytes
  assert limit == 10 * 1024 * 1024

  exact = await _upload(client, owner["token"], t["id"], "big.zip", b"\0" * limit, "application/zip")
  assert exact.status_code == 201, exact.text
  assert exact.json()["file_size"] == limit

  over = await _upload(client, owner["token"], t["id"], "bigger.zip", b"\0" * (limit + 1), "application/zip")
  assert over.status_code == 413
  assert over.json() == {"error": "Attachment too large"}
  assert len(list(_upload_dir().iterdir())) == 1


@pytest.mark.anyio
async def test_missing_file_field_is_400(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  res = await client.post(
    f"/tasks/{t['id']}/attachments",
    files={"upload": ("a.txt", b"x", "text/plain")},
    headers=auth(owner["token"]),
  )
  assert res.status_code == 400
  assert res.json() == {"error": "No file uploaded"}


@pytest.mark.anyio
async def test_list_newest_first_and_task_count(client: AsyncClient) -> None:
  owner, member, p, t = await _task(client)
  first = (await _upload(client, owner["token"], t["id"], "one.txt", b"1", "text/plain")).json()
  second = (await _upload(client, member["token"], t["id"], "two.png", b"\x89PNG", "image/png")).json()

  res = await client.get(f"/tasks/{t['id']}/attachments", headers=auth(member["token"]))
  assert res.status_code == 200, res.text
  rows = res.json()
  assert [r["id"] for r in rows] == [second["id"], first["id"]]
  assert [r["uploader_name"] for r in rows] == ["Max", "Olivia"]

  detail = (await client.get(f"/projects/{p['id']}", headers=auth(owner["token"]))).json()
  assert detail["tasks"][0]["attachments_count"] == 2


@pytest.mark.anyio
async def test_delete_attachment_removes_row_and_file(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  a = (await _upload(client, owner["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")).json()

  res = await client.delete(f"/tasks/{t['id']}/attachments/{a['id']}", headers=auth(owner["token"]))
  assert res.status_code == 200, res.text
  assert res.json() == {"message": "File deleted"}
  assert not (_upload_dir() / a["filename"]).exists()
  assert (await client.get(f"/tasks/{t['id']}/attachments", headers=auth(owner["token"]))).json() == []

  again = await client.delete(f"/tasks/{t['id']}/attachments/{a['id']}", headers=auth(owner["token"]))
  assert again.status_code == 404


@pytest.mark.anyio
async def test_deleting_task_deletes_its_files(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  a = (await _upload(client, owner["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")).json()
  b = (await _upload(client, owner["token"], t["id"], "sheet.xlsx", b"PK\x03\x04", "application/octet-stream")).json()

  res = await client.delete(f"/tasks/{t['id']}", headers=auth(owner["token"]))
  assert res.status_code == 200, res.text
  assert not (_upload_dir() / a["filename"]).exists()
  assert not (_upload_dir() / b["filename"]).exists()
  async with SessionLocal() as db:
    assert await list_attachments(db, t["id"]) == []
  # The task itself is gone, so the route reports it missing.
  assert (await client.get(f"/tasks/{t['id']}/attachments", headers=auth(owner["token"]))).status_code == 404


@pytest.mark.anyio
async def test_missing_file_on_disk_is_404(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  a = (await _upload(client, owner["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")).json()
  (_upload_dir() / a["filename"]).unlink()

  res = await client.get(f"/tasks/{t['id']}/attachments/{a['id']}/download", headers=auth(owner["token"]))
  assert res.status_code == 404
  assert res.json() == {"error": "File missing on server"}


@pytest.mark.anyio
async def test_attachment_must_belong_to_the_task_in_the_path(client: AsyncClient) -> None:
  owner, _, p, t = await _task(client)
  other = (await client.post("/tasks", json={"projectId": p["id"], "title": "Other"}, headers=auth(owner["token"]))).json()
  a = (await _upload(client, owner["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")).json()

  wrong = await client.get(f"/tasks/{other['id']}/attachments/{a['id']}/download", headers=auth(owner["token"]))
  assert wrong.status_code == 404
  assert wrong.json() == {"error": "File not found"}
  wrong_delete = await client.delete(f"/tasks/{other['id']}/attachments/{a['id']}", headers=auth(owner["token"]))
  assert wrong_delete.status_code == 404
  assert (_upload_dir() / a["filename"]).exists()


@pytest.mark.anyio
async def test_attachment_routes_require_project_access(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  stranger = await register(client, "stranger@example.com")
  a = (await _upload(client, owner["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")).json()
  h = auth(stranger["token"])

  assert (await _upload(client, stranger["token"], t["id"], "x.txt", b"x", "text/plain")).status_code == 403
  assert (await client.get(f"/tasks/{t['id']}/attachments", headers=h)).status_code == 403
  assert (await client.get(f"/tasks/{t['id']}/attachments/{a['id']}/download", headers=h)).status_code == 403
  assert (await client.delete(f"/tasks/{t['id']}/attachments/{a['id']}", headers=h)).status_code == 403
  assert (await client.get("/tasks/999999/attachments", headers=auth(owner["token"]))).status_code == 404


@pytest.mark.anyio
async def test_sweep_orphans_removes_only_unreferenced_files(client: AsyncClient) -> None:
  owner, _, _, t = await _task(client)
  a = (await _upload(client, owner["token"], t["id"], "brief.pdf", PDF_BYTES, "application/pdf")).json()
  stray = _upload_dir() / "1700000000000-123456789.pdf"
  stray.write_bytes(b"left behind")

  async with SessionLocal() as db:
    removed = await sweep_orphans(db)

  assert removed == [stray.name]
  assert not stray.exists()
  assert (_upload_dir() / a["filename"]).exists()
