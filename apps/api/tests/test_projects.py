from __future__ import annotations

from pathlib import Path

import pytest
from httpx import AsyncClient

from taskboard.config import settings

from conftest import add_member, auth, create_project, project_detail, register


@pytest.mark.anyio
async def test_create_project_seeds_default_statuses(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com", "Olivia")
  p = await create_project(client, owner["token"], "Launch")
  assert p["owner_id"] == owner["user"]["id"]
  assert p["description"] == "Q3 launch plan"

  detail = await project_detail(client, owner["token"], p["id"])
  assert [s["name"] for s in detail["statuses"]] == ["To Do", "In Progress", "Review", "Done"]
  assert [s["position"] for s in detail["statuses"]] == [0, 1, 2, 3]
  assert detail["tasks"] == []
  assert [(m["id"], m["is_owner"], m["status"]) for m in detail["members"]] == [(owner["user"]["id"], True, "approved")]


@pytest.mark.anyio
async def test_create_project_requires_name(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  for body in ({}, {"name": ""}, {"name": "   "}):
    res = await client.post("/projects", json=body, headers=auth(owner["token"]))
    assert res.status_code == 400, body
    assert "error" in res.json()


@pytest.mark.anyio
async def test_list_projects_shows_owned_and_approved_only(client: AsyncClient) -> None:
  alice = await register(client, "alice@example.com", "Alice")
  bob = await register(client, "bob@example.com", "Bob")
  mine = await create_project(client, bob["token"], "Mine")
  shared = await create_project(client, alice["token"], "Shared")
  invited = await create_project(client, alice["token"], "Invited")
  await create_project(client, alice["token"], "Hidden")

  await add_member(client, alice["token"], shared["id"], bob)
  await client.post(f"/projects/{invited['id']}/invite", json={"email": "bob@example.com"}, headers=auth(alice["token"]))

  res = await client.get("/projects", headers=auth(bob["token"]))
  assert res.status_code == 200, res.text
  rows = {r["id"]: r for r in res.json()}
  assert set(rows) == {mine["id"], shared["id"]}
  assert rows[mine["id"]]["role"] == "owner"
  assert rows[mine["id"]]["owner_name"] == "Bob"
  assert rows[shared["id"]]["role"] == "member"
  assert rows[shared["id"]]["owner_name"] == "Alice"


@pytest.mark.anyio
async def test_project_detail_denied_for_outsiders_and_missing(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  stranger = await register(client, "stranger@example.com")
  p = await create_project(client, owner["token"])

  assert (await client.get(f"/projects/{p['id']}", headers=auth(stranger["token"]))).status_code == 403
  assert (await client.get("/projects/999999", headers=auth(owner["token"]))).status_code == 403


@pytest.mark.anyio
async def test_only_owner_can_delete_project(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  member = await register(client, "member@example.com")
  p = await create_project(client, owner["token"])
  await add_member(client, owner["token"], p["id"], member)

  res = await client.delete(f"/projects/{p['id']}", headers=auth(member["token"]))
  assert res.status_code == 403
  assert (await project_detail(client, owner["token"], p["id"]))["id"] == p["id"]

  assert (await client.delete("/projects/999999", headers=auth(owner["token"]))).status_code == 403


@pytest.mark.anyio
async def test_delete_project_cascades(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  member = await register(client, "member@example.com")
  p = await create_project(client, owner["token"])
  await add_member(client, owner["token"], p["id"], member)

  a = (await client.post("/tasks", json={"projectId": p["id"], "title": "A", "assigneeIds": [member["user"]["id"]]}, headers=auth(owner["token"]))).json()
  b = (
    await client.post(
      "/tasks",
      json={"projectId": p["id"], "title": "B", "dependencies": [{"depends_on_task_id": a["id"]}]},
      headers=auth(owner["token"]),
    )
  ).json()
  up = await client.post(
    f"/tasks/{a['id']}/attachments", files={"file": ("a.txt", b"hello", "text/plain")}, headers=auth(owner["token"])
  )
  assert up.status_code == 201, up.text

  res = await client.delete(f"/projects/{p['id']}", headers=auth(owner["token"]))
  assert res.status_code == 200, res.text
  assert res.json() == {"message": "Project deleted"}

  assert (await client.get(f"/projects/{p['id']}", headers=auth(owner["token"]))).status_code == 403
  assert (await client.get("/projects", headers=auth(member["token"]))).json() == []
  assert (await client.patch(f"/tasks/{b['id']}", json={"title": "x"}, headers=auth(owner["token"]))).status_code == 404

  assert list(Path(settings.upload_dir).iterdir()) == []


@pytest.mark.anyio
async def test_add_status_appends_after_last(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  member = await register(client, "member@example.com")
  stranger = await register(client, "stranger@example.com")
  p = await create_project(client, owner["token"])
  await add_member(client, owner["token"], p["id"], member)

  res = await client.post(f"/projects/{p['id']}/statuses", json={"name": "Blocked"}, headers=auth(member["token"]))
  assert res.status_code == 201, res.text
  assert res.json()["position"] == 4

  denied = await client.post(f"/projects/{p['id']}/statuses", json={"name": "Nope"}, headers=auth(stranger["token"]))
  assert denied.status_code == 403

  names = [s["name"] for s in (await project_detail(client, owner["token"], p["id"]))["statuses"]]
  assert names == ["To Do", "In Progress", "Review", "Done", "Blocked"]


@pytest.mark.anyio
async def test_health_and_client_config(client: AsyncClient) -> None:
  assert (await client.get("/health")).json() == {"ok": True}

  res = await client.get("/config")
  assert res.status_code == 200
  body = res.json()
  assert body["maxAttachmentBytes"] == settings.max_attachment_bytes
  assert "pdf" in body["allowedExtensions"]
  assert "exe" not in body["allowedExtensions"]


@pytest.mark.anyio
async def test_unknown_route_uses_error_body(client: AsyncClient) -> None:
  res = await client.get("/nope")
  assert res.status_code == 404
  assert res.json() == {"error": "Not Found"}
  assert res.headers["x-content-type-options"] == "nosniff"


@pytest.mark.anyio
async def test_out_of_range_path_ids_are_400(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  h = auth(owner["token"])
  huge = 2**64

  for method, url in (
    ("GET", f"/projects/{huge}"),
    ("DELETE", f"/projects/{huge}"),
    ("GET", "/projects/0"),
    ("GET", f"/tasks/{huge}/attachments"),
    ("DELETE", f"/tasks/{huge}"),
    ("GET", f"/tasks/1/attachments/{huge}/download"),
  ):
    res = await client.request(method, url, headers=h)
    assert res.status_code == 400, (method, url, res.text)
    assert "error" in res.json()

  res = await client.patch(f"/tasks/{huge}", json={"title": "x"}, headers=h)
  assert res.status_code == 400
