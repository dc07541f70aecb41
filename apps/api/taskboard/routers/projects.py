from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard import membership, projects
from taskboard.aggregator import get_project_detail
from taskboard.deps import AuthContext, RowId, get_auth, get_db
from taskboard.schemas import (
  InvitationOut,
  InviteIn,
  MessageOut,
  ProjectCreateIn,
  ProjectDetailOut,
  ProjectListOut,
  ProjectOut,
  StatusCreateIn,
  StatusOut,
)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[ProjectListOut])
async def list_projects(auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> list[ProjectListOut]:
  return await projects.list_projects(db, auth.user_id)


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(
  payload: ProjectCreateIn,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> ProjectOut:
  return await projects.create_project(db, owner_id=auth.user_id, name=payload.name, description=payload.description)


@router.get("/invitations/pending", response_model=list[InvitationOut])
async def pending_invitations(auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> list[InvitationOut]:
  return await membership.list_pending_invitations(db, auth.user_id)


@router.get("/{project_id}", response_model=ProjectDetailOut)
async def get_project(project_id: RowId, auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> ProjectDetailOut:
  return await get_project_detail(db, project_id=project_id, requester_id=auth.user_id)


@router.delete("/{project_id}", response_model=MessageOut)
async def delete_project(project_id: RowId, auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> MessageOut:
  await projects.delete_project(db, project_id=project_id, user_id=auth.user_id)
  return MessageOut(message="Project deleted")


@router.post("/{project_id}/invite", response_model=MessageOut)
async def invite(
  project_id: RowId,
  payload: InviteIn,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> MessageOut:
  await membership.invite(db, project_id=project_id, inviter_id=auth.user_id, email=payload.email)
  return MessageOut(message="Invitation sent")


@router.patch("/{project_id}/invitation/{action}", response_model=MessageOut)
async def respond_to_invitation(
  project_id: RowId,
  action: str,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> MessageOut:
  await membership.respond(db, project_id=project_id, user_id=auth.user_id, action=action)
  return MessageOut(message="Invitation accepted" if action == "approve" else "Invitation declined")


@router.post("/{project_id}/statuses", response_model=StatusOut, status_code=status.HTTP_201_CREATED)
async def create_status(
  project_id: RowId,
  payload: StatusCreateIn,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> StatusOut:
  return await projects.create_status(db, project_id=project_id, user_id=auth.user_id, name=payload.name)
