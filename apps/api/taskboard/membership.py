from __future__ import annotations

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.errors import Conflict, Forbidden, NotFound, ValidationError
from taskboard.models import MEMBER_APPROVED, MEMBER_PENDING, Project, ProjectMember, Task, User
from taskboard.schemas import InvitationOut, MemberOut

logger = logging.getLogger(__name__)

INVITATION_ACTIONS = ("approve", "reject")


def normalize_email(email: str | None) -> str:
  return (email or "").strip().lower()


async def get_project(db: AsyncSession, project_id: int) -> Project | None:
  res = await db.execute(select(Project).where(Project.id == project_id))
  return res.scalar_one_or_none()


async def _has_approved_row(db: AsyncSession, project_id: int, user_id: int) -> bool:
  res = await db.execute(
    select(ProjectMember.id).where(
      ProjectMember.project_id == project_id,
      ProjectMember.user_id == user_id,
      ProjectMember.status == MEMBER_APPROVED,
    )
  )
  return res.scalar_one_or_none() is not None


async def check_access(db: AsyncSession, project_id: int, user_id: int) -> bool:
  """True iff ``user_id`` owns the project or holds an approved membership row.

  Evaluated against the database on every call; nothing is cached.
  """
  res = await db.execute(select(Project.owner_id).where(Project.id == project_id))
  owner_id = res.scalar_one_or_none()
  if owner_id is None:
    return False
  if owner_id == user_id:
    return True
  return await _has_approved_row(db, project_id, user_id)


async def require_access(db: AsyncSession, project_id: int, user_id: int) -> Project:
  p = await get_project(db, project_id)
  if p is None:
    raise Forbidden("Access denied")
  if p.owner_id != user_id and not await _has_approved_row(db, project_id, user_id):
    raise Forbidden("Access denied")
  return p


async def require_owner(db: AsyncSession, project_id: int, user_id: int, *, message: str) -> Project:
  p = await get_project(db, project_id)
  if p is None or p.owner_id != user_id:
    raise Forbidden(message)
  return p


async def participant_ids(db: AsyncSession, project: Project) -> set[int]:
  """Owner plus approved members: the users tasks of ``project`` may be assigned to."""
  res = await db.execute(
    select(ProjectMember.user_id).where(ProjectMember.project_id == project.id, ProjectMember.status == MEMBER_APPROVED)
  )
  ids = set(res.scalars().all())
  ids.add(project.owner_id)
  return ids


async def invite(db: AsyncSession, *, project_id: int, inviter_id: int, email: str) -> ProjectMember:
  p = await require_owner(db, project_id, inviter_id, message="Only the project owner can invite members")

  normalized = normalize_email(email)
  ures = await db.execute(select(User).where(User.email == normalized))
  invitee = ures.scalar_one_or_none()
  if invitee is None:
    raise NotFound("User not found")
  if invitee.id == p.owner_id:
    raise Conflict("User is already a member")

  existing = await db.execute(
    select(ProjectMember.id).where(ProjectMember.project_id == p.id, ProjectMember.user_id == invitee.id)
  )
  if existing.scalar_one_or_none() is not None:
    raise Conflict("User already invited")

  m = ProjectMember(project_id=p.id, user_id=invitee.id, status=MEMBER_PENDING)
  db.add(m)
  try:
    await db.commit()
  except IntegrityError as exc:
    # Lost a race against a concurrent invite for the same user.
    await db.rollback()
    raise Conflict("User already invited") from exc
  logger.info("project %s: user %s invited user %s", p.id, inviter_id, invitee.id)
  return m


async def respond(db: AsyncSession, *, project_id: int, user_id: int, action: str) -> str:
  """Accept or decline a pending invitation.

  ``approve`` moves the row to approved, ``reject`` deletes it. Only pending
  rows are touched; when there is none this is a silent no-op.
  """
  if action not in INVITATION_ACTIONS:
    raise ValidationError("Invalid action")

  pending = (
    ProjectMember.project_id == project_id,
    ProjectMember.user_id == user_id,
    ProjectMember.status == MEMBER_PENDING,
  )
  if action == "approve":
    res = await db.execute(update(ProjectMember).where(*pending).values(status=MEMBER_APPROVED))
  else:
    res = await db.execute(delete(ProjectMember).where(*pending))
  await db.commit()
  if res.rowcount:
    logger.info("project %s: user %s invitation %s", project_id, user_id, "approved" if action == "approve" else "rejected")
  return action


async def list_pending_invitations(db: AsyncSession, user_id: int) -> list[InvitationOut]:
  res = await db.execute(
    select(Project, User.name, ProjectMember.invited_at)
    .join(ProjectMember, ProjectMember.project_id == Project.id)
    .join(User, User.id == Project.owner_id)
    .where(ProjectMember.user_id == user_id, ProjectMember.status == MEMBER_PENDING)
    .order_by(ProjectMember.invited_at.desc(), ProjectMember.id.desc())
  )
  return [
    InvitationOut(
      id=p.id,
      name=p.name,
      description=p.description,
      owner_id=p.owner_id,
      created_at=p.created_at,
      owner_name=owner_name,
      invited_at=invited_at,
    )
    for p, owner_name, invited_at in res.all()
  ]


async def list_members(db: AsyncSession, project: Project) -> list[MemberOut]:
  """Owner first, then explicit membership rows (pending and approved), one entry per user."""
  ores = await db.execute(select(User).where(User.id == project.owner_id))
  owner = ores.scalar_one()

  members: dict[int, MemberOut] = {
    owner.id: MemberOut(
      id=owner.id,
      name=owner.name,
      email=owner.email,
      status=MEMBER_APPROVED,
      invited_at=project.created_at,
      is_owner=True,
    )
  }
  res = await db.execute(
    select(ProjectMember, User)
    .join(User, User.id == ProjectMember.user_id)
    .where(ProjectMember.project_id == project.id)
    .order_by(ProjectMember.invited_at.asc(), ProjectMember.id.asc())
  )
  for m, u in res.all():
    members.setdefault(
      u.id,
      MemberOut(id=u.id, name=u.name, email=u.email, status=m.status, invited_at=m.invited_at, is_owner=False),
    )
  return list(members.values())


async def require_task_access(db: AsyncSession, task_id: int, user_id: int) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if t is None:
    raise NotFound("Task not found")
  await require_access(db, t.project_id, user_id)
  return t
