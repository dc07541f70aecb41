from __future__ import annotations

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.aggregator import delete_task_rows
from taskboard.attachments import remove_files
from taskboard.errors import ValidationError
from taskboard.membership import require_access, require_owner
from taskboard.models import MEMBER_APPROVED, Project, ProjectMember, Status, Task, User
from taskboard.schemas import ProjectListOut, ProjectOut, StatusOut

logger = logging.getLogger(__name__)

DEFAULT_STATUSES = ("To Do", "In Progress", "Review", "Done")


def project_out(p: Project) -> ProjectOut:
  return ProjectOut(id=p.id, name=p.name, description=p.description, owner_id=p.owner_id, created_at=p.created_at)


async def list_projects(db: AsyncSession, user_id: int) -> list[ProjectListOut]:
  approved = select(ProjectMember.project_id).where(
    ProjectMember.user_id == user_id, ProjectMember.status == MEMBER_APPROVED
  )
  res = await db.execute(
    select(Project, User.name)
    .join(User, User.id == Project.owner_id)
    .where(or_(Project.owner_id == user_id, Project.id.in_(approved)))
    .order_by(Project.created_at.desc(), Project.id.desc())
  )
  return [
    ProjectListOut(
      id=p.id,
      name=p.name,
      description=p.description,
      owner_id=p.owner_id,
      created_at=p.created_at,
      owner_name=owner_name,
      role="owner" if p.owner_id == user_id else "member",
    )
    for p, owner_name in res.all()
  ]


async def create_project(db: AsyncSession, *, owner_id: int, name: str, description: str | None) -> ProjectOut:
  clean = (name or "").strip()
  if not clean:
    raise ValidationError("name is required")
  p = Project(name=clean, description=description, owner_id=owner_id)
  db.add(p)
  await db.flush()
  for idx, status_name in enumerate(DEFAULT_STATUSES):
    db.add(Status(project_id=p.id, name=status_name, position=idx))
  await db.commit()
  logger.info("user %s created project %s", owner_id, p.id)
  return project_out(p)


async def delete_project(db: AsyncSession, *, project_id: int, user_id: int) -> None:
  p = await require_owner(db, project_id, user_id, message="Only the project owner can delete the project")
  tres = await db.execute(select(Task.id).where(Task.project_id == p.id))
  filenames = await delete_task_rows(db, list(tres.scalars().all()))
  await db.execute(delete(Status).where(Status.project_id == p.id))
  await db.execute(delete(ProjectMember).where(ProjectMember.project_id == p.id))
  await db.execute(delete(Project).where(Project.id == p.id))
  await db.commit()
  remove_files(filenames)
  logger.info("user %s deleted project %s", user_id, project_id)


async def create_status(db: AsyncSession, *, project_id: int, user_id: int, name: str) -> StatusOut:
  p = await require_access(db, project_id, user_id)
  clean = (name or "").strip()
  if not clean:
    raise ValidationError("name is required")
  res = await db.execute(select(func.max(Status.position)).where(Status.project_id == p.id))
  max_pos = res.scalar_one()
  s = Status(project_id=p.id, name=clean, position=(max_pos + 1) if max_pos is not None else 0)
  db.add(s)
  await db.commit()
  return StatusOut(id=s.id, project_id=s.project_id, name=s.name, position=s.position)
