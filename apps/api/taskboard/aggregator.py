from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.attachments import remove_files
from taskboard.errors import ValidationError
from taskboard.membership import list_members, participant_ids, require_access, require_task_access
from taskboard.models import DEFAULT_DEPENDENCY_TYPE, Project, Status, Task, TaskAssignee, TaskAttachment, TaskDependency, User, utcnow
from taskboard.schemas import (
  AssigneeOut,
  DependencyIn,
  DependencyOut,
  ProjectDetailOut,
  StatusOut,
  TaskCreateIn,
  TaskOut,
  TaskUpdateIn,
)

logger = logging.getLogger(__name__)


def _status_out(s: Status) -> StatusOut:
  return StatusOut(id=s.id, project_id=s.project_id, name=s.name, position=s.position)


async def _assignees_by_task(db: AsyncSession, task_ids: list[int]) -> dict[int, list[AssigneeOut]]:
  res = await db.execute(
    select(TaskAssignee.task_id, User.id, User.name, User.email)
    .join(User, User.id == TaskAssignee.user_id)
    .where(TaskAssignee.task_id.in_(task_ids))
    .order_by(TaskAssignee.task_id.asc(), User.id.asc())
  )
  out: dict[int, list[AssigneeOut]] = defaultdict(list)
  for task_id, user_id, name, email in res.all():
    out[task_id].append(AssigneeOut(id=user_id, name=name, email=email))
  return out


async def _dependencies_by_task(db: AsyncSession, task_ids: list[int]) -> dict[int, list[DependencyOut]]:
  res = await db.execute(
    select(TaskDependency).where(TaskDependency.task_id.in_(task_ids)).order_by(TaskDependency.id.asc())
  )
  out: dict[int, list[DependencyOut]] = defaultdict(list)
  for d in res.scalars().all():
    out[d.task_id].append(
      DependencyOut(task_id=d.task_id, depends_on_task_id=d.depends_on_task_id, dependency_type=d.dependency_type)
    )
  return out


async def _attachment_counts(db: AsyncSession, task_ids: list[int]) -> dict[int, int]:
  res = await db.execute(
    select(TaskAttachment.task_id, func.count(TaskAttachment.id))
    .where(TaskAttachment.task_id.in_(task_ids))
    .group_by(TaskAttachment.task_id)
  )
  return {task_id: int(n) for task_id, n in res.all()}


async def enrich_tasks(db: AsyncSession, tasks: list[Task]) -> list[TaskOut]:
  """Attach assignees, dependency edges and attachment counts, one record per task."""
  if not tasks:
    return []
  ids = [t.id for t in tasks]
  assignees = await _assignees_by_task(db, ids)
  deps = await _dependencies_by_task(db, ids)
  counts = await _attachment_counts(db, ids)
  return [
    TaskOut(
      id=t.id,
      project_id=t.project_id,
      status_id=t.status_id,
      title=t.title,
      description=t.description,
      start_date=t.start_date,
      end_date=t.end_date,
      created_at=t.created_at,
      updated_at=t.updated_at,
      assignees=assignees.get(t.id, []),
      dependencies=deps.get(t.id, []),
      attachments_count=counts.get(t.id, 0),
    )
    for t in tasks
  ]


async def get_project_detail(db: AsyncSession, *, project_id: int, requester_id: int) -> ProjectDetailOut:
  p = await require_access(db, project_id, requester_id)

  sres = await db.execute(select(Status).where(Status.project_id == p.id).order_by(Status.position.asc(), Status.id.asc()))
  statuses = [_status_out(s) for s in sres.scalars().all()]

  tres = await db.execute(select(Task).where(Task.project_id == p.id).order_by(Task.created_at.desc(), Task.id.desc()))
  tasks = await enrich_tasks(db, list(tres.scalars().all()))

  return ProjectDetailOut(
    id=p.id,
    name=p.name,
    description=p.description,
    owner_id=p.owner_id,
    created_at=p.created_at,
    statuses=statuses,
    tasks=tasks,
    members=await list_members(db, p),
  )


async def _resolve_status(db: AsyncSession, project_id: int, status_id: int | None) -> int:
  if status_id is None:
    res = await db.execute(
      select(Status.id).where(Status.project_id == project_id).order_by(Status.position.asc(), Status.id.asc()).limit(1)
    )
    first = res.scalar_one_or_none()
    if first is None:
      raise ValidationError("Project has no statuses")
    return first
  res = await db.execute(select(Status.id).where(Status.id == status_id, Status.project_id == project_id))
  if res.scalar_one_or_none() is None:
    raise ValidationError("Invalid statusId")
  return status_id


async def _validate_assignees(db: AsyncSession, project: Project, assignee_ids: list[int]) -> list[int]:
  ids = list(dict.fromkeys(assignee_ids))
  if not ids:
    return []
  allowed = await participant_ids(db, project)
  if any(uid not in allowed for uid in ids):
    raise ValidationError("Invalid assigneeIds (must be project members)")
  return ids


async def _validate_dependencies(
  db: AsyncSession,
  project_id: int,
  items: list[DependencyIn],
  *,
  task_id: int | None,
) -> list[tuple[int, str]]:
  # Items without a target are dropped rather than rejected.
  edges = list(
    dict.fromkeys(
      (d.depends_on_task_id, d.dependency_type or DEFAULT_DEPENDENCY_TYPE) for d in items if d.depends_on_task_id
    )
  )
  if not edges:
    return []
  targets = {target for target, _ in edges}
  if task_id is not None and task_id in targets:
    raise ValidationError("A task cannot depend on itself")
  res = await db.execute(select(Task.id).where(Task.id.in_(targets), Task.project_id == project_id))
  if set(res.scalars().all()) != targets:
    raise ValidationError("Invalid dependency task id")
  return edges


def _add_assignees(db: AsyncSession, task_id: int, user_ids: list[int]) -> None:
  for uid in user_ids:
    db.add(TaskAssignee(task_id=task_id, user_id=uid))


def _add_dependencies(db: AsyncSession, task_id: int, edges: list[tuple[int, str]]) -> None:
  for target, dep_type in edges:
    db.add(TaskDependency(task_id=task_id, depends_on_task_id=target, dependency_type=dep_type))


async def create_task(db: AsyncSession, *, requester_id: int, payload: TaskCreateIn) -> TaskOut:
  p = await require_access(db, payload.projectId, requester_id)
  title = payload.title.strip()
  if not title:
    raise ValidationError("title is required")
  status_id = await _resolve_status(db, p.id, payload.statusId)
  assignee_ids = await _validate_assignees(db, p, payload.assigneeIds or [])
  edges = await _validate_dependencies(db, p.id, payload.dependencies or [], task_id=None)

  t = Task(
    project_id=p.id,
    status_id=status_id,
    title=title,
    description=payload.description,
    start_date=payload.startDate,
    end_date=payload.endDate,
  )
  db.add(t)
  await db.flush()
  _add_assignees(db, t.id, assignee_ids)
  _add_dependencies(db, t.id, edges)
  await db.commit()
  logger.info("project %s: user %s created task %s", p.id, requester_id, t.id)
  return (await enrich_tasks(db, [t]))[0]


async def update_task(db: AsyncSession, *, task_id: int, requester_id: int, payload: TaskUpdateIn) -> TaskOut:
  """Apply only the fields present in the request body.

  ``assigneeIds`` and ``dependencies`` replace the existing rows wholesale
  when present; ``null`` and ``[]`` both clear them.
  """
  t = await require_task_access(db, task_id, requester_id)
  fields_set = payload.model_fields_set

  if "statusId" in fields_set:
    if payload.statusId is None:
      raise ValidationError("statusId cannot be null")
    t.status_id = await _resolve_status(db, t.project_id, payload.statusId)
  if "title" in fields_set:
    title = (payload.title or "").strip()
    if not title:
      raise ValidationError("title cannot be empty")
    t.title = title
  if "description" in fields_set:
    t.description = payload.description
  if "startDate" in fields_set:
    t.start_date = payload.startDate
  if "endDate" in fields_set:
    t.end_date = payload.endDate

  if "assigneeIds" in fields_set:
    project = await db.get(Project, t.project_id)
    assignee_ids = await _validate_assignees(db, project, payload.assigneeIds or [])
    await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == t.id))
    _add_assignees(db, t.id, assignee_ids)
  if "dependencies" in fields_set:
    edges = await _validate_dependencies(db, t.project_id, payload.dependencies or [], task_id=t.id)
    await db.execute(delete(TaskDependency).where(TaskDependency.task_id == t.id))
    _add_dependencies(db, t.id, edges)

  t.updated_at = utcnow()
  await db.commit()
  return (await enrich_tasks(db, [t]))[0]


async def delete_task_rows(db: AsyncSession, task_ids: list[int]) -> list[str]:
  """Delete tasks and every row hanging off them; returns stored filenames to unlink after commit."""
  if not task_ids:
    return []
  fres = await db.execute(select(TaskAttachment.filename).where(TaskAttachment.task_id.in_(task_ids)))
  filenames = list(fres.scalars().all())
  await db.execute(delete(TaskAttachment).where(TaskAttachment.task_id.in_(task_ids)))
  await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id.in_(task_ids)))
  await db.execute(
    delete(TaskDependency).where(
      or_(TaskDependency.task_id.in_(task_ids), TaskDependency.depends_on_task_id.in_(task_ids))
    )
  )
  await db.execute(delete(Task).where(Task.id.in_(task_ids)))
  return filenames


async def delete_task(db: AsyncSession, *, task_id: int, requester_id: int) -> None:
  t = await require_task_access(db, task_id, requester_id)
  filenames = await delete_task_rows(db, [t.id])
  await db.commit()
  remove_files(filenames)
  logger.info("project %s: user %s deleted task %s", t.project_id, requester_id, t.id)
