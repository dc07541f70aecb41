from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DependencyType = Literal["finish_to_start", "start_to_start", "finish_to_finish", "start_to_finish"]


def _parse_date(value: object) -> object:
  # Client date pickers send "" for a cleared field and sometimes a full ISO timestamp.
  if value is None:
    return None
  if isinstance(value, datetime):
    return value.date()
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if "T" in s:
      return s.split("T", 1)[0]
    return s
  return value


def _blank_to_none(value: object) -> object:
  if isinstance(value, str) and not value.strip():
    return None
  return value


class UserOut(BaseModel):
  id: int
  email: str
  name: str


class RegisterIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=6, max_length=200)
  name: str = Field(min_length=1, max_length=120)


class LoginIn(BaseModel):
  email: str
  password: str


class AuthOut(BaseModel):
  user: UserOut
  token: str


class MessageOut(BaseModel):
  message: str


class ProjectCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=200)
  description: str | None = None


class ProjectOut(BaseModel):
  id: int
  name: str
  description: str | None = None
  owner_id: int
  created_at: datetime


class ProjectListOut(ProjectOut):
  owner_name: str | None = None
  role: Literal["owner", "member"]


class InvitationOut(ProjectOut):
  owner_name: str | None = None
  invited_at: datetime


class InviteIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)


class StatusCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=100)


class StatusOut(BaseModel):
  id: int
  project_id: int
  name: str
  position: int


class MemberOut(BaseModel):
  id: int
  name: str
  email: str
  status: Literal["pending", "approved"]
  invited_at: datetime
  is_owner: bool


class AssigneeOut(BaseModel):
  id: int
  name: str
  email: str


class DependencyIn(BaseModel):
  depends_on_task_id: int | None = None
  dependency_type: DependencyType | None = None

  @field_validator("depends_on_task_id", "dependency_type", mode="before")
  @classmethod
  def _blank(cls, v: object) -> object:
    return _blank_to_none(v)


class DependencyOut(BaseModel):
  task_id: int
  depends_on_task_id: int
  dependency_type: DependencyType


class TaskCreateIn(BaseModel):
  projectId: int
  statusId: int | None = None
  title: str = Field(min_length=1, max_length=255)
  description: str | None = None
  startDate: date | None = None
  endDate: date | None = None
  assigneeIds: list[int] | None = None
  dependencies: list[DependencyIn] | None = None

  @field_validator("startDate", "endDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_date(v)

  @field_validator("statusId", mode="before")
  @classmethod
  def _status(cls, v: object) -> object:
    return _blank_to_none(v)


class TaskUpdateIn(BaseModel):
  """Partial update; only keys present in the request body are applied (see ``model_fields_set``)."""

  statusId: int | None = None
  title: str | None = Field(default=None, max_length=255)
  description: str | None = None
  startDate: date | None = None
  endDate: date | None = None
  assigneeIds: list[int] | None = None
  dependencies: list[DependencyIn] | None = None

  @field_validator("startDate", "endDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_date(v)


class TaskOut(BaseModel):
  id: int
  project_id: int
  status_id: int
  title: str
  description: str | None = None
  start_date: date | None = None
  end_date: date | None = None
  created_at: datetime
  updated_at: datetime
  assignees: list[AssigneeOut] = []
  dependencies: list[DependencyOut] = []
  attachments_count: int = 0


class ProjectDetailOut(ProjectOut):
  statuses: list[StatusOut]
  tasks: list[TaskOut]
  members: list[MemberOut]


class AttachmentOut(BaseModel):
  id: int
  task_id: int
  filename: str
  original_name: str
  file_size: int
  mime_type: str
  uploaded_by: int | None = None
  uploader_name: str | None = None
  uploaded_at: datetime


class ClientConfigOut(BaseModel):
  apiUrl: str
  maxAttachmentBytes: int
  allowedExtensions: list[str]
