from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard import aggregator, attachments
from taskboard.config import settings
from taskboard.deps import AuthContext, RowId, get_auth, get_db
from taskboard.errors import ValidationError
from taskboard.membership import require_task_access
from taskboard.schemas import AttachmentOut, MessageOut, TaskCreateIn, TaskOut, TaskUpdateIn

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(payload: TaskCreateIn, auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> TaskOut:
  return await aggregator.create_task(db, requester_id=auth.user_id, payload=payload)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: RowId,
  payload: TaskUpdateIn,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  return await aggregator.update_task(db, task_id=task_id, requester_id=auth.user_id, payload=payload)


@router.delete("/{task_id}", response_model=MessageOut)
async def delete_task(task_id: RowId, auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> MessageOut:
  await aggregator.delete_task(db, task_id=task_id, requester_id=auth.user_id)
  return MessageOut(message="Task deleted")


@router.post("/{task_id}/attachments", response_model=AttachmentOut, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
  task_id: RowId,
  file: UploadFile | None = File(default=None),
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> AttachmentOut:
  await require_task_access(db, task_id, auth.user_id)
  if file is None:
    raise ValidationError("No file uploaded")
  # One byte past the limit is enough to know it is too large.
  data = await file.read(int(settings.max_attachment_bytes) + 1)
  return await attachments.upload(
    db,
    task_id=task_id,
    uploader_id=auth.user_id,
    data=data,
    original_name=file.filename,
    mime_type=file.content_type,
  )


@router.get("/{task_id}/attachments", response_model=list[AttachmentOut])
async def list_attachments(task_id: RowId, auth: AuthContext = Depends(get_auth), db: AsyncSession = Depends(get_db)) -> list[AttachmentOut]:
  await require_task_access(db, task_id, auth.user_id)
  return await attachments.list_attachments(db, task_id)


@router.get("/{task_id}/attachments/{attachment_id}/download")
async def download_attachment(
  task_id: RowId,
  attachment_id: RowId,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> FileResponse:
  await require_task_access(db, task_id, auth.user_id)
  a, path = await attachments.download(db, task_id=task_id, attachment_id=attachment_id)
  return FileResponse(path=path, media_type=a.mime_type, filename=a.original_name)


@router.delete("/{task_id}/attachments/{attachment_id}", response_model=MessageOut)
async def delete_attachment(
  task_id: RowId,
  attachment_id: RowId,
  auth: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> MessageOut:
  await require_task_access(db, task_id, auth.user_id)
  await attachments.delete_attachment(db, task_id=task_id, attachment_id=attachment_id)
  return MessageOut(message="File deleted")
