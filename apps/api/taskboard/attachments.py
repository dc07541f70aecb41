from __future__ import annotations

import asyncio
import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import settings
from taskboard.errors import NotFound, StorageInconsistency, TooLargeError, UnsupportedTypeError
from taskboard.models import TaskAttachment, User
from taskboard.schemas import AttachmentOut

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ("jpeg", "jpg", "png", "pdf", "doc", "docx", "xls", "xlsx", "txt", "zip", "rar")
ALLOWED_MIME_TYPES = {
  "image/jpeg",
  "image/jpg",
  "image/png",
  "application/pdf",
  "application/msword",
  "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
  "application/vnd.ms-excel",
  "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
  "text/plain",
  "application/zip",
  "application/x-zip-compressed",
  "application/vnd.rar",
  "application/x-rar-compressed",
}

_EXT_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


def upload_dir() -> Path:
  return Path(settings.upload_dir)


def stored_path(filename: str) -> Path:
  return upload_dir() / filename


def _display_name(original_name: str | None) -> str:
  # Browsers may send a full client path; keep the last segment only.
  name = (original_name or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
  return name or "file"


def _extension(name: str) -> str:
  ext = os.path.splitext(name)[1]
  return ext if _EXT_RE.match(ext) else ""


def is_allowed_type(original_name: str, mime_type: str | None) -> bool:
  ext = _extension(original_name).lstrip(".").lower()
  if ext in ALLOWED_EXTENSIONS:
    return True
  mime = (mime_type or "").split(";", 1)[0].strip().lower()
  return mime in ALLOWED_MIME_TYPES


def new_stored_name(original_name: str) -> str:
  return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{_extension(original_name)}"


def remove_files(filenames: Iterable[str]) -> int:
  """Best-effort unlink of stored files; returns how many were removed."""
  removed = 0
  for name in filenames:
    path = stored_path(name)
    try:
      path.unlink()
      removed += 1
    except FileNotFoundError:
      continue
    except OSError:
      logger.warning("could not remove attachment file %s", path, exc_info=True)
  return removed


def _attachment_out(a: TaskAttachment, uploader_name: str | None = None) -> AttachmentOut:
  return AttachmentOut(
    id=a.id,
    task_id=a.task_id,
    filename=a.filename,
    original_name=a.original_name,
    file_size=a.file_size,
    mime_type=a.mime_type,
    uploaded_by=a.uploaded_by,
    uploader_name=uploader_name,
    uploaded_at=a.uploaded_at,
  )


async def upload(
  db: AsyncSession,
  *,
  task_id: int,
  uploader_id: int,
  data: bytes,
  original_name: str | None,
  mime_type: str | None,
) -> AttachmentOut:
  display_name = _display_name(original_name)
  if not is_allowed_type(display_name, mime_type):
    raise UnsupportedTypeError("Unsupported file type")
  if len(data) > int(settings.max_attachment_bytes):
    raise TooLargeError("Attachment too large")

  upload_dir().mkdir(parents=True, exist_ok=True)
  filename = new_stored_name(display_name)
  path = stored_path(filename)
  with open(path, "wb") as f:
    f.write(data)

  a = TaskAttachment(
    task_id=task_id,
    filename=filename,
    original_name=display_name,
    file_size=len(data),
    mime_type=(mime_type or "application/octet-stream"),
    uploaded_by=uploader_id,
  )
  db.add(a)
  try:
    await db.commit()
  except Exception:
    await db.rollback()
    remove_files([filename])
    raise
  logger.info("task %s: user %s uploaded %s as %s (%d bytes)", task_id, uploader_id, display_name, filename, len(data))

  ures = await db.execute(select(User.name).where(User.id == uploader_id))
  return _attachment_out(a, ures.scalar_one_or_none())


async def _get_for_task(db: AsyncSession, task_id: int, attachment_id: int) -> TaskAttachment:
  res = await db.execute(
    select(TaskAttachment).where(TaskAttachment.id == attachment_id, TaskAttachment.task_id == task_id)
  )
  a = res.scalar_one_or_none()
  if a is None:
    raise NotFound("File not found")
  return a


async def download(db: AsyncSession, *, task_id: int, attachment_id: int) -> tuple[TaskAttachment, Path]:
  a = await _get_for_task(db, task_id, attachment_id)
  path = stored_path(a.filename)
  if not path.is_file():
    logger.error("attachment %s: row exists but %s is missing on disk", a.id, path)
    raise StorageInconsistency("File missing on server")
  return a, path


async def delete_attachment(db: AsyncSession, *, task_id: int, attachment_id: int) -> None:
  """Delete the metadata row, then the file.

  A crash between the two leaves an unreferenced file behind, which
  ``sweep_orphans`` reclaims.
  """
  a = await _get_for_task(db, task_id, attachment_id)
  filename = a.filename
  await db.execute(delete(TaskAttachment).where(TaskAttachment.id == a.id))
  await db.commit()
  remove_files([filename])
  logger.info("task %s: attachment %s deleted", task_id, attachment_id)


async def list_attachments(db: AsyncSession, task_id: int) -> list[AttachmentOut]:
  res = await db.execute(
    select(TaskAttachment, User.name)
    .outerjoin(User, User.id == TaskAttachment.uploaded_by)
    .where(TaskAttachment.task_id == task_id)
    .order_by(TaskAttachment.uploaded_at.desc(), TaskAttachment.id.desc())
  )
  return [_attachment_out(a, uploader_name) for a, uploader_name in res.all()]


async def sweep_orphans(db: AsyncSession) -> list[str]:
  """Remove files in the upload directory that no attachment row references."""
  root = upload_dir()
  if not root.is_dir():
    return []
  res = await db.execute(select(TaskAttachment.filename))
  referenced = set(res.scalars().all())
  orphans = sorted(p.name for p in root.iterdir() if p.is_file() and p.name not in referenced)
  remove_files(orphans)
  if orphans:
    logger.info("removed %d orphaned upload(s) from %s", len(orphans), root)
  return orphans


def sweep_orphans_main() -> None:
  from taskboard.db import SessionLocal

  async def _run() -> None:
    async with SessionLocal() as db:
      for name in await sweep_orphans(db):
        print(name)

  logging.basicConfig(level=settings.log_level.upper())
  asyncio.run(_run())
