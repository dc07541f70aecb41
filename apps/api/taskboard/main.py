from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from taskboard.attachments import ALLOWED_EXTENSIONS
from taskboard.config import settings
from taskboard.errors import AppError, InternalError, RateLimited
from taskboard.routers.auth import router as auth_router
from taskboard.routers.projects import router as projects_router
from taskboard.routers.tasks import router as tasks_router
from taskboard.schemas import ClientConfigOut
from taskboard.security import secret_is_placeholder

logging.basicConfig(
  level=settings.log_level.upper(),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Taskboard API", version=settings.app_version)


def _error(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
  return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _validation_message(errors: list[dict]) -> str:
  if not errors:
    return "Invalid request"
  first = errors[0]
  loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
  msg = str(first.get("msg") or "invalid value")
  return f"{loc}: {msg}" if loc else msg


@app.exception_handler(AppError)
async def _app_error_handler(_, exc: AppError) -> JSONResponse:
  headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
  if isinstance(exc, InternalError):
    logger.error("internal error: %s", exc.message)
    return _error(exc.status_code, InternalError.default_message)
  return _error(exc.status_code, exc.message, headers)


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(_, exc: StarletteHTTPException) -> JSONResponse:
  return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_, exc: RequestValidationError) -> JSONResponse:
  return _error(400, _validation_message(exc.errors()))


@app.exception_handler(SQLAlchemyError)
async def _db_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
  logger.exception("database error on %s %s", request.method, request.url.path, exc_info=exc)
  return _error(500, InternalError.default_message)


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
  return _error(500, InternalError.default_message)


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(tasks_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/config", response_model=ClientConfigOut)
async def client_config() -> ClientConfigOut:
  return ClientConfigOut(
    apiUrl=settings.public_api_url,
    maxAttachmentBytes=int(settings.max_attachment_bytes),
    allowedExtensions=list(ALLOWED_EXTENSIONS),
  )


@app.on_event("startup")
async def _startup() -> None:
  if settings.is_test_db():
    return
  if secret_is_placeholder():
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  logger.info("taskboard api %s starting, uploads in %s", settings.app_version, settings.upload_dir)


def run() -> None:
  import uvicorn

  uvicorn.run("taskboard.main:app", host=settings.host, port=int(settings.port), log_level=settings.log_level.lower())
