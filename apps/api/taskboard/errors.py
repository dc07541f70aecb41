from __future__ import annotations

from fastapi import status


class AppError(Exception):
  """Base for failures that map onto a client-visible HTTP status and message."""

  status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
  default_message = "Internal server error"

  def __init__(self, message: str | None = None) -> None:
    self.message = message or self.default_message
    super().__init__(self.message)


class ValidationError(AppError):
  status_code = status.HTTP_400_BAD_REQUEST
  default_message = "Invalid request"


class UnsupportedTypeError(ValidationError):
  default_message = "Unsupported file type"


class TooLargeError(AppError):
  status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
  default_message = "File too large"


class Unauthenticated(AppError):
  status_code = status.HTTP_401_UNAUTHORIZED
  default_message = "Not authenticated"


class Forbidden(AppError):
  status_code = status.HTTP_403_FORBIDDEN
  default_message = "Access denied"


class NotFound(AppError):
  status_code = status.HTTP_404_NOT_FOUND
  default_message = "Not found"


class StorageInconsistency(NotFound):
  # Metadata row exists but the stored file is gone.
  default_message = "File missing on server"


class Conflict(AppError):
  # The public API reports duplicates as plain 400s.
  status_code = status.HTTP_400_BAD_REQUEST
  default_message = "Already exists"


class InternalError(AppError):
  pass


class RateLimited(AppError):
  status_code = status.HTTP_429_TOO_MANY_REQUESTS
  default_message = "Too many requests"

  def __init__(self, retry_after: int, message: str | None = None) -> None:
    self.retry_after = retry_after
    super().__init__(message)
