from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from taskboard.errors import RateLimited


@dataclass
class _Window:
  reset_at: float
  count: int


class RateLimiter:
  """
  Fixed-window counter keyed by arbitrary strings (``auth:login:ip:<ip>`` etc).

  Counters live in the process, so each API replica limits independently.
  Expired windows are dropped as new attempts come in.
  """

  def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
    self._clock = clock
    self._lock = Lock()
    self._windows: dict[str, _Window] = {}

  def __len__(self) -> int:
    with self._lock:
      return len(self._windows)

  def _evict_expired(self, now: float) -> None:
    for k in [k for k, w in self._windows.items() if now >= w.reset_at]:
      del self._windows[k]

  def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """
    Count one attempt against ``key``. Returns (allowed, retry_after_seconds).
    """
    now = self._clock()
    with self._lock:
      self._evict_expired(now)
      w = self._windows.get(key)
      if w is None:
        self._windows[key] = _Window(reset_at=now + window_seconds, count=1)
        return True, 0
      if w.count >= limit:
        return False, max(1, int(w.reset_at - now))
      w.count += 1
      return True, 0

  def enforce(self, key: str, *, limit: int, window_seconds: int = 60) -> None:
    allowed, retry_after = self.hit(key, limit=limit, window_seconds=window_seconds)
    if not allowed:
      raise RateLimited(retry_after)

  def reset_prefix(self, prefix: str) -> None:
    with self._lock:
      for k in [k for k in self._windows if k.startswith(prefix)]:
        del self._windows[k]


limiter = RateLimiter()
