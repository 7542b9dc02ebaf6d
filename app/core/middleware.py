import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("app.core.middleware")

# Trigger infrastructure may forward its own id; accept only short opaque tokens.
_FORWARDED_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:/-]{8,128}$")
_QUIET_PATHS = frozenset({"/health"})


def _header(scope: Scope, name: bytes) -> str | None:
  for key, value in scope.get("headers", []):
    if key.lower() == name:
      return value.decode("latin-1")
  return None


def _resolve_request_id(scope: Scope) -> str:
  """Reuse a forwarded x-request-id so scheduler and event logs correlate across hops."""
  forwarded = _header(scope, b"x-request-id")
  if forwarded and _FORWARDED_ID_PATTERN.match(forwarded):
    return forwarded
  return uuid.uuid4().hex


def _caller_kind(path: str) -> str:
  if path.startswith("/internal/events/"):
    return "event"
  if path.startswith("/internal/"):
    return "task"
  if path.startswith("/api/"):
    return "api"
  return "probe"


class RequestLoggingMiddleware:
  """Tag every HTTP call with a request id and log one line per response."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = _resolve_request_id(scope)
    # Exception handlers read the id back from request.state.
    scope.setdefault("state", {})["request_id"] = request_id

    path = scope.get("path", "")
    method = scope.get("method", "UNKNOWN")
    level = logging.DEBUG if path in _QUIET_PATHS else logging.INFO
    started = time.perf_counter()
    status_code = 500

    async def send_with_request_id(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status", status_code)
        MutableHeaders(scope=message).setdefault("x-request-id", request_id)
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      logger.log(level, "%s %s caller=%s status=%s request_id=%s took=%.1fms", method, path, _caller_kind(path), status_code, request_id, elapsed_ms)
