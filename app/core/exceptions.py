import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("uvicorn.error")

_INTERNAL_ERROR = "Internal Server Error"


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _json_safe(value: Any) -> Any:
  """Reduce validation contexts to JSON primitives; exceptions become `Type: message`."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    return f"{type(value).__name__}: {value}" if str(value) else type(value).__name__
  return str(value)


def _respond(request: Request, status_code: int, body: dict[str, Any], headers: dict[str, str] | None = None) -> JSONResponse:
  request_id = _request_id(request)
  if request_id:
    body = {**body, "requestId": request_id}
  return JSONResponse(status_code=status_code, content=body, headers=headers)


def _strip_inputs(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop echoed request input from validation errors; bodies carry device tokens."""
  cleaned: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key != "input"}
    ctx = entry.get("ctx")
    if isinstance(ctx, dict):
      entry["ctx"] = {key: value for key, value in ctx.items() if key != "input"}
    cleaned.append(_json_safe(entry))
  return cleaned


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Report unhandled errors as 500 so the trigger infrastructure treats the invocation as failed."""
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", _request_id(request), request.url.path, type(exc).__name__, exc_info=True)
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, {"detail": _INTERNAL_ERROR})


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  errors = _strip_inputs(exc.errors())
  logger.warning("Rejected payload request_id=%s path=%s errors=%s", _request_id(request), request.url.path, errors)
  return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, {"detail": errors})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through; replace 5xx details with a generic message."""
  if exc.status_code >= 500:
    logger.error("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, _request_id(request), request.url.path, exc.detail, exc_info=True)
    return _respond(request, exc.status_code, {"detail": _INTERNAL_ERROR})

  from app.config import get_settings

  if get_settings().log_http_4xx:
    logger.warning("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, _request_id(request), request.url.path, exc.detail)
  return _respond(request, exc.status_code, {"detail": exc.detail}, headers=getattr(exc, "headers", None))


async def service_unavailable_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Push gateway or Firestore not initialized: 503 with the reason, no traceback."""
  logger.warning("Service unavailable request_id=%s path=%s reason=%s", _request_id(request), request.url.path, exc)
  return _respond(request, status.HTTP_503_SERVICE_UNAVAILABLE, {"error": str(exc) or "Service unavailable"})
