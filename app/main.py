from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import events, notifications, tasks
from app.config import get_settings
from app.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler, service_unavailable_exception_handler
from app.core.firebase import FirebaseNotReadyError, is_firebase_ready
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware
from app.notifications.contracts import PushGatewayUnavailableError

settings = get_settings()

app = FastAPI(title="Quickgas Notifications", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization", "x-quickgas-task-secret"])

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(PushGatewayUnavailableError, service_unavailable_exception_handler)
app.add_exception_handler(FirebaseNotReadyError, service_unavailable_exception_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str | bool]:
  """Return service status and whether the push gateway is initialized."""
  return {"status": "ok", "version": "0.1.0", "firebaseReady": is_firebase_ready()}


app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
app.include_router(events.router, prefix="/internal")
app.include_router(tasks.router, prefix="/internal")
