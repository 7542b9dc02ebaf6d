"""Firebase Admin SDK lifecycle: initialized once at startup, consulted before every call."""

import logging

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore import Client as FirestoreClient

from app.config import Settings

logger = logging.getLogger(__name__)

_FIREBASE_READY = False


class FirebaseNotReadyError(RuntimeError):
  """Raised when Firebase-backed collaborators are used before startup initialization succeeded."""


def initialize_firebase(settings: Settings) -> bool:
  """Initialize the Firebase Admin SDK and record readiness; safe to call more than once."""
  global _FIREBASE_READY
  if _FIREBASE_READY:
    return True

  if firebase_admin._apps:
    _FIREBASE_READY = True
    return True

  if not settings.firebase_project_id:
    logger.warning("Firebase Project ID not set. Firebase Admin SDK not initialized; push delivery is unavailable.")
    return False

  try:
    if settings.firebase_service_account_json_path:
      cred = credentials.Certificate(settings.firebase_service_account_json_path)
      firebase_admin.initialize_app(cred, {"projectId": settings.firebase_project_id})
    else:
      # Use default credentials (e.g. Google Application Default Credentials)
      firebase_admin.initialize_app(options={"projectId": settings.firebase_project_id})
  except Exception as e:  # noqa: BLE001
    logger.error("Failed to initialize Firebase Admin SDK: %s", e)
    return False

  _FIREBASE_READY = True
  logger.info("Firebase Admin SDK initialized successfully project_id=%s", settings.firebase_project_id)
  return True


def is_firebase_ready() -> bool:
  """Return whether startup initialization completed."""
  return _FIREBASE_READY


def reset_firebase_state() -> None:
  """Forget readiness so a later startup re-initializes (used on shutdown)."""
  global _FIREBASE_READY
  _FIREBASE_READY = False


def get_firestore_client() -> FirestoreClient:
  """Return the Firestore client for the initialized app; never initializes lazily."""
  if not _FIREBASE_READY:
    raise FirebaseNotReadyError("Firebase Admin SDK is not initialized.")
  return firestore.client()
