"""
Firestore client bootstrap through the Firebase Admin SDK.

Credentials always come from Application Default Credentials: the runtime
service account on Cloud Run, `gcloud auth application-default login` or
GOOGLE_APPLICATION_CREDENTIALS elsewhere.
"""

from __future__ import annotations

import os
import threading
from typing import Optional

import firebase_admin
import google.auth
from firebase_admin import credentials, firestore


DEFAULT_DATABASE = "(default)"

_app_lock = threading.Lock()


def check_store_target() -> None:
    """
    Outside Cloud Run, only the emulator is allowed unless ALLOW_PROD_FIRESTORE=1.
    """
    if os.getenv("K_SERVICE") or os.getenv("FIRESTORE_EMULATOR_HOST"):
        return
    if (os.getenv("ALLOW_PROD_FIRESTORE") or "").strip() == "1":
        return
    raise RuntimeError(
        "Refusing to use a live Firestore project outside Cloud Run. "
        "Set FIRESTORE_EMULATOR_HOST, or ALLOW_PROD_FIRESTORE=1 to override."
    )


def init_firebase_admin(*, project_id: Optional[str] = None) -> firebase_admin.App:
    with _app_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        if not project_id:
            _, project_id = google.auth.default()
        if not project_id:
            raise RuntimeError("No Firebase project id: set FIREBASE_PROJECT_ID or GOOGLE_CLOUD_PROJECT.")
        return firebase_admin.initialize_app(credentials.ApplicationDefault(), {"projectId": project_id})


def get_firestore_client(*, project_id: Optional[str] = None, database: str = DEFAULT_DATABASE):
    check_store_target()
    app = init_firebase_admin(project_id=project_id)
    if database and database != DEFAULT_DATABASE:
        return firestore.client(app, database_id=database)
    return firestore.client(app)
