"""
Firebase Admin bridge.

Credentials come from a service-account JSON file (FIREBASE_SERVICE_ACCOUNT)
or from FIREBASE_PROJECT_ID / FIREBASE_CLIENT_EMAIL / FIREBASE_PRIVATE_KEY.
"""
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials

from config import settings

log = logging.getLogger(__name__)

app: Optional[firebase_admin.App] = None


def _load_credentials() -> Optional[credentials.Certificate]:
    if os.path.exists(settings.firebase_service_account):
        return credentials.Certificate(settings.firebase_service_account)
    if settings.firebase_project_id and settings.firebase_client_email and settings.firebase_private_key:
        return credentials.Certificate({
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "client_email": settings.firebase_client_email,
            # env files usually carry the key with escaped newlines
            "private_key": settings.firebase_private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        })
    return None


def init_firebase() -> Optional[firebase_admin.App]:
    global app
    if app is not None:
        return app
    cred = _load_credentials()
    if cred is None:
        log.warning("No Firebase service account found. ID token login will fail until credentials are provided.")
        return None
    app = firebase_admin.initialize_app(cred)
    log.info("Firebase Admin initialized")
    return app


def is_initialized() -> bool:
    return app is not None


class InvalidIdToken(Exception):
    pass


def verify_id_token(id_token: str) -> dict:
    """Decoded claims of a Firebase ID token; raises InvalidIdToken if rejected."""
    try:
        return auth.verify_id_token(id_token, app=app)
    except (ValueError, auth.InvalidIdTokenError) as e:
        raise InvalidIdToken(str(e)) from e
