import json
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials, exceptions

from app.core.config import Settings
from app.core.exceptions import AuthenticationError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


def _service_account(settings: Settings):
    """Build a service-account certificate from whichever source is configured."""
    # 1. JSON blob in an environment variable (best for hosted deployments)
    if settings.FIREBASE_CREDENTIALS_JSON:
        try:
            return credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON))
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to load Firebase credentials from FIREBASE_CREDENTIALS_JSON: {e}")

    # 2. Split service-account fields; hosts often store the key with escaped newlines
    if settings.FIREBASE_PROJECT_ID and settings.FIREBASE_CLIENT_EMAIL and settings.FIREBASE_PRIVATE_KEY:
        try:
            return credentials.Certificate({
                "type": "service_account",
                "project_id": settings.FIREBASE_PROJECT_ID,
                "client_email": settings.FIREBASE_CLIENT_EMAIL,
                "private_key": settings.FIREBASE_PRIVATE_KEY.replace("\\n", "\n"),
                "token_uri": "https://oauth2.googleapis.com/token",
            })
        except ValueError as e:
            logger.error(f"Failed to load Firebase credentials from FIREBASE_PROJECT_ID/CLIENT_EMAIL/PRIVATE_KEY: {e}")

    # 3. Fallback to file path
    path = settings.FIREBASE_CREDENTIALS_PATH
    if path and os.path.exists(path):
        try:
            return credentials.Certificate(path)
        except (ValueError, IOError) as e:
            logger.error(f"Failed to load Firebase credentials from {path}: {e}")

    return None


def init_firebase(settings: Settings) -> Optional[firebase_admin.App]:
    """Initialize the Firebase Admin app once, returning None when no credentials exist."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    cred = _service_account(settings)
    if cred is None:
        logger.warning("Firebase credentials not found; bearer tokens cannot be verified")
        return None

    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase Admin SDK initialized")
    return app


class FirebaseIdentityVerifier:
    """Validates Firebase ID tokens and extracts the stable user id."""

    def __init__(self, app: Optional[firebase_admin.App]):
        self.app = app

    def verify(self, token: str) -> str:
        if self.app is None:
            logger.error("Firebase Admin SDK not initialized")
            raise ServiceNotConfiguredError("Authentication service")

        try:
            decoded_token = auth.verify_id_token(token, app=self.app)
        except auth.ExpiredIdTokenError:
            raise AuthenticationError("Token has expired")
        except auth.RevokedIdTokenError:
            raise AuthenticationError("Token has been revoked")
        except (auth.InvalidIdTokenError, ValueError) as e:
            logger.warning(f"Invalid token: {e}")
            raise AuthenticationError("Invalid or expired token")
        except exceptions.FirebaseError as e:
            logger.error(f"Authentication error: {e}")
            raise AuthenticationError("Could not validate credentials")

        return decoded_token["uid"]
