import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials

from ...core.config import Settings

logger = logging.getLogger(__name__)


def init_firebase_app(settings: Settings) -> Optional[firebase_admin.App]:
    """Initialize the process-wide Firebase Admin app once.

    Safe to call repeatedly: an already initialized default app is returned as is.
    The caller owns the handle and injects it where needed.
    """
    try:
        app = firebase_admin.get_app()
        logger.info("Firebase Admin SDK already initialized")
        return app
    except ValueError:
        pass

    if not settings.FIREBASE_SERVICE_ACCOUNT_PATH:
        logger.warning("FIREBASE_SERVICE_ACCOUNT_PATH is not set; federated session revocation disabled")
        return None

    cred = credentials.Certificate(settings.FIREBASE_SERVICE_ACCOUNT_PATH)
    options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
    app = firebase_admin.initialize_app(cred, options)
    logger.info("Firebase Admin SDK initialized")
    return app
