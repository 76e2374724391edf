# race_notifier_service/app/firebase_admin_init.py
import firebase_admin
import logging

from .config import settings

logger = logging.getLogger(__name__)
_firebase_app: firebase_admin.App | None = None


def initialize_firebase_admin() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app is None:
        try:
            options = {"projectId": settings.GCP_PROJECT_ID} if settings.GCP_PROJECT_ID else None
            # Relies on ADC when running on GCP
            _firebase_app = firebase_admin.initialize_app(options=options)
            logger.info("Firebase Admin SDK initialized successfully.")
        except ValueError:
            # Default app already exists (e.g. initialized by another module)
            _firebase_app = firebase_admin.get_app()
            logger.info("Firebase Admin SDK already initialized; reusing default app.")
        except Exception as e:
            logger.error(f"Failed to initialize Firebase Admin SDK: {e}", exc_info=True)
            raise RuntimeError(f"Firebase Admin SDK initialization failed: {e}")
    return _firebase_app


def is_firebase_admin_initialized() -> bool:
    return _firebase_app is not None
