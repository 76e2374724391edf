# race_notifier_service/app/firestore_client.py
import logging
from google.cloud import firestore
from .config import settings

logger = logging.getLogger(__name__)
_db_client: firestore.Client | None = None


def _client_kwargs() -> dict:
    kwargs = {}
    if settings.GCP_PROJECT_ID:
        kwargs["project"] = settings.GCP_PROJECT_ID
    if settings.FIRESTORE_DATABASE_NAME:
        kwargs["database"] = settings.FIRESTORE_DATABASE_NAME
    return kwargs


def get_firestore_client() -> firestore.Client:
    """Shared client for the schedule, standings, user and ledger collections."""
    global _db_client
    if _db_client is None:
        kwargs = _client_kwargs()
        try:
            _db_client = firestore.Client(**kwargs)
        except Exception as e:
            logger.error(f"Firestore client could not be created with {kwargs}: {e}", exc_info=True)
            raise RuntimeError(f"Failed to initialize Firestore: {e}")
        logger.info(
            f"Firestore client ready (project={kwargs.get('project', 'ADC default')}, "
            f"database={kwargs.get('database', '(default)')})."
        )
    return _db_client
