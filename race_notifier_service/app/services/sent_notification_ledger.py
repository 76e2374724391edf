# race_notifier_service/app/services/sent_notification_ledger.py
"""
Idempotency store for session notifications.

A session notification is sent at most once per key. The key rounds the
session start down to the minute, so a session observed on several scheduler
ticks inside its notification window always maps to the same record.
"""
import logging
import datetime
from typing import Set

from google.cloud import firestore

from ..config import settings
from ..models import SentNotificationDoc

logger = logging.getLogger(__name__)


def build_notification_key(
    category: str, event_id: str, session_type: str, session_start: datetime.datetime
) -> str:
    minute_bucket = int(session_start.timestamp() // 60)
    return f"{category}_{event_id}_{session_type}_{minute_bucket}"


def load_recent_keys(db: firestore.Client, now: datetime.datetime) -> Set[str]:
    """Keys written within the lookback window. Older records cannot match an upcoming session."""
    cutoff = now - datetime.timedelta(hours=settings.SENT_LEDGER_LOOKBACK_HOURS)
    recent_query = (
        db.collection(settings.SENT_NOTIFICATIONS_COLLECTION)
        .where("timestamp", ">", cutoff)
        .stream()
    )
    keys = {snap.id for snap in recent_query}
    logger.info(f"Ledger: Loaded {len(keys)} notification keys sent since {cutoff.isoformat()}.")
    return keys


def record_sent_notification(
    db: firestore.Client, notification_key: str, record: SentNotificationDoc
) -> None:
    db.collection(settings.SENT_NOTIFICATIONS_COLLECTION).document(notification_key).set(
        record.model_dump(by_alias=True)
    )
    logger.info(
        f"Ledger: Recorded {notification_key} (sent to {record.recipient_count}, "
        f"success {record.success_count}, failures {record.failure_count})."
    )


def delete_expired_records(db: firestore.Client, now: datetime.datetime) -> int:
    """Deletes ledger records older than the retention period, in batches. Returns the count deleted."""
    cutoff = now - datetime.timedelta(days=settings.SENT_LEDGER_RETENTION_DAYS)
    expired_query = (
        db.collection(settings.SENT_NOTIFICATIONS_COLLECTION)
        .where("timestamp", "<", cutoff)
        .stream()
    )

    batch = db.batch()
    docs_in_batch = 0
    total_deleted = 0

    for doc in expired_query:
        batch.delete(doc.reference)
        docs_in_batch += 1
        total_deleted += 1

        if docs_in_batch == settings.FIRESTORE_MAX_BATCH_OPERATIONS:
            batch.commit()
            batch = db.batch()
            docs_in_batch = 0

    if docs_in_batch > 0:
        batch.commit()

    logger.info(f"Ledger: Deleted {total_deleted} notification records older than {cutoff.isoformat()}.")
    return total_deleted
