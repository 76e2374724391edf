# race_notifier_service/app/services/session_watcher.py
import logging
import datetime
import math
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError
from google.cloud import firestore

from ..config import settings
from ..models import PushMessage, ScheduleEvent, SentNotificationDoc, SessionSlot
from ..utils.session_labels import format_session_name
from .delivery_client import NotificationDeliveryClient
from .sent_notification_ledger import (
    build_notification_key,
    delete_expired_records,
    load_recent_keys,
    record_sent_notification,
)
from .user_preferences import load_users_with_tokens

logger = logging.getLogger(__name__)

DEFAULT_GP_NAME = "Gran Premio"


def load_schedule_events(db: firestore.Client, category: str) -> List[ScheduleEvent]:
    """Reads a category's schedule. Malformed events and session slots are skipped."""
    events: List[ScheduleEvent] = []
    for event_snap in db.collection(settings.schedule_collection(category)).stream():
        event_data = event_snap.to_dict() or {}
        raw_sessions = event_data.get("sessions")
        if not isinstance(raw_sessions, dict):
            logger.warning(
                f"SessionWatcher: Event {event_snap.id} in {category} has no sessions map. Skipping."
            )
            continue

        sessions: Dict[str, SessionSlot] = {}
        for session_type, raw_slot in raw_sessions.items():
            if not raw_slot:
                continue
            try:
                sessions[session_type] = SessionSlot.model_validate(raw_slot)
            except ValidationError as e:
                logger.warning(
                    f"SessionWatcher: Invalid session '{session_type}' in {category}/{event_snap.id}: {e}. Skipping."
                )

        gp_name = event_data.get("gp")
        events.append(
            ScheduleEvent(
                event_id=event_snap.id,
                gp=gp_name if isinstance(gp_name, str) else None,
                sessions=sessions,
            )
        )
    return events


def _next_session_sort_key(event: ScheduleEvent, now: datetime.datetime):
    next_time = event.next_session_time(now)
    # Events with nothing left to run go last
    return (next_time is None, next_time or now)


def minutes_until(session_start: datetime.datetime, now: datetime.datetime) -> int:
    return math.floor((session_start - now).total_seconds() / 60)


def build_session_message(
    token: str, category: str, gp_name: str, session_type: str, diff_minutes: int
) -> PushMessage:
    session_name = format_session_name(session_type)
    title = f"🏁 {category.upper()} - {session_name} - {gp_name}"
    body = f"¡La sesión comienza en {diff_minutes} minutos!"
    return PushMessage(
        token=token,
        title=title,
        body=body,
        data={
            "category": category,
            "sessionType": session_type,
            "gpName": gp_name,
            "diffMinutes": str(diff_minutes),
            "title": title,
            "body": body,
        },
        android_priority="high",
        channel_id=settings.SESSION_CHANNEL_ID,
    )


async def dispatch_session_notification(
    db: firestore.Client,
    delivery_client: NotificationDeliveryClient,
    category: str,
    event_id: str,
    gp_name: str,
    session_type: str,
    diff_minutes: int,
    notification_key: str,
    now: datetime.datetime,
) -> SentNotificationDoc:
    """
    Sends the session alert to every user with notifications enabled for the
    category, then records the key in the ledger. The record is written even
    when nobody is subscribed so the session is not re-evaluated next tick.
    """
    users = load_users_with_tokens(db)

    messages = [
        build_session_message(user.fcm_token, category, gp_name, session_type, diff_minutes)
        for user in users
        if user.enabled_preference_for(category)
    ]

    if messages:
        logger.info(
            f"SessionWatcher: Sending {len(messages)} notifications for {category.upper()} - "
            f"{format_session_name(session_type)}."
        )
        result = await delivery_client.send_batch(messages)
    else:
        logger.info(
            f"SessionWatcher: No users subscribed to {category.upper()} ({len(users)} users checked)."
        )
        result = None

    record = SentNotificationDoc(
        category=category,
        event_id=event_id,
        session_type=session_type,
        gp_name=gp_name,
        minutes_before_start=diff_minutes,
        recipient_count=len(messages),
        success_count=result.success_count if result else 0,
        failure_count=result.failure_count if result else 0,
        timestamp=now,
    )
    record_sent_notification(db, notification_key, record)
    return record


async def _check_category(
    db: firestore.Client,
    delivery_client: NotificationDeliveryClient,
    category: str,
    now: datetime.datetime,
    sent_keys: Set[str],
) -> Optional[SentNotificationDoc]:
    events = load_schedule_events(db, category)
    if not events:
        logger.info(f"SessionWatcher: No events in {settings.schedule_collection(category)}.")
        return None

    events.sort(key=lambda event: _next_session_sort_key(event, now))

    # Later events cannot have a sooner session than the first few
    for event in events[: settings.MAX_CANDIDATE_EVENTS]:
        for session in event.future_sessions(now):
            diff_minutes = minutes_until(session.starts_at, now)

            if diff_minutes > settings.SESSION_WINDOW_MAX_MINUTES:
                break
            if diff_minutes < settings.SESSION_WINDOW_MIN_MINUTES:
                continue

            notification_key = build_notification_key(
                category, event.event_id, session.session_type, session.starts_at
            )
            if notification_key in sent_keys:
                logger.debug(f"SessionWatcher: {notification_key} already notified.")
                continue

            gp_name = event.gp or DEFAULT_GP_NAME
            logger.info(
                f"SessionWatcher: Notifying {category.upper()} - {format_session_name(session.session_type)} - "
                f"{gp_name} - starts in {diff_minutes} minutes."
            )
            record = await dispatch_session_notification(
                db,
                delivery_client,
                category,
                event.event_id,
                gp_name,
                session.session_type,
                diff_minutes,
                notification_key,
                now,
            )
            sent_keys.add(notification_key)
            return record

    logger.info(f"SessionWatcher: No upcoming sessions for {category.upper()}.")
    return None


async def check_upcoming_sessions(
    db: firestore.Client,
    delivery_client: NotificationDeliveryClient,
    now: datetime.datetime | None = None,
) -> Dict[str, Any]:
    """
    Notifies subscribers of sessions starting within the notification window.

    At most one session per category is notified per run, the nearest one not
    yet in the ledger. Categories are isolated: a failure in one is logged and
    the others still run. Returns a summary dictionary of the run.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    logger.info(f"SessionWatcher: Checking upcoming sessions at {now.isoformat()}.")

    # Without the ledger there is no dedup, so a failed read aborts the run
    sent_keys = load_recent_keys(db, now)

    dispatched: List[str] = []
    failed_categories: List[str] = []
    messages_sent = 0
    messages_failed = 0

    for category in settings.CATEGORIES:
        try:
            record = await _check_category(db, delivery_client, category, now, sent_keys)
        except Exception as e:
            logger.error(
                f"SessionWatcher: Error checking sessions for {category}: {e}", exc_info=True
            )
            failed_categories.append(category)
            continue

        if record:
            dispatched.append(f"{category}:{record.event_id}:{record.session_type}")
            messages_sent += record.success_count
            messages_failed += record.failure_count

    expired_deleted = 0
    try:
        expired_deleted = delete_expired_records(db, now)
    except Exception as e:
        logger.error(f"SessionWatcher: Error cleaning old notifications: {e}", exc_info=True)

    summary_message = (
        f"SessionWatcher: Check complete. "
        f"Notified: {len(dispatched)}. "
        f"Messages Sent: {messages_sent}. "
        f"Messages Failed: {messages_failed}. "
        f"Failed Categories: {len(failed_categories)}. "
        f"Expired Records Deleted: {expired_deleted}."
    )
    logger.info(summary_message)
    return {
        "message": summary_message,
        "notified_sessions": dispatched,
        "messages_sent": messages_sent,
        "messages_failed": messages_failed,
        "failed_categories": failed_categories,
        "expired_records_deleted": expired_deleted,
    }
