# race_notifier_service/app/services/standings_watcher.py
import logging
import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from google.cloud import firestore

from ..config import settings
from ..models import PreviousStandingsDoc, PushMessage, StandingEntry, UserPreferenceDoc
from ..points_systems import (
    UNKNOWN_POSITION,
    determine_position_from_points,
    format_points,
    position_text,
)
from .delivery_client import NotificationDeliveryClient
from .user_preferences import load_users_with_tokens

logger = logging.getLogger(__name__)


def _decode_entry(category: str, raw_entry: Dict[str, Any], source: str) -> Optional[StandingEntry]:
    try:
        return StandingEntry.model_validate(raw_entry)
    except ValidationError as e:
        invalid_fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "entry" for error in e.errors()
        )
        logger.warning(
            f"StandingsWatcher: Skipping invalid standings entry in {category} ({source}); "
            f"invalid fields: {invalid_fields}"
        )
        return None


def load_current_standings(db: firestore.Client, category: str) -> List[StandingEntry]:
    """Current standings ordered by points, highest first. The stored position is not used for ordering."""
    standings: List[StandingEntry] = []
    for driver_snap in db.collection(settings.standings_collection(category)).stream():
        entry = _decode_entry(
            category, {**(driver_snap.to_dict() or {}), "id": driver_snap.id}, driver_snap.id
        )
        if entry:
            standings.append(entry)
    standings.sort(key=lambda entry: entry.points, reverse=True)
    return standings


def load_previous_standings(db: firestore.Client, category: str) -> List[StandingEntry]:
    snapshot = db.collection(settings.PREVIOUS_STANDINGS_COLLECTION).document(category).get()
    if not snapshot.exists:
        return []
    raw_drivers = (snapshot.to_dict() or {}).get("drivers") or []
    previous: List[StandingEntry] = []
    for raw_entry in raw_drivers:
        if not isinstance(raw_entry, dict):
            continue
        entry = _decode_entry(category, raw_entry, "previous snapshot")
        if entry:
            previous.append(entry)
    return previous


def save_standings_snapshot(
    db: firestore.Client, category: str, standings: List[StandingEntry], now: datetime.datetime
) -> None:
    snapshot = PreviousStandingsDoc(drivers=standings, last_update=now)
    # Full overwrite, never merged
    db.collection(settings.PREVIOUS_STANDINGS_COLLECTION).document(category).set(
        snapshot.model_dump(by_alias=True)
    )


def standings_changed(previous: List[StandingEntry], current: List[StandingEntry]) -> bool:
    """True if any driver tracked in the previous snapshot has a different points total."""
    previous_points = {entry.name: entry.points for entry in previous}
    return any(
        entry.name in previous_points and entry.points != previous_points[entry.name]
        for entry in current
    )


def _standings_message(
    token: str,
    category: str,
    driver_name: str,
    title: str,
    body: str,
    points_change: float,
    position: int,
    android_priority: str,
) -> PushMessage:
    return PushMessage(
        token=token,
        title=title,
        body=body,
        data={
            "type": "standings_update",
            "category": category,
            "driverName": driver_name,
            "pointsChange": format_points(points_change),
            "position": str(position),
            "title": title,
            "body": body,
        },
        android_priority=android_priority,
        channel_id=settings.STANDINGS_CHANNEL_ID,
    )


def build_standings_message(
    user: UserPreferenceDoc,
    category: str,
    previous: List[StandingEntry],
    current: List[StandingEntry],
) -> Optional[PushMessage]:
    """The result notification for the user's favorite driver, or None if there is nothing to report."""
    favorite_driver = user.favorite_driver_for(category)
    if not favorite_driver or not user.fcm_token:
        return None

    current_driver = next((d for d in current if d.name == favorite_driver), None)
    if current_driver is None:
        return None
    previous_driver = next((d for d in previous if d.name == favorite_driver), None)

    # A driver with no previous record has no delta to report yet
    points_change = current_driver.points - previous_driver.points if previous_driver else 0

    if points_change > 0:
        position = determine_position_from_points(category, points_change)
        title = f"🏆 {favorite_driver} - {category.upper()}"
        body = f"¡{favorite_driver} {position_text(position)} y ganó {format_points(points_change)} puntos!"
        return _standings_message(
            user.fcm_token, category, favorite_driver, title, body, points_change, position, "high"
        )

    if points_change == 0 and previous_driver is not None:
        title = f"📊 {favorite_driver} - {category.upper()}"
        body = f"{favorite_driver} terminó fuera de los puntos"
        return _standings_message(
            user.fcm_token, category, favorite_driver, title, body, 0, UNKNOWN_POSITION, "normal"
        )

    return None


async def check_category_standings(
    db: firestore.Client,
    delivery_client: NotificationDeliveryClient,
    category: str,
    now: datetime.datetime,
) -> Dict[str, Any]:
    current = load_current_standings(db, category)
    if not current:
        logger.warning(f"StandingsWatcher: No valid standings for {category}; keeping previous snapshot.")
        return {"category": category, "messages_sent": 0, "messages_failed": 0, "snapshot_saved": False}

    previous = load_previous_standings(db, category)

    messages: List[PushMessage] = []
    if standings_changed(previous, current):
        for user in load_users_with_tokens(db):
            message = build_standings_message(user, category, previous, current)
            if message:
                messages.append(message)
    else:
        logger.info(f"StandingsWatcher: Standings for {category} unchanged since last check.")

    messages_sent = messages_failed = 0
    if messages:
        logger.info(
            f"StandingsWatcher: Sending {len(messages)} standings notifications for {category.upper()}."
        )
        result = await delivery_client.send_batch(messages)
        messages_sent, messages_failed = result.success_count, result.failure_count

    save_standings_snapshot(db, category, current, now)
    logger.info(f"StandingsWatcher: Saved snapshot of {len(current)} drivers for {category}.")
    return {
        "category": category,
        "messages_sent": messages_sent,
        "messages_failed": messages_failed,
        "snapshot_saved": True,
    }


async def check_standings_changes(
    db: firestore.Client,
    delivery_client: NotificationDeliveryClient,
    now: datetime.datetime | None = None,
) -> Dict[str, Any]:
    """
    Diffs each category's standings against the last snapshot and tells users
    how their favorite driver did. Categories are processed independently.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    logger.info(f"StandingsWatcher: Checking standings changes at {now.isoformat()}.")

    results: List[Dict[str, Any]] = []
    failed_categories: List[str] = []

    for category in settings.CATEGORIES:
        try:
            results.append(await check_category_standings(db, delivery_client, category, now))
        except Exception as e:
            logger.error(
                f"StandingsWatcher: Error checking standings for {category}: {e}", exc_info=True
            )
            failed_categories.append(category)

    messages_sent = sum(r["messages_sent"] for r in results)
    messages_failed = sum(r["messages_failed"] for r in results)
    summary_message = (
        f"StandingsWatcher: Check complete. "
        f"Messages Sent: {messages_sent}. "
        f"Messages Failed: {messages_failed}. "
        f"Failed Categories: {len(failed_categories)}."
    )
    logger.info(summary_message)
    return {
        "message": summary_message,
        "categories": results,
        "messages_sent": messages_sent,
        "messages_failed": messages_failed,
        "failed_categories": failed_categories,
    }
