# race_notifier_service/app/services/user_preferences.py
import logging
from typing import List

from pydantic import ValidationError
from google.cloud import firestore

from ..config import settings
from ..models import DeviceTokenDoc, UserPreferenceDoc

logger = logging.getLogger(__name__)


def load_users_with_tokens(db: firestore.Client) -> List[UserPreferenceDoc]:
    """
    Returns every user preference document that has a device token.
    Documents that fail validation are logged and skipped. Store errors propagate.
    """
    users_query = (
        db.collection(settings.USER_PREFERENCES_COLLECTION)
        .where("fcmToken", "!=", None)
        .stream()
    )

    users: List[UserPreferenceDoc] = []
    for user_snap in users_query:
        try:
            user = UserPreferenceDoc(**{**(user_snap.to_dict() or {}), "user_id": user_snap.id})
        except ValidationError as e:
            logger.warning(
                f"UserPreferences: Invalid preference data for user {user_snap.id}: {e}. Skipping."
            )
            continue
        if not user.fcm_token:
            continue
        users.append(user)

    logger.info(f"UserPreferences: Loaded {len(users)} users with FCM tokens.")
    return users


def load_device_tokens(db: firestore.Client) -> List[DeviceTokenDoc]:
    """
    Every stored device token, read independently of the rest of the document
    so a user with malformed preferences still has their token checked.
    """
    tokens_query = (
        db.collection(settings.USER_PREFERENCES_COLLECTION)
        .where("fcmToken", "!=", None)
        .stream()
    )

    tokens: List[DeviceTokenDoc] = []
    for user_snap in tokens_query:
        user_data = user_snap.to_dict() or {}
        try:
            tokens.append(
                DeviceTokenDoc(user_id=user_snap.id, fcm_token=user_data.get("fcmToken"))
            )
        except ValidationError as e:
            logger.warning(f"UserPreferences: Invalid fcmToken for user {user_snap.id}: {e}. Skipping.")
    return tokens
