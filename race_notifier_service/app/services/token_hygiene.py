# race_notifier_service/app/services/token_hygiene.py
import logging
from typing import Any, Dict, List

from google.cloud import firestore

from ..config import settings
from ..fcm_client import IPushTransport, TokenUnregisteredError
from .user_preferences import load_device_tokens

logger = logging.getLogger(__name__)


async def clean_invalid_tokens(db: firestore.Client, transport: IPushTransport) -> Dict[str, Any]:
    """
    Dry-run validates every stored FCM token and clears the ones FCM reports
    as unregistered. Only the token field is nulled; the user document stays.
    Any other transport error leaves the token untouched.
    """
    users = load_device_tokens(db)
    unregistered_user_ids: List[str] = []
    validation_errors = 0

    for user in users:
        try:
            transport.validate_token(user.fcm_token)
        except TokenUnregisteredError:
            logger.info(f"TokenHygiene: Token for user {user.user_id} is no longer registered.")
            unregistered_user_ids.append(user.user_id)
        except Exception as e:
            validation_errors += 1
            logger.warning(
                f"TokenHygiene: Could not validate token for user {user.user_id}: {e}. Keeping it."
            )

    # Applied together at the end; chunked only past Firestore's batch limit
    users_ref = db.collection(settings.USER_PREFERENCES_COLLECTION)
    batch_size = settings.FIRESTORE_MAX_BATCH_OPERATIONS
    for start in range(0, len(unregistered_user_ids), batch_size):
        batch = db.batch()
        for user_id in unregistered_user_ids[start : start + batch_size]:
            batch.update(users_ref.document(user_id), {"fcmToken": None})
        batch.commit()

    summary_message = (
        f"TokenHygiene: Cleanup complete. "
        f"Tokens Checked: {len(users)}. "
        f"Tokens Cleared: {len(unregistered_user_ids)}. "
        f"Validation Errors: {validation_errors}."
    )
    logger.info(summary_message)
    return {
        "message": summary_message,
        "tokens_checked": len(users),
        "tokens_cleared": len(unregistered_user_ids),
        "validation_errors": validation_errors,
    }
