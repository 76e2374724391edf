# race_notifier_service/app/services/delivery_client.py
import logging
from typing import List

from ..fcm_client import IPushTransport
from ..models import BatchSendResult, PushMessage

logger = logging.getLogger(__name__)


class NotificationDeliveryClient:
    """
    Sends push messages through a transport.

    Batches are sent one message at a time so that a single expired or invalid
    token only fails its own message. Failed sends are counted and dropped;
    there are no retries within a batch.
    """

    def __init__(self, transport: IPushTransport):
        self.transport = transport

    async def send(self, message: PushMessage) -> bool:
        try:
            message_id = self.transport.send(message)
            logger.debug(f"DeliveryClient: Sent message {message_id}.")
            return True
        except Exception as e:
            logger.error(
                f"DeliveryClient: Error sending FCM message ('{message.title}'): {e}",
                exc_info=True,
            )
            return False

    async def send_batch(self, messages: List[PushMessage]) -> BatchSendResult:
        result = BatchSendResult()
        for message in messages:
            if await self.send(message):
                result.success_count += 1
            else:
                result.failure_count += 1

        logger.info(
            f"DeliveryClient: Batch complete. Success: {result.success_count}, "
            f"Failures: {result.failure_count}, Total: {len(messages)}."
        )
        return result
