# dormir-la-haut-api/dormir_api/core/notifications.py
"""
Delivery of moderation outcomes to contributors.

The moderation engine records a notification intent in the same commit as the
decision; this module turns intents into emails. A failed send only marks the
intent as failed so that ``flush`` can retry it later.
"""
import logging
from datetime import datetime, timezone
from typing import Dict

from dormir_api import config
from dormir_api.core.email import EmailSender
from dormir_api.models.notification import NotificationInDB

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, store, sender: EmailSender, max_attempts: int = config.NOTIFICATION_MAX_ATTEMPTS):
        self.store = store
        self.sender = sender
        self.max_attempts = max_attempts

    async def deliver(self, notification_id: str) -> bool:
        notification = await self.store.get_notification(notification_id)
        if notification is None:
            logger.warning("Notification %s not found", notification_id)
            return False
        if notification.status == "sent":
            return True

        try:
            sent = await self._send(notification)
            error = None if sent else "email sender reported failure"
        except Exception as e:
            sent, error = False, str(e)

        fields = {"attempts": notification.attempts + 1}
        if sent:
            fields.update(status="sent", sent_at=datetime.now(timezone.utc), last_error=None)
        else:
            logger.warning(
                "Could not notify user %s about %s modification %s: %s",
                notification.user_id, notification.outcome, notification.modification_id, error,
            )
            fields.update(status="failed", last_error=error)
        await self.store.update_notification(notification_id, fields)
        return sent

    async def _send(self, notification: NotificationInDB) -> bool:
        user = await self.store.get_user(notification.user_id)
        if user is None:
            raise LookupError(f"User {notification.user_id} not found")

        if notification.outcome == "approved":
            return await self.sender.send_modification_approved_email(
                user.email, user.name, notification.modification_type, notification.poi_name,
            )
        return await self.sender.send_modification_rejected_email(
            user.email, user.name, notification.modification_type, notification.reason, notification.poi_name,
        )

    async def flush(self) -> Dict[str, int]:
        """Retry every queued or failed intent that still has attempts left."""
        undelivered = await self.store.undelivered_notifications(self.max_attempts)
        sent = 0
        for notification in undelivered:
            if await self.deliver(notification.id):
                sent += 1
        logger.info("Notification flush: %d attempted, %d sent", len(undelivered), sent)
        return {"attempted": len(undelivered), "sent": sent, "failed": len(undelivered) - sent}
