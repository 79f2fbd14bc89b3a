"""Retry delivery of moderation emails that are still queued or failed."""
import asyncio
import logging
from dormir_api import config
from dormir_api.core.email import get_email_sender
from dormir_api.core.notifications import NotificationDispatcher
from dormir_api.db.store import FirestoreStore


async def flush_notifications():
    if config.db is None:
        raise SystemExit("Firestore not initialized, check Firebase credentials.")

    store = FirestoreStore(config.db)
    dispatcher = NotificationDispatcher(store, get_email_sender())
    result = await dispatcher.flush()

    print("\n--- Notification flush complete ---")
    print(f"Attempted: {result['attempted']}")
    print(f"Sent: {result['sent']}")
    print(f"Failed: {result['failed']}")


if __name__ == "__main__":
    config.configure_logging()
    logging.getLogger(__name__).info("Flushing notification outbox")
    asyncio.run(flush_notifications())
