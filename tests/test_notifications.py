import json

import httpx
import pytest

from dormir_api.core.email import EmailSender
from dormir_api.core.notifications import NotificationDispatcher
from dormir_api.models.notification import NotificationIntent

from conftest import USER_ID, RecordingEmailSender

BREVO_URL = "https://brevo.test/v3/smtp/email"


def brevo_transport(requests, status_code=201):
    def handler(request):
        requests.append(request)
        return httpx.Response(status_code, json={"messageId": "<1@brevo>"})
    return httpx.MockTransport(handler)


def queue(store, outcome="approved", **fields):
    notification_id = store._new_id("notif")
    intent = NotificationIntent(
        user_id=USER_ID, outcome=outcome, modification_id="mod-x", modification_type="comment", **fields,
    )
    store.notifications[notification_id] = {**intent.model_dump(), "created_at": store._stamp()}
    return notification_id


@pytest.mark.asyncio
async def test_sender_without_api_key_sends_nothing():
    requests = []
    sender = EmailSender(api_key=None, api_url=BREVO_URL, transport=brevo_transport(requests))

    assert await sender.send_email("alice@example.com", "Hello", "<p>Hello</p>") is True
    assert requests == []


@pytest.mark.asyncio
async def test_approved_email_is_posted_to_brevo():
    requests = []
    sender = EmailSender(api_key="secret", api_url=BREVO_URL, transport=brevo_transport(requests))

    sent = await sender.send_modification_approved_email("alice@example.com", "Alice", "new_poi", "Cabane Test")

    assert sent is True
    assert len(requests) == 1
    request = requests[0]
    assert str(request.url) == BREVO_URL
    assert request.headers["api-key"] == "secret"
    payload = json.loads(request.content)
    assert payload["to"] == [{"email": "alice@example.com"}]
    assert payload["subject"] == "✅ Contribution approuvée - Dormir Là-Haut"
    assert "Nouveau spot" in payload["htmlContent"]
    assert "Cabane Test" in payload["textContent"]


@pytest.mark.asyncio
async def test_rejected_email_carries_the_reason():
    requests = []
    sender = EmailSender(api_key="secret", api_url=BREVO_URL, transport=brevo_transport(requests))

    await sender.send_modification_rejected_email("alice@example.com", "Alice", "photo", "Photo floue")

    payload = json.loads(requests[0].content)
    assert payload["subject"] == "Contribution non retenue - Dormir Là-Haut"
    assert "Photo floue" in payload["htmlContent"]
    assert "Photo" in payload["textContent"]


@pytest.mark.asyncio
async def test_brevo_error_is_reported_as_failure():
    sender = EmailSender(api_key="secret", api_url=BREVO_URL, transport=brevo_transport([], status_code=500))

    assert await sender.send_email("alice@example.com", "Hello", "<p>Hello</p>") is False


@pytest.mark.asyncio
async def test_deliver_marks_intent_sent(store, sender):
    notification_id = queue(store, poi_name="Cabane Test")
    dispatcher = NotificationDispatcher(store, sender)

    assert await dispatcher.deliver(notification_id) is True
    assert await dispatcher.deliver(notification_id) is True

    assert len(sender.sent) == 1
    assert sender.sent[0]["poi_name"] == "Cabane Test"
    notification = await store.get_notification(notification_id)
    assert notification.status == "sent"
    assert notification.attempts == 1
    assert notification.sent_at is not None


@pytest.mark.asyncio
async def test_deliver_to_unknown_user_fails(store, sender):
    notification_id = queue(store)
    store.users.pop(USER_ID)
    dispatcher = NotificationDispatcher(store, sender)

    assert await dispatcher.deliver(notification_id) is False

    notification = await store.get_notification(notification_id)
    assert notification.status == "failed"
    assert "not found" in notification.last_error
    assert sender.sent == []


@pytest.mark.asyncio
async def test_deliver_unknown_intent(store, sender):
    assert await NotificationDispatcher(store, sender).deliver("missing") is False


@pytest.mark.asyncio
async def test_flush_retries_failed_and_queued_intents(store):
    failed = queue(store, status="failed", attempts=1, last_error="timeout")
    queued = queue(store, outcome="rejected", reason="Non conforme")
    done = queue(store, status="sent", attempts=1)
    exhausted = queue(store, status="failed", attempts=3)
    sender = RecordingEmailSender()

    result = await NotificationDispatcher(store, sender, max_attempts=3).flush()

    assert result == {"attempted": 2, "sent": 2, "failed": 0}
    assert store.notifications[failed]["status"] == "sent"
    assert store.notifications[failed]["attempts"] == 2
    assert store.notifications[queued]["status"] == "sent"
    assert store.notifications[done]["attempts"] == 1
    assert store.notifications[exhausted]["status"] == "failed"
    assert [s["outcome"] for s in sender.sent] == ["approved", "rejected"]


@pytest.mark.asyncio
async def test_flush_counts_failures(store):
    queue(store)
    result = await NotificationDispatcher(store, RecordingEmailSender(result=False)).flush()

    assert result == {"attempted": 1, "sent": 0, "failed": 1}


@pytest.mark.asyncio
async def test_user_supplied_text_is_escaped_in_html():
    requests = []
    sender = EmailSender(api_key="secret", api_url=BREVO_URL, transport=brevo_transport(requests))

    await sender.send_modification_rejected_email(
        "eve@example.com", "<b>Eve</b>", "comment", "<script>x</script>", poi_name="Col & <i>Lac</i>",
    )

    payload = json.loads(requests[0].content)
    html_body = payload["htmlContent"]
    assert "<script>" not in html_body
    assert "&lt;script&gt;x&lt;/script&gt;" in html_body
    assert "&lt;b&gt;Eve&lt;/b&gt;" in html_body
    assert "Col &amp; &lt;i&gt;Lac&lt;/i&gt;" in html_body
    assert "<b>Eve</b>" in payload["textContent"]
