"""
Tests für den Ticket-Nachrichten-Trigger und die Retry-Planung der Celery-Tasks.
"""
import pytest

from pushrelay.schemas.push import DeliveryTarget, MessageCreatedEvent, NotificationPayload
from pushrelay.services.dispatcher import DeliveryDispatcher
from pushrelay.services.message_notifications import (
    build_message_payload,
    message_recipients,
    notify_message_created,
)
from pushrelay.tasks import push_tasks
from tests.conftest import FakeTransport, descriptor

ENDPOINT_A = "https://fcm.googleapis.com/fcm/send/endpoint-a"
ENDPOINT_B = "https://fcm.googleapis.com/fcm/send/endpoint-b"


# ── Payload ───────────────────────────────────────────────────────────────────

def test_recipients_are_deduplicated():
    event = MessageCreatedEvent(user_id="u1", sender_id="u1")
    assert message_recipients(event) == ["u1"]


def test_recipients_drop_missing_ids():
    assert message_recipients(MessageCreatedEvent(user_id=None, sender_id="u2")) == ["u2"]
    assert message_recipients(MessageCreatedEvent()) == []


def test_status_update_payload():
    payload = build_message_payload(MessageCreatedEvent(
        user_id="u1", content="Closed", ticket_id="42", type="status_update",
    ))
    assert payload.title == "Status update"
    assert payload.body == "Closed"
    assert payload.url == "/tickets/42"
    assert payload.tag == "ticket-42"
    assert payload.data == {"ticketId": "42", "type": "status_update"}


def test_message_payload_truncates_and_defaults():
    payload = build_message_payload(MessageCreatedEvent(user_id="u1", content="x" * 500))
    assert payload.title == "New message on ticket"
    assert len(payload.body) == 180
    assert payload.url == "/"
    assert payload.tag == "ticket-generic"


def test_message_payload_empty_content():
    assert build_message_payload(MessageCreatedEvent(user_id="u1")).body == "You have an update"


@pytest.mark.asyncio
async def test_notify_message_created_dispatches_per_user(registry, signing):
    await registry.upsert(descriptor(ENDPOINT_A, "owner"))
    await registry.upsert(descriptor(ENDPOINT_B, "agent"))
    transport = FakeTransport()
    dispatcher = DeliveryDispatcher(registry, signing, transport)

    reports = await notify_message_created(
        MessageCreatedEvent(user_id="owner", sender_id="agent", content="hi", ticket_id="7"),
        dispatcher,
    )
    assert {uid: r.delivered for uid, r in reports.items()} == {"owner": 1, "agent": 1}
    assert sorted(transport.endpoints) == sorted([ENDPOINT_A, ENDPOINT_B])


# ── Celery retry policy ───────────────────────────────────────────────────────

class _Recorder:
    def __init__(self):
        self.calls = []

    def apply_async(self, args=None, countdown=None):
        self.calls.append({"args": args, "countdown": countdown})


@pytest.mark.asyncio
async def test_transient_failures_get_exactly_one_retry(registry, signing, monkeypatch):
    await registry.upsert(descriptor(ENDPOINT_A, "owner"))
    failing = await registry.upsert(descriptor(ENDPOINT_B, "owner"))
    recorder = _Recorder()
    monkeypatch.setattr(push_tasks, "resend_to_subscription", recorder)
    monkeypatch.setattr(push_tasks.settings, "PUSH_RETRY_DELAY", 30)

    dispatcher = DeliveryDispatcher(registry, signing, FakeTransport({ENDPOINT_B: 503}))
    reports = await push_tasks._dispatch_message_created(
        {"user_id": "owner", "content": "hi", "ticket_id": "9"}, dispatcher=dispatcher
    )

    assert reports["owner"].transient_failure == 1
    assert len(recorder.calls) == 1
    call = recorder.calls[0]
    assert call["args"][0] == failing.id
    assert call["args"][1]["url"] == "/tickets/9"
    assert call["countdown"] == 30


@pytest.mark.asyncio
async def test_gone_endpoints_are_not_retried(registry, signing, monkeypatch):
    await registry.upsert(descriptor(ENDPOINT_A, "owner"))
    recorder = _Recorder()
    monkeypatch.setattr(push_tasks, "resend_to_subscription", recorder)

    dispatcher = DeliveryDispatcher(registry, signing, FakeTransport({ENDPOINT_A: 410}))
    await push_tasks._dispatch_message_created({"user_id": "owner"}, dispatcher=dispatcher)
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_resend_targets_single_subscription(registry, signing):
    await registry.upsert(descriptor(ENDPOINT_A, "owner"))
    b = await registry.upsert(descriptor(ENDPOINT_B, "owner"))
    transport = FakeTransport()
    dispatcher = DeliveryDispatcher(registry, signing, transport)

    payload = NotificationPayload(title="T", body="B").model_dump()
    report = await push_tasks._resend(b.id, payload, dispatcher=dispatcher)
    assert report.delivered == 1
    assert transport.endpoints == [ENDPOINT_B]


def test_delivery_target_by_subscription_id_alias():
    assert DeliveryTarget.model_validate({"subscriptionId": "abc"}).subscription_id == "abc"
