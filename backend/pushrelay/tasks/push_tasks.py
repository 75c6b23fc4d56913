"""
Celery-Tasks für Push-Trigger.

Retry-Politik auf Trigger-Ebene: jede Subscription, die beim ersten Versuch
transient fehlschlägt, bekommt genau einen direkten Re-Send nach
PUSH_RETRY_DELAY Sekunden. Zugestellte und gelöschte Subscriptions werden
nicht erneut angesprochen.
"""
from __future__ import annotations

import logging

from pushrelay.core.config import settings
from pushrelay.schemas.push import DeliveryReport, DeliveryTarget, MessageCreatedEvent, NotificationPayload
from pushrelay.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _build_dispatcher():
    from pushrelay.core.database import AsyncSessionLocal
    from pushrelay.core.vapid import get_key_authority
    from pushrelay.services.dispatcher import DeliveryDispatcher
    from pushrelay.services.subscription_registry import SubscriptionRegistry

    return DeliveryDispatcher(
        SubscriptionRegistry(AsyncSessionLocal),
        get_key_authority().signing_context,
    )


@celery_app.task(name="pushrelay.tasks.push_tasks.dispatch_message_created")
def dispatch_message_created(event: dict):
    """Benachrichtigt Empfänger und Absender einer neuen Ticket-Nachricht."""
    import asyncio
    asyncio.run(_dispatch_message_created(event))


@celery_app.task(name="pushrelay.tasks.push_tasks.resend_to_subscription")
def resend_to_subscription(subscription_id: str, payload: dict):
    """Einmaliger Re-Send an eine einzelne Subscription."""
    import asyncio
    asyncio.run(_resend(subscription_id, payload))


def schedule_retries(report: DeliveryReport, payload: NotificationPayload) -> list[str]:
    retried = []
    for outcome in report.outcomes:
        if outcome.outcome != "transient_failure":
            continue
        resend_to_subscription.apply_async(
            args=[outcome.subscription_id, payload.model_dump()],
            countdown=settings.PUSH_RETRY_DELAY,
        )
        retried.append(outcome.subscription_id)
    return retried


async def _dispatch_message_created(event: dict, dispatcher=None) -> dict[str, DeliveryReport]:
    from pushrelay.services.message_notifications import build_message_payload, notify_message_created

    dispatcher = dispatcher or _build_dispatcher()
    msg = MessageCreatedEvent.model_validate(event)
    reports = await notify_message_created(msg, dispatcher)
    payload = build_message_payload(msg)
    for uid, report in reports.items():
        retried = schedule_retries(report, payload)
        if retried:
            logger.info("Scheduled %d push retries for user %s", len(retried), uid)
    await dispatcher.drain()
    return reports


async def _resend(subscription_id: str, payload: dict, dispatcher=None) -> DeliveryReport:
    dispatcher = dispatcher or _build_dispatcher()
    report = await dispatcher.dispatch(
        DeliveryTarget(subscription_id=subscription_id),
        NotificationPayload.model_validate(payload),
    )
    await dispatcher.drain()
    return report
