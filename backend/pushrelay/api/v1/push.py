"""
Web Push API – Public Key, Subscriptions und Versand.
"""
from typing import Annotated

from fastapi import APIRouter, Header, status

from pushrelay.api.deps import Authority, Dispatcher, Registry
from pushrelay.core.config import settings
from pushrelay.core.exceptions import SubscriptionNotFound
from pushrelay.schemas.push import (
    DeliveryReport,
    MessageCreatedEvent,
    SendRequest,
    SubscribeResponse,
    SubscriptionDescriptor,
    SubscriptionOut,
    UnsubscribeRequest,
)
from pushrelay.services.message_notifications import notify_message_created

router = APIRouter(prefix="/push", tags=["push"])


@router.get("/public-key")
async def get_public_key(authority: Authority):
    """VAPID Public Key für pushManager.subscribe()."""
    return {"key": authority.expose_public_key()}


# ── Subscriptions ────────────────────────────────────────────────────────────

@router.post("/subscriptions", response_model=SubscribeResponse, status_code=status.HTTP_201_CREATED)
async def subscribe(
    payload: SubscriptionDescriptor,
    registry: Registry,
    authority: Authority,
    user_agent: Annotated[str | None, Header()] = None,
):
    """Upsert der Subscription; derselbe Endpoint ergibt immer dieselbe ID."""
    sub = await registry.upsert(payload, user_agent=user_agent)
    return SubscribeResponse(id=sub.id)


@router.delete("/subscriptions")
async def unsubscribe(payload: UnsubscribeRequest, registry: Registry):
    """Widerruf durch den Browser (per Endpoint)."""
    deleted = await registry.delete_by_endpoint(payload.endpoint)
    return {"ok": True, "deleted": deleted}


@router.delete("/subscriptions/{subscription_id}")
async def delete_subscription(subscription_id: str, registry: Registry):
    if not await registry.delete(subscription_id):
        raise SubscriptionNotFound(subscription_id)
    return {"ok": True, "deleted": True}


@router.post("/subscriptions/{subscription_id}/disable", response_model=SubscriptionOut)
async def disable_subscription(subscription_id: str, registry: Registry):
    return await registry.disable(subscription_id)


@router.post("/subscriptions/{subscription_id}/enable", response_model=SubscriptionOut)
async def enable_subscription(subscription_id: str, registry: Registry):
    return await registry.enable(subscription_id)


# ── Versand ──────────────────────────────────────────────────────────────────

@router.post("/send", response_model=DeliveryReport)
async def send(payload: SendRequest, dispatcher: Dispatcher):
    """Fan-out an User, Broadcast oder einzelne Subscription; Teilfehler stehen im Report."""
    return await dispatcher.dispatch(
        payload.target,
        payload.payload,
        ttl_seconds=payload.ttl_seconds,
        urgency=payload.urgency,
    )


@router.post("/events/message-created")
async def message_created(event: MessageCreatedEvent, dispatcher: Dispatcher):
    """Dokument-Trigger für neue Ticket-Nachrichten; mit Celery asynchron inkl. Retry."""
    if settings.USE_CELERY:
        from pushrelay.tasks.push_tasks import dispatch_message_created
        dispatch_message_created.delay(event.model_dump())
        return {"queued": True, "reports": {}}
    reports = await notify_message_created(event, dispatcher)
    return {"queued": False, "reports": {uid: r.model_dump() for uid, r in reports.items()}}
