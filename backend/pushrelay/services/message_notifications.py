"""
Push-Benachrichtigung bei neuen Ticket-Nachrichten.

Benachrichtigt werden Empfänger und Absender der Nachricht (ohne Duplikate).
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from pushrelay.core.config import settings
from pushrelay.schemas.push import DeliveryReport, DeliveryTarget, MessageCreatedEvent, NotificationPayload

if TYPE_CHECKING:
    from pushrelay.services.dispatcher import DeliveryDispatcher

BODY_MAX_CHARS = 180
EVENT_STATUS_UPDATE = "status_update"


def message_recipients(event: MessageCreatedEvent) -> list[str]:
    recipients: list[str] = []
    for uid in (event.user_id, event.sender_id):
        if uid and uid not in recipients:
            recipients.append(uid)
    return recipients


def build_message_payload(event: MessageCreatedEvent) -> NotificationPayload:
    title = "Status update" if event.type == EVENT_STATUS_UPDATE else "New message on ticket"
    return NotificationPayload(
        title=title,
        body=event.content[:BODY_MAX_CHARS] or "You have an update",
        url=f"/tickets/{event.ticket_id}" if event.ticket_id else settings.PUSH_DEFAULT_URL,
        icon=settings.PUSH_ICON,
        badge=settings.PUSH_BADGE,
        tag=f"ticket-{event.ticket_id or 'generic'}",
        data={"ticketId": event.ticket_id or "", "type": event.type},
    )


async def notify_message_created(
    event: MessageCreatedEvent,
    dispatcher: "DeliveryDispatcher",
) -> dict[str, DeliveryReport]:
    """Ein Dispatch pro beteiligtem User; liefert die Reports je User-ID."""
    payload = build_message_payload(event)
    reports: dict[str, DeliveryReport] = {}
    for uid in message_recipients(event):
        reports[uid] = await dispatcher.dispatch(DeliveryTarget(user_id=uid), payload)
    return reports
