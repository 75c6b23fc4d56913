from pushrelay.schemas.push import (
    DeliveryOutcome,
    DeliveryReport,
    DeliveryTarget,
    MessageCreatedEvent,
    NotificationPayload,
    SendRequest,
    SubscriptionDescriptor,
    SubscriptionKeys,
)

__all__ = [
    "DeliveryOutcome",
    "DeliveryReport",
    "DeliveryTarget",
    "MessageCreatedEvent",
    "NotificationPayload",
    "SendRequest",
    "SubscriptionDescriptor",
    "SubscriptionKeys",
]
