from pushrelay.models.push_subscription import PushSubscription, subscription_id

__all__ = [
    "PushSubscription",
    "subscription_id",
]
