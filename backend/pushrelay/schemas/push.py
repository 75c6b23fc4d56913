from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Urgency = Literal["very-low", "low", "normal", "high"]
Outcome = Literal["delivered", "transient_failure", "permanently_invalid"]


class _CamelModel(BaseModel):
    """JSON nach außen camelCase (userId, ttlSeconds), Attribute snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Subscription Descriptor ──────────────────────────────────────────────────

class SubscriptionKeys(BaseModel):
    # Schlüsselnamen exakt wie im Browser (p256dh, auth), ohne camelCase-Alias
    p256dh: Optional[str] = None
    auth: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class SubscriptionDescriptor(_CamelModel):
    """Kanonische Form – entspricht PushSubscription.toJSON() plus userId/device.

    Pflichtfelder prüft die Registry (InvalidSubscription mit Grund), nicht
    Pydantic, damit die Fehlerursache enumeriert zurückkommt.
    """

    endpoint: Optional[str] = None
    keys: Optional[SubscriptionKeys] = None
    expiration_time: Optional[int] = None
    user_id: Optional[str] = None
    device: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class SubscribeResponse(BaseModel):
    ok: bool = True
    id: str


class UnsubscribeRequest(BaseModel):
    endpoint: str


class SubscriptionOut(_CamelModel):
    id: str
    endpoint: str
    user_id: Optional[str]
    enabled: bool
    device: Optional[str]
    created_at: datetime
    updated_at: datetime
    last_sent_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ── Payload ──────────────────────────────────────────────────────────────────

class NotificationPayload(_CamelModel):
    title: str = ""
    body: str = ""
    url: Optional[str] = None
    icon: Optional[str] = None
    badge: Optional[str] = None
    tag: Optional[str] = None
    data: Optional[dict] = None
    # Zähler für das App-Badge offener Fenster
    badge_count: Optional[int] = Field(default=None, ge=0)

    def to_wire(self) -> dict:
        """Format, das der Delivery Receiver erwartet; url liegt in data.url."""
        data = dict(self.data or {})
        if self.url:
            data["url"] = self.url
        wire = {"title": self.title, "body": self.body, "data": data}
        for key in ("icon", "badge", "tag"):
            value = getattr(self, key)
            if value:
                wire[key] = value
        if self.badge_count is not None:
            wire["badgeCount"] = self.badge_count
        return wire


# ── Send Trigger ─────────────────────────────────────────────────────────────

class DeliveryTarget(_CamelModel):
    """Genau eins von: userId, broadcast=true, subscriptionId (direkter Re-Send)."""

    user_id: Optional[str] = None
    broadcast: bool = False
    subscription_id: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one(self):
        chosen = [bool(self.user_id), self.broadcast, bool(self.subscription_id)]
        if sum(chosen) != 1:
            raise ValueError("target needs exactly one of userId, broadcast, subscriptionId")
        return self


class SendRequest(_CamelModel):
    target: DeliveryTarget
    payload: NotificationPayload
    ttl_seconds: Optional[int] = Field(default=None, ge=0)
    urgency: Optional[Urgency] = None


class MessageCreatedEvent(_CamelModel):
    """Neue Nachricht in einem Ticket (Dokument-Trigger)."""

    user_id: Optional[str] = None
    sender_id: Optional[str] = None
    content: str = ""
    ticket_id: Optional[str] = None
    type: str = "message"


# ── Delivery Report ──────────────────────────────────────────────────────────

class DeliveryOutcome(BaseModel):
    subscription_id: str
    endpoint: str
    outcome: Outcome
    status_code: Optional[int] = None
    detail: Optional[str] = None


class DeliveryReport(BaseModel):
    attempts: int = 0
    delivered: int = 0
    transient_failure: int = 0
    permanently_invalid: int = 0
    outcomes: list[DeliveryOutcome] = []

    @classmethod
    def from_outcomes(cls, outcomes: list[DeliveryOutcome]) -> "DeliveryReport":
        counts = {"delivered": 0, "transient_failure": 0, "permanently_invalid": 0}
        for o in outcomes:
            counts[o.outcome] += 1
        return cls(attempts=len(outcomes), outcomes=outcomes, **counts)
