import hashlib
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pushrelay.core.database import Base


def subscription_id(endpoint: str) -> str:
    """Stabile ID aus dem Endpoint (SHA-1) – ein Datensatz pro Endpoint."""
    return hashlib.sha1(endpoint.encode("utf-8")).hexdigest()


class PushSubscription(Base):
    """Browser-seitige Web-Push-Subscription (VAPID)."""

    __tablename__ = "push_subscriptions"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)

    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # rein informativ, nie zur Adressierung
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    device: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    last_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def keys(self) -> dict:
        return {"p256dh": self.p256dh, "auth": self.auth}

    @property
    def is_deliverable(self) -> bool:
        return bool(self.enabled and self.p256dh and self.auth)

    def subscription_info(self) -> dict:
        """Format, das pywebpush erwartet."""
        return {"endpoint": self.endpoint, "keys": self.keys}
