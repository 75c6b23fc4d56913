"""
Subscription Registry – validiert, dedupliziert und speichert Push-Subscriptions.

Die ID ist der SHA-1 des Endpoints; ein erneutes Registrieren desselben
Browsers landet damit immer auf demselben Datensatz. Jede Operation öffnet eine
eigene Session, damit parallele Versand-Tasks die Registry gefahrlos nutzen.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from urllib.parse import urlparse

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pushrelay.core.exceptions import InvalidSubscription, SubscriptionNotFound
from pushrelay.models.push_subscription import PushSubscription, subscription_id
from pushrelay.schemas.push import SubscriptionDescriptor

logger = logging.getLogger(__name__)


def validate_descriptor(descriptor: SubscriptionDescriptor) -> None:
    endpoint = (descriptor.endpoint or "").strip()
    if not endpoint:
        raise InvalidSubscription("missing_endpoint")
    url = urlparse(endpoint)
    if url.scheme not in ("https", "http") or not url.netloc:
        raise InvalidSubscription("invalid_endpoint")
    if descriptor.keys is None:
        raise InvalidSubscription("missing_keys")
    if not descriptor.keys.p256dh:
        raise InvalidSubscription("missing_p256dh")
    if not descriptor.keys.auth:
        raise InvalidSubscription("missing_auth")


def _insert_for(db: AsyncSession):
    """Dialektspezifisches insert() mit on_conflict_do_update."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


class SubscriptionRegistry:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        # SQLite kennt nur einen Schreiber; Mutationen aus parallelen Tasks
        # laufen nacheinander, jeweils atomar pro Datensatz.
        self._write_lock = asyncio.Lock()

    async def upsert(
        self,
        descriptor: SubscriptionDescriptor,
        user_id: str | None = None,
        user_agent: str | None = None,
    ) -> PushSubscription:
        """
        Legt an oder merged in den bestehenden Datensatz (letzter Schreiber gewinnt).

        Ein einziges INSERT ... ON CONFLICT DO UPDATE, damit parallele Anfragen
        für denselben Endpoint (zwei Tabs, Subscription-Wechsel) nicht beide
        einfügen. Nicht übergebene Felder (user_id, user_agent, device) bleiben
        erhalten, created_at wird nie überschrieben.
        """
        validate_descriptor(descriptor)
        endpoint = descriptor.endpoint.strip()
        sid = subscription_id(endpoint)
        now = datetime.now(timezone.utc)
        owner = user_id if user_id is not None else descriptor.user_id

        async with self._write_lock, self._session_factory() as db:
            insert = _insert_for(db)
            stmt = insert(PushSubscription).values(
                id=sid,
                endpoint=endpoint,
                p256dh=descriptor.keys.p256dh,
                auth=descriptor.keys.auth,
                user_id=owner,
                enabled=True,
                user_agent=user_agent,
                device=descriptor.device,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={
                    "p256dh": stmt.excluded.p256dh,
                    "auth": stmt.excluded.auth,
                    "enabled": True,
                    "updated_at": stmt.excluded.updated_at,
                    "user_id": func.coalesce(stmt.excluded.user_id, PushSubscription.user_id),
                    "user_agent": func.coalesce(stmt.excluded.user_agent, PushSubscription.user_agent),
                    "device": func.coalesce(stmt.excluded.device, PushSubscription.device),
                },
            )
            await db.execute(stmt)
            await db.commit()
            sub = await db.get(PushSubscription, sid, populate_existing=True)

        if sub.created_at == sub.updated_at:
            logger.info("Registered push subscription %s", sid)
        return sub

    async def get(self, sid: str) -> PushSubscription | None:
        async with self._session_factory() as db:
            return await db.get(PushSubscription, sid)

    async def find_by_user(self, user_id: str) -> list[PushSubscription]:
        """Nur zustellbare (enabled + vollständige Keys) Subscriptions des Users."""
        return await self._find_enabled(PushSubscription.user_id == user_id)

    async def find_all_enabled(self) -> list[PushSubscription]:
        return await self._find_enabled()

    async def _find_enabled(self, *conditions) -> list[PushSubscription]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(PushSubscription)
                .where(
                    PushSubscription.enabled.is_(True),
                    PushSubscription.p256dh != "",
                    PushSubscription.auth != "",
                    *conditions,
                )
                .order_by(PushSubscription.created_at)
            )
            return list(result.scalars().all())

    async def disable(self, sid: str) -> PushSubscription:
        return await self._set_enabled(sid, False)

    async def enable(self, sid: str) -> PushSubscription:
        return await self._set_enabled(sid, True)

    async def _set_enabled(self, sid: str, enabled: bool) -> PushSubscription:
        async with self._write_lock, self._session_factory() as db:
            sub = await db.get(PushSubscription, sid)
            if sub is None:
                raise SubscriptionNotFound(sid)
            sub.enabled = enabled
            sub.updated_at = datetime.now(timezone.utc)
            await db.commit()
            await db.refresh(sub)
            return sub

    async def delete(self, sid: str) -> bool:
        """Endgültig löschen; True wenn ein Datensatz entfernt wurde."""
        async with self._write_lock, self._session_factory() as db:
            result = await db.execute(delete(PushSubscription).where(PushSubscription.id == sid))
            await db.commit()
            return result.rowcount > 0

    async def delete_by_endpoint(self, endpoint: str) -> bool:
        return await self.delete(subscription_id(endpoint.strip()))

    async def mark_sent(self, sid: str) -> None:
        async with self._write_lock, self._session_factory() as db:
            sub = await db.get(PushSubscription, sid)
            if sub is not None:
                sub.last_sent_at = datetime.now(timezone.utc)
                await db.commit()
