"""
Delivery Dispatcher – Fan-out eines Payloads an alle passenden Subscriptions.

Jeder Empfänger wird in einem eigenen Task bedient; ein Fehler bei einem
Empfänger bricht keinen anderen ab. 404/410 vom Push-Service löschen die
Subscription sofort, alle anderen Fehler bleiben ohne Registry-Änderung und
werden nur im DeliveryReport gezählt.
"""
from __future__ import annotations

import asyncio
import json
import logging
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError

from pushrelay.core.config import settings
from pushrelay.core.exceptions import PermanentlyInvalidEndpoint, TransientDeliveryFailure
from pushrelay.core.vapid import SigningContext
from pushrelay.models.push_subscription import PushSubscription
from pushrelay.schemas.push import (
    DeliveryOutcome,
    DeliveryReport,
    DeliveryTarget,
    NotificationPayload,
    Outcome,
)
from pushrelay.services.push_transport import PushTransport, WebPushTransport
from pushrelay.services.subscription_registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

GONE_STATUSES = (404, 410)


def raise_for_status(status_code: int) -> None:
    """2xx → ok; 404/410 → PermanentlyInvalidEndpoint; alles andere → TransientDeliveryFailure."""
    if 200 <= status_code < 300:
        return
    if status_code in GONE_STATUSES:
        raise PermanentlyInvalidEndpoint(status_code)
    raise TransientDeliveryFailure(status_code, f"HTTP {status_code}")


def short_endpoint(endpoint: str) -> str:
    """Host + letzte 8 Zeichen; der volle Endpoint landet nie im Log."""
    url = urlparse(endpoint)
    return f"{url.netloc}/…{endpoint[-8:]}"


class DeliveryDispatcher:

    def __init__(
        self,
        registry: SubscriptionRegistry,
        signing: SigningContext,
        transport: PushTransport | None = None,
        *,
        default_ttl: int | None = None,
        default_urgency: str | None = None,
        timeout: float | None = None,
    ):
        self.registry = registry
        self.signing = signing
        self.transport = transport or WebPushTransport()
        self.default_ttl = settings.PUSH_DEFAULT_TTL if default_ttl is None else default_ttl
        self.default_urgency = default_urgency or settings.PUSH_DEFAULT_URGENCY
        self.timeout = settings.PUSH_DISPATCH_TIMEOUT if timeout is None else timeout
        # nach dem Timeout weiterlaufende Zustellungen; 404/410 prunen auch verspätet
        self._background: set[asyncio.Task] = set()

    async def resolve(self, target: DeliveryTarget) -> list[PushSubscription]:
        if target.subscription_id:
            sub = await self.registry.get(target.subscription_id)
            return [sub] if sub is not None and sub.is_deliverable else []
        if target.user_id:
            return await self.registry.find_by_user(target.user_id)
        return await self.registry.find_all_enabled()

    async def dispatch(
        self,
        target: DeliveryTarget,
        payload: NotificationPayload,
        ttl_seconds: int | None = None,
        urgency: str | None = None,
    ) -> DeliveryReport:
        subs = await self.resolve(target)
        if not subs:
            logger.info("Push dispatch %s: no subscriptions", _describe(target))
            return DeliveryReport()

        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        urgency = urgency or self.default_urgency
        data = json.dumps(payload.to_wire())

        tasks = {
            asyncio.create_task(self._deliver(sub, data, ttl, urgency)): sub
            for sub in subs
        }
        done, pending = await asyncio.wait(tasks, timeout=self.timeout or None)
        for task in pending:
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        outcomes = []
        for task, sub in tasks.items():
            if task in done:
                outcomes.append(task.result())
            else:
                outcomes.append(_outcome(sub, "transient_failure", None, "timeout"))

        report = DeliveryReport.from_outcomes(outcomes)
        logger.info(
            "Push dispatch %s: %d attempts, %d delivered, %d transient, %d gone",
            _describe(target),
            report.attempts,
            report.delivered,
            report.transient_failure,
            report.permanently_invalid,
        )
        return report

    async def drain(self) -> None:
        """Wartet auf Zustellungen, die im Report schon als timeout zählen."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _deliver(
        self, sub: PushSubscription, data: str, ttl: int, urgency: str
    ) -> DeliveryOutcome:
        try:
            status_code = await self.transport.send(
                sub.subscription_info(),
                data,
                signing=self.signing,
                ttl=ttl,
                urgency=urgency,
            )
            raise_for_status(status_code)
        except PermanentlyInvalidEndpoint as e:
            # Endpoint existiert nicht mehr → Registry selbst heilen
            try:
                await self.registry.delete(sub.id)
                logger.info(
                    "Pruned push subscription %s (%s returned %d)",
                    sub.id, short_endpoint(sub.endpoint), e.status_code,
                )
            except SQLAlchemyError:
                logger.exception("Could not prune push subscription %s", sub.id)
            return _outcome(sub, "permanently_invalid", e.status_code)
        except TransientDeliveryFailure as e:
            logger.warning("Push to %s returned %s", short_endpoint(sub.endpoint), e.status_code)
            return _outcome(sub, "transient_failure", e.status_code, e.detail)
        except Exception as e:
            logger.warning("Push to %s failed: %s", short_endpoint(sub.endpoint), e)
            return _outcome(sub, "transient_failure", None, str(e)[:200])

        try:
            await self.registry.mark_sent(sub.id)
        except SQLAlchemyError:
            logger.exception("Could not stamp last_sent_at for %s", sub.id)
        return _outcome(sub, "delivered", status_code)


def _outcome(
    sub: PushSubscription,
    outcome: Outcome,
    status_code: int | None,
    detail: str | None = None,
) -> DeliveryOutcome:
    return DeliveryOutcome(
        subscription_id=sub.id,
        endpoint=short_endpoint(sub.endpoint),
        outcome=outcome,
        status_code=status_code,
        detail=detail,
    )


def _describe(target: DeliveryTarget) -> str:
    if target.subscription_id:
        return f"subscription={target.subscription_id}"
    if target.user_id:
        return f"user={target.user_id}"
    return "broadcast"
