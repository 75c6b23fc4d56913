"""
HTTP-Transport zum Push-Service (pywebpush).

pywebpush arbeitet synchron mit requests; der Aufruf läuft daher wie bisher
über asyncio.to_thread. Der Transport liefert nur den Statuscode – die
Klassifikation übernimmt der Dispatcher.
"""
from __future__ import annotations

import asyncio
from typing import Protocol

from pywebpush import WebPushException, webpush

from pushrelay.core.vapid import SigningContext


class PushTransport(Protocol):
    async def send(
        self,
        subscription_info: dict,
        data: str,
        *,
        signing: SigningContext,
        ttl: int,
        urgency: str,
    ) -> int:
        """Verschlüsselt, signiert und sendet; gibt den HTTP-Status zurück.

        Netzwerkfehler werden als Exception durchgereicht.
        """
        ...


class WebPushTransport:

    def __init__(self, timeout: float | None = 10.0):
        self.timeout = timeout

    async def send(
        self,
        subscription_info: dict,
        data: str,
        *,
        signing: SigningContext,
        ttl: int,
        urgency: str,
    ) -> int:
        try:
            response = await asyncio.to_thread(
                webpush,
                subscription_info=subscription_info,
                data=data,
                vapid_private_key=signing.vapid,
                vapid_claims=signing.claims(),
                ttl=ttl,
                headers={"Urgency": urgency},
                timeout=self.timeout,
            )
        except WebPushException as e:
            # webpush() wirft bei Status > 202, die Response hängt an der Exception
            if e.response is not None:
                return e.response.status_code
            raise
        return response.status_code
