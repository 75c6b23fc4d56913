"""
Delivery Receiver – Gegenstück zum Service Worker auf Empfängerseite.

Macht aus einem eingehenden Push eine sichtbare Notification und führt beim
Klick genau eine Navigation aus (data.url oder Default). Offene Fenster
bekommen Nachrichten über ``post_message`` (Badge-Zähler, Subscription-Wechsel).
"""
from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable, Protocol
from urllib.parse import urljoin

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Notification"
DEFAULT_ICON = "/icons/icon-192x192.png"
DEFAULT_BADGE = "/icons/badge-72x72.png"
DEFAULT_TAG = "default"
VIBRATE_PATTERN = [100, 50, 100]

BADGE_SET = "BADGE_SET"
PUSH_SUBSCRIPTION_CHANGED = "PUSH_SUBSCRIPTION_CHANGED"


class WindowClient(Protocol):
    url: str

    async def focus(self) -> None: ...

    async def navigate(self, url: str) -> None: ...

    def post_message(self, message: dict) -> None: ...


class Notification(Protocol):
    data: dict | None

    def close(self) -> None: ...


class ReceiverHost(Protocol):
    origin: str

    async def show_notification(self, title: str, options: dict) -> None: ...

    async def window_clients(self) -> list[WindowClient]: ...

    async def open_window(self, url: str) -> None: ...


def parse_payload(raw: bytes | str | None) -> dict:
    """JSON-Payload lesen; leerer oder kaputter Body ergibt {} statt Fehler."""
    if not raw:
        return {}
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
    except (UnicodeDecodeError, ValueError):
        logger.warning("Ignoring malformed push payload")
        return {}
    return payload if isinstance(payload, dict) else {}


def badge_count(payload: dict) -> int | None:
    """badgeCount als Zahl; fehlt er, wird kein Badge gesetzt, Unlesbares zählt 0."""
    if "badgeCount" not in payload:
        return None
    try:
        return max(int(payload["badgeCount"]), 0)
    except (TypeError, ValueError):
        return 0


class DeliveryReceiver:

    def __init__(
        self,
        host: ReceiverHost,
        default_url: str = "/",
        on_resubscribe: Callable[[], Awaitable[object]] | None = None,
    ):
        self.host = host
        self.default_url = default_url
        self.on_resubscribe = on_resubscribe

    def notification_options(self, payload: dict) -> dict:
        data = payload.get("data")
        if not isinstance(data, dict):
            # Sender ohne data-Objekt: url/meta auf oberster Ebene
            data = {"url": payload.get("url") or self.default_url, "meta": payload.get("meta")}
        return {
            "body": payload.get("body") or "",
            "icon": payload.get("icon") or DEFAULT_ICON,
            "badge": payload.get("badge") or DEFAULT_BADGE,
            "tag": payload.get("tag") or DEFAULT_TAG,
            "vibrate": list(VIBRATE_PATTERN),
            "renotify": False,
            "requireInteraction": False,
            # ein vorhandenes data-Objekt geht unverändert an den Klick-Handler
            "data": data,
        }

    async def on_push(self, raw: bytes | str | None) -> dict:
        """Muss vollständig abgewartet werden, bevor der Host suspendiert."""
        payload = parse_payload(raw)
        title = payload.get("title") or DEFAULT_TITLE
        options = self.notification_options(payload)
        await self.host.show_notification(title, options)

        count = badge_count(payload)
        if count is not None:
            await self.broadcast({"type": BADGE_SET, "count": count})
        return options

    async def on_notification_click(self, notification: Notification) -> str:
        notification.close()
        data = notification.data if isinstance(notification.data, dict) else {}
        target = urljoin(self.host.origin.rstrip("/") + "/", data.get("url") or self.default_url)

        windows = await self.host.window_clients()
        for window in windows:
            if window.url == target:
                await window.focus()
                return target
        if windows:
            await windows[0].focus()
            await windows[0].navigate(target)
            return target
        await self.host.open_window(target)
        return target

    async def on_subscription_change(self) -> None:
        """Subscription wurde vom Push-Service erneuert/invalidiert → neu aktivieren."""
        await self.broadcast({"type": PUSH_SUBSCRIPTION_CHANGED})
        if self.on_resubscribe is not None:
            await self.on_resubscribe()

    async def broadcast(self, message: dict) -> int:
        """An alle offenen Fenster senden; ein geschlossenes Fenster stoppt die anderen nicht."""
        sent = 0
        for window in await self.host.window_clients():
            try:
                window.post_message(message)
            except Exception as e:
                logger.debug("Could not post %s to %s: %s", message.get("type"), window.url, e)
                continue
            sent += 1
        return sent
