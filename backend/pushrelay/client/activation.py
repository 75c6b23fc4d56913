"""
Client Activation Flow – Berechtigung holen, Subscription anlegen, registrieren.

Die Browser-APIs (Notification.requestPermission, serviceWorker.ready,
pushManager) stecken hinter dem PushPlatform-Protokoll; die Registrierung beim
Server läuft über httpx.

Zustände:
  UNREGISTERED → PERMISSION_REQUESTED → DENIED | GRANTED → SUBSCRIBED → REGISTERED

Scheitert die Übermittlung an den Server, bleibt der Flow in SUBSCRIBED;
dann nur retry_submission() aufrufen, nicht erneut um Erlaubnis fragen.
"""
from __future__ import annotations

import base64
import enum
import logging
from typing import Protocol

import httpx

from pushrelay.core.exceptions import (
    ConfigurationMissing,
    InvalidSubscription,
    PermissionDenied,
    ReceiverNotReady,
)
from pushrelay.schemas.push import SubscriptionDescriptor

logger = logging.getLogger(__name__)

PUSH_API = "/api/v1/push"


class ActivationState(str, enum.Enum):
    UNREGISTERED = "unregistered"
    PERMISSION_REQUESTED = "permission_requested"
    DENIED = "denied"
    GRANTED = "granted"
    SUBSCRIBED = "subscribed"
    REGISTERED = "registered"


class PushPlatform(Protocol):
    async def request_permission(self) -> str:
        """'granted', 'denied' oder 'default' (weggeklickt)."""
        ...

    async def receiver_ready(self) -> bool:
        ...

    async def get_subscription(self) -> dict | None:
        """Bestehende Subscription als toJSON()-dict oder None."""
        ...

    async def subscribe(self, application_server_key: bytes) -> dict:
        ...


def url_base64_to_bytes(value: str) -> bytes:
    """base64url (ohne Padding) → rohe Bytes für applicationServerKey."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


class RegistryClient:

    def __init__(self, base_url: str = "", client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)

    async def fetch_public_key(self) -> str:
        resp = await self._client.get(f"{PUSH_API}/public-key")
        _raise_for_error(resp)
        return resp.json()["key"]

    async def submit(self, descriptor: SubscriptionDescriptor) -> str:
        resp = await self._client.post(
            f"{PUSH_API}/subscriptions",
            json=descriptor.model_dump(by_alias=True, exclude_none=True),
        )
        _raise_for_error(resp)
        return resp.json()["id"]

    async def aclose(self) -> None:
        await self._client.aclose()


def _raise_for_error(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if error == "invalid_subscription":
        raise InvalidSubscription(body["reason"])
    if error == "configuration_missing":
        raise ConfigurationMissing(body["missing"])
    resp.raise_for_status()


class ActivationFlow:

    def __init__(self, platform: PushPlatform, registry: RegistryClient, user_id: str | None = None):
        self.platform = platform
        self.registry = registry
        self.user_id = user_id
        self.state = ActivationState.UNREGISTERED
        self.descriptor: SubscriptionDescriptor | None = None
        self.registry_id: str | None = None

    async def activate(self, public_key: str | None = None) -> SubscriptionDescriptor:
        """Beliebig oft aufrufbar; eine bestehende Subscription wird nur neu registriert."""
        self.state = ActivationState.PERMISSION_REQUESTED
        permission = await self.platform.request_permission()
        if permission != "granted":
            self.state = ActivationState.DENIED
            raise PermissionDenied(permission)
        self.state = ActivationState.GRANTED

        if not await self.platform.receiver_ready():
            raise ReceiverNotReady("no active service worker")

        subscription = await self.platform.get_subscription()
        if subscription is None:
            key = public_key or await self.registry.fetch_public_key()
            subscription = await self.platform.subscribe(url_base64_to_bytes(key))

        self.descriptor = SubscriptionDescriptor.model_validate(
            {**subscription, "userId": self.user_id}
        )
        self.state = ActivationState.SUBSCRIBED
        await self.retry_submission()
        return self.descriptor

    async def retry_submission(self) -> str:
        if self.descriptor is None:
            raise RuntimeError("no subscription descriptor to submit")
        self.registry_id = await self.registry.submit(self.descriptor)
        self.state = ActivationState.REGISTERED
        logger.info("Push subscription registered as %s", self.registry_id)
        return self.registry_id
