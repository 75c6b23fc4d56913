"""
Fehler-Taxonomie der Push-Pipeline.

Validierungs- und Konfigurationsfehler werden sofort an den Aufrufer
weitergereicht. Zustellfehler einzelner Empfänger verlassen den Dispatcher
nie als Exception, sondern landen im DeliveryReport.
"""


class PushRelayError(Exception):
    """Basisklasse aller Fehler dieses Pakets."""


# ── Registry ─────────────────────────────────────────────────────────────────

INVALID_REASONS = (
    "missing_endpoint",
    "invalid_endpoint",
    "missing_keys",
    "missing_p256dh",
    "missing_auth",
)


class InvalidSubscription(PushRelayError):
    """Descriptor ist unvollständig oder fehlerhaft; wird vor dem Speichern abgelehnt."""

    def __init__(self, reason: str):
        if reason not in INVALID_REASONS:
            raise ValueError(f"unknown reason: {reason}")
        self.reason = reason
        super().__init__(f"invalid subscription: {reason}")


class SubscriptionNotFound(PushRelayError):
    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"subscription not found: {subscription_id}")


# ── Konfiguration ────────────────────────────────────────────────────────────

class ConfigurationError(PushRelayError):
    pass


class ConfigurationMissing(ConfigurationError):
    """Signiermaterial fehlt; `missing` nennt exakt die fehlenden Felder."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__("missing configuration: " + ", ".join(self.missing))


class ConfigurationInvalid(ConfigurationError):
    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"invalid configuration {field}: {reason}")


# ── Client-Vorbedingungen ────────────────────────────────────────────────────

class PermissionDenied(PushRelayError):
    """Benachrichtigungs-Berechtigung verweigert oder weggeklickt."""

    def __init__(self, status: str = "denied"):
        self.status = status
        super().__init__(f"notification permission {status}")


class ReceiverNotReady(PushRelayError):
    """Kein aktiver Hintergrund-Empfänger (Service Worker) vorhanden."""


# ── Zustellung (nur zur Klassifikation, nie über den Dispatcher hinaus) ─────

class DeliveryFailure(PushRelayError):
    def __init__(self, status_code: int | None, detail: str | None = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail or f"push service returned {status_code}")


class TransientDeliveryFailure(DeliveryFailure):
    pass


class PermanentlyInvalidEndpoint(DeliveryFailure):
    pass
