"""
Key Authority – VAPID-Schlüsselpaar und Signierkontext für Web Push.

Das Schlüsselpaar wird einmalig bei der Einrichtung erzeugt
(generate_vapid_keys.py), nie während eines Requests. Zur Laufzeit wird aus
Subject + Public Key + Private Key genau ein unveränderlicher SigningContext
gebaut und an den Dispatcher übergeben.
"""
from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid

from pushrelay.core.config import Settings, settings
from pushrelay.core.exceptions import ConfigurationInvalid, ConfigurationMissing

logger = logging.getLogger(__name__)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _raw_public_key(vapid: Vapid) -> bytes:
    return vapid.public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


def generate_key_pair() -> tuple[str, str]:
    """Erzeugt ein neues P-256 Schlüsselpaar, beide Teile base64url (ohne Padding)."""
    vapid = Vapid()
    vapid.generate_keys()
    private_value = vapid.private_key.private_numbers().private_value
    return (
        _b64url(_raw_public_key(vapid)),
        _b64url(private_value.to_bytes(32, "big")),
    )


@dataclass(frozen=True)
class SigningContext:
    """Unveränderlich; wird von allen parallelen Versand-Tasks geteilt."""

    subject: str
    public_key: str
    _vapid: Vapid = field(repr=False, compare=False)

    @property
    def vapid(self) -> Vapid:
        return self._vapid

    def claims(self) -> dict:
        # pywebpush ergänzt aud/exp direkt im übergebenen dict → pro Request neu
        return {"sub": self.subject}


def sign(subject: str | None, public_key: str | None, private_key: str | None) -> SigningContext:
    """Bindet Subject und Schlüsselpaar zu einem SigningContext.

    Wirft ConfigurationMissing mit exakt den fehlenden Feldern, bevor irgendein
    Schlüssel geparst wird.
    """
    missing = [
        name
        for name, value in (
            ("VAPID_SUBJECT", subject),
            ("VAPID_PUBLIC_KEY", public_key),
            ("VAPID_PRIVATE_KEY", private_key),
        )
        if not (value or "").strip()
    ]
    if missing:
        raise ConfigurationMissing(missing)

    subject = subject.strip()
    if not subject.startswith(("mailto:", "http://", "https://")):
        raise ConfigurationInvalid("VAPID_SUBJECT", "must be a mailto: or http(s):// URI")

    try:
        vapid = Vapid.from_string(private_key=private_key.strip())
    except (ValueError, TypeError) as e:
        raise ConfigurationInvalid("VAPID_PRIVATE_KEY", str(e)[:200]) from e

    try:
        key = public_key.strip()
        configured = base64.urlsafe_b64decode(key + "=" * (-len(key) % 4))
    except (binascii.Error, ValueError) as e:
        raise ConfigurationInvalid("VAPID_PUBLIC_KEY", "not base64url") from e
    if configured != _raw_public_key(vapid):
        raise ConfigurationInvalid("VAPID_PUBLIC_KEY", "does not match VAPID_PRIVATE_KEY")

    return SigningContext(subject=subject, public_key=public_key.strip(), _vapid=vapid)


class KeyAuthority:
    """Hält den SigningContext; gibt nach außen nur den Public Key heraus."""

    def __init__(self, signing_context: SigningContext):
        self._signing_context = signing_context

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "KeyAuthority":
        return cls(sign(cfg.VAPID_SUBJECT, cfg.VAPID_PUBLIC_KEY, cfg.VAPID_PRIVATE_KEY))

    @property
    def signing_context(self) -> SigningContext:
        return self._signing_context

    def expose_public_key(self) -> str:
        return self._signing_context.public_key


_authority: KeyAuthority | None = None


def get_key_authority() -> KeyAuthority:
    """Lazy-Singleton; Konfigurationsfehler werden bei jedem Aufruf erneut geworfen."""
    global _authority
    if _authority is None:
        _authority = KeyAuthority.from_settings(settings)
    return _authority


def check_signing_configuration() -> bool:
    """Beim Start aufgerufen: meldet fehlendes Signiermaterial, ohne den Start abzubrechen."""
    try:
        get_key_authority()
    except ConfigurationMissing as e:
        logger.error("Web Push disabled, missing configuration: %s", ", ".join(e.missing))
        return False
    except ConfigurationInvalid as e:
        logger.error("Web Push disabled, %s", e)
        return False
    return True
