"""
Tests für die Key Authority (VAPID-Schlüssel und SigningContext).
"""
import pytest

from pushrelay.core.config import Settings
from pushrelay.core.exceptions import ConfigurationInvalid, ConfigurationMissing
from pushrelay.core.vapid import KeyAuthority, generate_key_pair, sign
from tests.conftest import SUBJECT


def test_generate_key_pair_is_base64url_without_padding(vapid_keys):
    public_key, private_key = vapid_keys
    for key in (public_key, private_key):
        assert "=" not in key
        assert "+" not in key and "/" not in key
    # uncompressed P-256 point = 65 bytes → 87 chars, raw scalar = 32 bytes → 43 chars
    assert len(public_key) == 87
    assert len(private_key) == 43


def test_generate_key_pair_is_fresh_each_time():
    assert generate_key_pair() != generate_key_pair()


def test_sign_builds_context(vapid_keys):
    public_key, private_key = vapid_keys
    ctx = sign(SUBJECT, public_key, private_key)
    assert ctx.subject == SUBJECT
    assert ctx.public_key == public_key
    assert ctx.vapid is not None


def test_claims_are_a_fresh_dict_per_call(signing):
    first = signing.claims()
    first["aud"] = "https://push.example.net"
    assert signing.claims() == {"sub": SUBJECT}


def test_signing_context_repr_hides_key_material(signing, vapid_keys):
    _, private_key = vapid_keys
    assert private_key not in repr(signing)


@pytest.mark.parametrize("missing", [
    ["VAPID_SUBJECT"],
    ["VAPID_PUBLIC_KEY"],
    ["VAPID_PRIVATE_KEY"],
    ["VAPID_SUBJECT", "VAPID_PRIVATE_KEY"],
    ["VAPID_SUBJECT", "VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY"],
])
def test_sign_names_exactly_the_missing_fields(vapid_keys, missing):
    public_key, private_key = vapid_keys
    values = {
        "VAPID_SUBJECT": SUBJECT,
        "VAPID_PUBLIC_KEY": public_key,
        "VAPID_PRIVATE_KEY": private_key,
    }
    for name in missing:
        values[name] = ""
    with pytest.raises(ConfigurationMissing) as exc:
        sign(values["VAPID_SUBJECT"], values["VAPID_PUBLIC_KEY"], values["VAPID_PRIVATE_KEY"])
    assert exc.value.missing == missing


def test_sign_treats_none_and_whitespace_as_missing(vapid_keys):
    public_key, _ = vapid_keys
    with pytest.raises(ConfigurationMissing) as exc:
        sign("   ", public_key, None)
    assert exc.value.missing == ["VAPID_SUBJECT", "VAPID_PRIVATE_KEY"]


def test_sign_rejects_invalid_subject(vapid_keys):
    public_key, private_key = vapid_keys
    with pytest.raises(ConfigurationInvalid) as exc:
        sign("push@example.com", public_key, private_key)
    assert exc.value.field == "VAPID_SUBJECT"


def test_sign_accepts_https_subject(vapid_keys):
    public_key, private_key = vapid_keys
    assert sign("https://tickets.example.com", public_key, private_key).subject == "https://tickets.example.com"


def test_sign_rejects_mismatched_public_key(vapid_keys):
    _, private_key = vapid_keys
    other_public, _ = generate_key_pair()
    with pytest.raises(ConfigurationInvalid) as exc:
        sign(SUBJECT, other_public, private_key)
    assert exc.value.field == "VAPID_PUBLIC_KEY"


def test_key_authority_from_settings_exposes_only_public_key(vapid_keys):
    public_key, private_key = vapid_keys
    cfg = Settings(
        VAPID_SUBJECT=SUBJECT,
        VAPID_PUBLIC_KEY=public_key,
        VAPID_PRIVATE_KEY=private_key,
    )
    authority = KeyAuthority.from_settings(cfg)
    assert authority.expose_public_key() == public_key
    assert not hasattr(authority, "private_key")


def test_key_authority_from_settings_missing_private_key(vapid_keys):
    public_key, _ = vapid_keys
    cfg = Settings(VAPID_SUBJECT=SUBJECT, VAPID_PUBLIC_KEY=public_key, VAPID_PRIVATE_KEY="")
    with pytest.raises(ConfigurationMissing) as exc:
        KeyAuthority.from_settings(cfg)
    assert exc.value.missing == ["VAPID_PRIVATE_KEY"]
