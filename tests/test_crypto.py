"""
Encryption at rest, including legacy plaintext passthrough.
"""

import pytest

from darktrack.core.crypto import DEV_FALLBACK_KEY, CryptoService, looks_like_ciphertext
from darktrack.core.errors import CryptoError


class TestRoundTrip:
    """decrypt(encrypt(s)) == s for non-empty strings."""

    @pytest.mark.parametrize("value", ["a", "user@example.com", "ünïcødé ✓", "x" * 5000])
    def test_round_trip(self, crypto, value):
        token = crypto.encrypt(value)
        assert token != value
        assert looks_like_ciphertext(token)
        assert crypto.decrypt(token) == value

    def test_encrypt_empty_is_noop(self, crypto):
        assert crypto.encrypt("") == ""

    def test_object_round_trip(self, crypto):
        payload = {"port": 22, "tags": ["ssh", "exposed"]}
        assert crypto.decrypt_object(crypto.encrypt_object(payload)) == payload


class TestLegacyPassthrough:
    """Values not produced by encrypt() come back unchanged."""

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "user@example.com",
            "Your email appeared in 3 breaches.",
            "gAAAAAshort",
            "U2FsdGVkX1+legacycryptojsvalue==",
        ],
    )
    def test_plaintext_returned_as_is(self, crypto, value):
        assert crypto.decrypt(value) == value

    def test_token_from_other_key_returned_as_is(self, crypto):
        foreign = CryptoService("some-other-key").encrypt("secret")
        assert crypto.decrypt(foreign) == foreign

    def test_tampered_token_returned_as_is(self, crypto):
        token = crypto.encrypt("secret")
        tampered = token[:-8] + ("A" * 4) + token[-4:]
        assert crypto.decrypt(tampered) == tampered

    def test_legacy_json_object(self, crypto):
        assert crypto.decrypt_object('{"a": 1}') == {"a": 1}


class TestKeyConfiguration:
    """ENCRYPTION_KEY handling at startup."""

    def test_blank_key_rejected(self):
        with pytest.raises(CryptoError):
            CryptoService("   ")

    def test_missing_key_outside_development_is_fatal(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(CryptoError):
            CryptoService.from_env()

    def test_missing_key_in_development_uses_fallback(self, monkeypatch, caplog):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "development")

        service = CryptoService.from_env()

        assert "default encryption key" in caplog.text
        token = service.encrypt("hello")
        assert CryptoService(DEV_FALLBACK_KEY).decrypt(token) == "hello"

    def test_configured_key_is_used(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_KEY", "configured-key")
        monkeypatch.setenv("ENVIRONMENT", "production")

        token = CryptoService.from_env().encrypt("hello")
        assert CryptoService("configured-key").decrypt(token) == "hello"
