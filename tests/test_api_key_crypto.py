import pytest

from tenantbot.config.settings import get_settings
from tenantbot.core.api_key_crypto import (
    ENCRYPTED_PREFIX,
    decrypt_secret_from_storage,
    encrypt_secret_for_storage,
    is_encrypted_secret,
    with_decrypted_api_key,
)


def _use_secret(monkeypatch, value):
    if value is None:
        monkeypatch.delenv("API_KEY_ENCRYPTION_SECRET", raising=False)
    else:
        monkeypatch.setenv("API_KEY_ENCRYPTION_SECRET", value)
    get_settings.cache_clear()


def test_encrypted_value_has_prefix_and_decrypts():
    stored = encrypt_secret_for_storage("sk-live-123")
    assert stored.startswith(ENCRYPTED_PREFIX)
    assert "sk-live-123" not in stored
    assert is_encrypted_secret(stored)
    assert decrypt_secret_from_storage(stored) == "sk-live-123"


def test_already_encrypted_values_are_not_double_encrypted():
    stored = encrypt_secret_for_storage("sk-live-123")
    assert encrypt_secret_for_storage(stored) == stored


def test_plaintext_passes_through_on_read():
    assert decrypt_secret_from_storage("sk-legacy") == "sk-legacy"
    assert decrypt_secret_from_storage(None) is None
    assert decrypt_secret_from_storage("") is None


def test_without_secret_values_are_stored_plain(monkeypatch):
    _use_secret(monkeypatch, None)
    assert encrypt_secret_for_storage("sk-plain") == "sk-plain"


def test_encrypted_value_without_secret_cannot_be_read(monkeypatch):
    stored = encrypt_secret_for_storage("sk-live-123")
    _use_secret(monkeypatch, None)
    assert decrypt_secret_from_storage(stored) is None


def test_wrong_secret_or_malformed_payload(monkeypatch):
    stored = encrypt_secret_for_storage("sk-live-123")
    _use_secret(monkeypatch, "another-secret")
    assert decrypt_secret_from_storage(stored) is None
    assert decrypt_secret_from_storage(ENCRYPTED_PREFIX) is None
    assert decrypt_secret_from_storage(f"{ENCRYPTED_PREFIX}not-a-token") is None


@pytest.mark.parametrize("field", ["api_key", "_encrypted_api_key"])
def test_with_decrypted_api_key(field):
    bot = {"id": "b", field: encrypt_secret_for_storage("sk-abc")}
    config = with_decrypted_api_key(bot)
    assert config["api_key"] == "sk-abc"
    assert bot[field].startswith(ENCRYPTED_PREFIX)
