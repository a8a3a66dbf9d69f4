"""Tests for Dexcom token encryption at rest."""

import pytest

from hockey_sugar.config import settings
from hockey_sugar.core.encryption import decrypt_credential, encrypt_credential


class TestCredentialEncryption:
    def test_round_trip(self):
        encrypted = encrypt_credential("dexcom-refresh-token")

        assert encrypted != "dexcom-refresh-token"
        assert decrypt_credential(encrypted) == "dexcom-refresh-token"

    def test_ciphertexts_differ(self):
        assert encrypt_credential("same") != encrypt_credential("same")

    def test_wrong_key_raises_value_error(self, monkeypatch):
        encrypted = encrypt_credential("dexcom-access-token")
        monkeypatch.setattr(settings, "encryption_key", "k" * 40)

        with pytest.raises(ValueError, match="Failed to decrypt"):
            decrypt_credential(encrypted)

    def test_corrupted_data_raises_value_error(self):
        with pytest.raises(ValueError):
            decrypt_credential("not-a-fernet-token")
