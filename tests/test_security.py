"""Tests for the security module: encryption of stored credentials."""

from __future__ import annotations

import base64
import os
from unittest.mock import MagicMock, patch

import pytest
from cryptography.exceptions import InvalidTag

from claritycall.security.encryption import _get_cipher, decrypt, encrypt


class TestEncryption:
    """Tests for AES-256 encryption/decryption."""

    @pytest.fixture(autouse=True)
    def reset_cipher(self):
        """Reset the global cipher before each test."""
        import claritycall.security.encryption as enc
        enc._cipher = None
        yield
        enc._cipher = None

    def test_encrypt_decrypt_roundtrip(self) -> None:
        """Encrypting then decrypting returns original text."""
        key = base64.urlsafe_b64encode(os.urandom(32)).decode()
        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key=key)
            encrypted = encrypt("ya29.refresh-token")
            assert encrypted != "ya29.refresh-token"
            assert decrypt(encrypted) == "ya29.refresh-token"

    def test_encrypt_produces_different_ciphertexts(self) -> None:
        """Same plaintext produces different ciphertexts due to random nonce."""
        key = base64.urlsafe_b64encode(os.urandom(32)).decode()
        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key=key)
            assert encrypt("Test data") != encrypt("Test data")

    def test_unpadded_key_accepted(self) -> None:
        key = base64.urlsafe_b64encode(os.urandom(32)).decode().rstrip("=")
        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key=key)
            assert decrypt(encrypt("x")) == "x"

    def test_decrypt_wrong_key_fails(self) -> None:
        """Decryption with wrong key raises an error."""
        key1 = base64.urlsafe_b64encode(os.urandom(32)).decode()
        key2 = base64.urlsafe_b64encode(os.urandom(32)).decode()
        import claritycall.security.encryption as enc

        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key=key1)
            encrypted = encrypt("secret data")

        enc._cipher = None
        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key=key2)
            with pytest.raises(InvalidTag):
                decrypt(encrypted)

    def test_ephemeral_key_generated_and_persisted(self, tmp_path, monkeypatch) -> None:
        """When no key is configured, a key is generated and written to .env."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("CLARITY_ENV=test\n")
        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key="")
            assert _get_cipher() is not None

        lines = (tmp_path / ".env").read_text().splitlines()
        assert lines[0] == "CLARITY_ENV=test"
        assert lines[1].startswith("CLARITY_ENCRYPTION_KEY=")

    def test_short_key_replaced(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        short = base64.urlsafe_b64encode(b"too short").decode()
        with patch("claritycall.security.encryption.get_settings") as mock:
            mock.return_value = MagicMock(clarity_encryption_key=short)
            assert decrypt(encrypt("x")) == "x"
        assert "CLARITY_ENCRYPTION_KEY=" in (tmp_path / ".env").read_text()
