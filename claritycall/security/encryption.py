"""AES-256-GCM encryption for OAuth credentials stored at rest."""

from __future__ import annotations

import base64
import os
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from claritycall.config import get_settings
from claritycall.logging_config import get_logger

logger = get_logger(__name__)

_cipher: Optional[AESGCM] = None

_ENV_KEY = "CLARITY_ENCRYPTION_KEY"


def _persist_key_to_env(key_b64: str) -> bool:
    """Write the encryption key to .env so stored tokens survive restarts."""
    env_path = Path(".env")
    try:
        if env_path.exists():
            lines = env_path.read_text().splitlines()
            for i, line in enumerate(lines):
                if line.strip().split("=", 1)[0].strip() == _ENV_KEY:
                    lines[i] = f"{_ENV_KEY}={key_b64}"
                    break
            else:
                lines.append(f"{_ENV_KEY}={key_b64}")
            env_path.write_text("\n".join(lines) + "\n")
        else:
            env_path.write_text(f"{_ENV_KEY}={key_b64}\n")
        logger.info("encryption_key_persisted", path=str(env_path.resolve()))
        return True
    except OSError as exc:
        logger.warning("encryption_key_persist_failed", error=str(exc))
        return False


def _decode_key(key_b64: str) -> bytes:
    padded = key_b64 + "=" * (-len(key_b64) % 4)
    key = base64.urlsafe_b64decode(padded)
    if len(key) != 32:
        raise ValueError(f"Key is {len(key)} bytes, need 32")
    return key


def _get_cipher() -> AESGCM:
    """Return or create the AES-GCM cipher from the configured key."""
    global _cipher
    if _cipher is not None:
        return _cipher

    key_b64 = get_settings().clarity_encryption_key
    key: Optional[bytes] = None
    if key_b64:
        try:
            key = _decode_key(key_b64)
        except ValueError as exc:
            logger.warning("encryption_key_invalid", error=str(exc))

    if key is None:
        key = AESGCM.generate_key(bit_length=256)
        if not _persist_key_to_env(base64.urlsafe_b64encode(key).decode()):
            logger.warning("encryption_key_ephemeral", msg="Stored tokens will not survive a restart")

    _cipher = AESGCM(key)
    return _cipher


def encrypt(plaintext: str) -> str:
    """Encrypt a plaintext string, returning base64-encoded ciphertext with nonce."""
    cipher = _get_cipher()
    nonce = os.urandom(12)
    ciphertext = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")


def decrypt(token: str) -> str:
    """Decrypt a base64-encoded token back to plaintext."""
    cipher = _get_cipher()
    padded = token + "=" * (-len(token) % 4)
    raw = base64.urlsafe_b64decode(padded)
    nonce, ciphertext = raw[:12], raw[12:]
    return cipher.decrypt(nonce, ciphertext, None).decode("utf-8")
