"""TOTP secrets and code verification.

Stored TOTP secrets are encrypted with AES-256-GCM under a server key and
serialized as ``iv:tag:ciphertext`` (hex). Codes are six digits, 30-second
steps, and accepted within one step either side of now.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

import pyotp
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

# AES-256 requires 32-byte key
KEY_SIZE_BYTES = 32
# GCM nonce should be 12 bytes per NIST recommendations
GCM_NONCE_SIZE_BYTES = 12
# GCM tag is 16 bytes (128 bits)
GCM_TAG_SIZE_BYTES = 16
# Accept the previous and next 30s step as well as the current one
TOTP_VALID_WINDOW = 1


class TotpSecretError(Exception):
    """Raised when a stored TOTP secret cannot be encrypted or decrypted."""


class TotpSecretCipher:
    """AES-256-GCM envelope for TOTP secrets at rest."""

    def __init__(self, key: bytes) -> None:
        """Initialize the cipher.

        Args:
            key: 32-byte AES key.

        Raises:
            ValueError: If the key has the wrong length.
        """
        if len(key) != KEY_SIZE_BYTES:
            msg = f"TOTP encryption key must be {KEY_SIZE_BYTES} bytes, got {len(key)}"
            raise ValueError(msg)
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> TotpSecretCipher:
        return cls(bytes.fromhex(key_hex))

    def encrypt(self, secret: str) -> str:
        """Encrypt a base32 secret into ``iv:tag:ciphertext`` hex form."""
        nonce = os.urandom(GCM_NONCE_SIZE_BYTES)
        sealed = self._aesgcm.encrypt(nonce, secret.encode("ascii"), None)
        ciphertext, tag = sealed[:-GCM_TAG_SIZE_BYTES], sealed[-GCM_TAG_SIZE_BYTES:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, secret_enc: str) -> str:
        """Decrypt a stored secret.

        Raises:
            TotpSecretError: If the blob is malformed or fails authentication.
        """
        try:
            iv_hex, tag_hex, ct_hex = secret_enc.split(":")
            nonce = bytes.fromhex(iv_hex)
            tag = bytes.fromhex(tag_hex)
            ciphertext = bytes.fromhex(ct_hex)
        except ValueError as e:
            raise TotpSecretError("Stored TOTP secret is malformed") from e
        if len(nonce) != GCM_NONCE_SIZE_BYTES or len(tag) != GCM_TAG_SIZE_BYTES:
            raise TotpSecretError("Stored TOTP secret is malformed")
        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise TotpSecretError("Stored TOTP secret failed authentication") from e
        return plaintext.decode("ascii")


def generate_secret() -> str:
    """Fresh random base32 TOTP secret."""
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
    """otpauth:// URI for authenticator-app enrolment."""
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=issuer)


def verify_code(secret: str, code: str, *, at: datetime | None = None) -> bool:
    """Check a six-digit code against ``secret`` within +/-1 time step."""
    if len(code) != 6 or not code.isdigit():
        return False
    totp = pyotp.TOTP(secret)
    return totp.verify(code, for_time=at, valid_window=TOTP_VALID_WINDOW)
