"""AES-256-GCM encryption for script property values.

Uses the ``cryptography`` library's AEAD primitive. The key is 32 bytes,
supplied as 64 hex characters through ``ENCRYPTION_KEY`` (or
``encryption.key`` in the config file). When no key is configured a random
one is generated for the lifetime of the process and logged once so the
operator can capture it; values encrypted with it are unrecoverable after a
restart unless that key is reused.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import CryptoError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16
ASSOCIATED_DATA = b"gas-mcp"
ENVELOPE_SENTINEL = "_encrypted"


class EncryptionHelper:
    """Encrypts and decrypts single string values with one fixed key."""

    def __init__(self, key: Optional[str] = None):
        if key:
            try:
                raw = bytes.fromhex(key)
            except ValueError as e:
                raise CryptoError("ENCRYPTION_KEY is not valid hex") from e
            if len(raw) != KEY_LENGTH:
                raise CryptoError(
                    f"ENCRYPTION_KEY must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters)"
                )
            self.generated = False
        else:
            raw = AESGCM.generate_key(bit_length=KEY_LENGTH * 8)
            self.generated = True
            logger.warning(
                "ENCRYPTION_KEY not set - generated a temporary key for this process. "
                "Encrypted properties will be unreadable after restart unless you set "
                f"ENCRYPTION_KEY={raw.hex()}"
            )
        self._key = raw
        self._aead = AESGCM(raw)

    @property
    def fingerprint(self) -> str:
        """Short, non-reversible identifier of the active key."""
        return hashlib.sha256(self._key).hexdigest()[:16]

    def encrypt(self, plaintext: str) -> dict:
        """
        Encrypt a string with a fresh random IV.

        Returns:
            Dict of hex strings: encrypted, iv, authTag
        """
        iv = secrets.token_bytes(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), ASSOCIATED_DATA)
        return {
            "encrypted": sealed[:-TAG_LENGTH].hex(),
            "iv": iv.hex(),
            "authTag": sealed[-TAG_LENGTH:].hex(),
        }

    def decrypt(self, envelope: dict) -> str:
        """
        Decrypt the output of encrypt().

        Raises:
            CryptoError: If fields are missing or malformed, or if the
                authentication tag does not verify under this key.
        """
        if not isinstance(envelope, dict):
            raise CryptoError("Encrypted data must be an object")
        try:
            ciphertext = bytes.fromhex(envelope["encrypted"])
            iv = bytes.fromhex(envelope["iv"])
            tag = bytes.fromhex(envelope["authTag"])
        except KeyError as e:
            raise CryptoError(f"Encrypted data is missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise CryptoError(f"Encrypted data is malformed: {e}") from e

        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise CryptoError("Encrypted data has an invalid IV or authentication tag length")

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, ASSOCIATED_DATA)
        except InvalidTag as e:
            raise CryptoError(
                "Decryption failed: authentication tag mismatch (wrong key or tampered data)"
            ) from e
        return plaintext.decode("utf-8")

    def seal(self, plaintext: str) -> dict:
        """Encrypt and wrap in the stored property envelope."""
        return {
            ENVELOPE_SENTINEL: True,
            "data": self.encrypt(plaintext),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def is_envelope(value) -> bool:
    return isinstance(value, dict) and value.get(ENVELOPE_SENTINEL) is True


def create_hash(data: str, algorithm: str = "sha256") -> str:
    """Hex digest of a string."""
    try:
        digest = hashlib.new(algorithm)
    except ValueError as e:
        raise CryptoError(f"Unsupported hash algorithm: {algorithm}") from e
    digest.update(data.encode("utf-8"))
    return digest.hexdigest()


def create_hmac(data: str, secret: str) -> str:
    """HMAC-SHA256 hex digest."""
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_hmac(data: str, signature: str, secret: str) -> bool:
    """Constant-time check of an HMAC-SHA256 signature."""
    expected = create_hmac(data, secret)
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


def generate_secure_token(length: int = 32) -> str:
    """Random token of `length` bytes, hex encoded."""
    return secrets.token_hex(length)


def mask_secret(value: Optional[str]) -> str:
    """Show only the first and last four characters of a secret."""
    if not value or len(value) < 8:
        return "***"
    return f"{value[:4]}***{value[-4:]}"
