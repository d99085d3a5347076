"""
Vault Crypto Core — Key derivation, encryption/decryption, and envelope format.

Two-step key schedule:
- User key: SHA256("{user_id}:{session_id}:{master_secret}") → 32 bytes, never stored
- Record key: PBKDF2-HMAC-SHA256(base64(user key), salt, iterations) → AES-256-GCM

Envelope fields are stored as base64 text:
    encrypted_value | salt (32B) | iv (12B) | auth_tag (16B)

Security Note:
    Never log plaintext, keys or ciphertext values.
    Salt and iv are drawn fresh from os.urandom on every encryption.
"""
import os
import base64
import binascii
import hashlib
import logging
from typing import Any, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import (
    ConfigurationError,
    IntegrityError,
    MalformedEnvelopeError,
)
from .config import DEFAULT_KDF_ITERATIONS, MAX_VALUE_LENGTH

logger = logging.getLogger("credential_vault")

ALGORITHM = "AES-GCM"
SALT_SIZE = 32  # 256-bit salt
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
KEY_LENGTH = 32  # AES-256

CIPHER_CLS = AESGCM


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class CredentialEnvelope(BaseModel):
    """Persisted representation of one encrypted secret.

    All fields are base64 text so the envelope fits a text-oriented
    datastore. Accepts both snake_case names and the camelCase aliases
    used by browser payloads.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    encrypted_value: str = Field(alias="encryptedValue", min_length=1)
    salt: str = Field(min_length=1)
    iv: str = Field(min_length=1)
    auth_tag: str = Field(alias="authTag", min_length=1)

    def to_record(self) -> dict[str, str]:
        """Row shape for the ``encrypted_credentials`` table."""
        return self.model_dump(by_alias=False)

    @classmethod
    def from_record(cls, row: Any) -> "CredentialEnvelope":
        """Build an envelope from a database row.

        Raises:
            MalformedEnvelopeError: If any of the four columns is missing or empty.
        """
        values = {}
        for column in ("encrypted_value", "salt", "iv", "auth_tag"):
            try:
                value = row[column]
            except KeyError:
                value = None
            if not value:
                raise MalformedEnvelopeError(f"missing column {column}")
            values[column] = value
        return cls(**values)

    def to_payload(self, iterations: int = DEFAULT_KDF_ITERATIONS) -> dict[str, Any]:
        """Browser-compatible payload (camelCase plus algorithm metadata)."""
        payload = self.model_dump(by_alias=True)
        payload["algorithm"] = ALGORITHM
        payload["keyDerivation"] = {
            "iterations": iterations,
            "hash": "SHA-256",
        }
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CredentialEnvelope":
        """Build an envelope from a client payload, ignoring extra metadata.

        Raises:
            MalformedEnvelopeError: If a required field is missing or empty.
        """
        fields = {}
        for name, alias in (
            ("encrypted_value", "encryptedValue"),
            ("salt", "salt"),
            ("iv", "iv"),
            ("auth_tag", "authTag"),
        ):
            value = payload.get(alias) or payload.get(name)
            if not value or not isinstance(value, str):
                raise MalformedEnvelopeError(f"missing field {alias}")
            fields[name] = value
        return cls(**fields)

    def to_json(self, iterations: int = DEFAULT_KDF_ITERATIONS) -> bytes:
        return orjson.dumps(self.to_payload(iterations=iterations))

    @classmethod
    def from_json(cls, data: bytes | str) -> "CredentialEnvelope":
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise MalformedEnvelopeError(f"invalid JSON: {err}") from err
        if not isinstance(parsed, dict):
            raise MalformedEnvelopeError("envelope JSON must be an object")
        return cls.from_payload(parsed)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(user_id: str, session_id: str, master_secret: Optional[str]) -> bytes:
    """Derive a 32-byte user key from identity and the master secret.

    Args:
        user_id: User identifier.
        session_id: Session identifier (or a stand-in such as the user id).
        master_secret: Application master secret.

    Returns:
        32-byte derived key.

    Raises:
        ConfigurationError: If master_secret is absent.
        ValueError: If user_id or session_id is empty.
    """
    if not master_secret:
        raise ConfigurationError("ENCRYPTION_SECRET not configured")
    if not user_id:
        raise ValueError("user_id cannot be empty")
    if not session_id:
        raise ValueError("session_id cannot be empty")
    combined = f"{user_id}:{session_id}:{master_secret}"
    return hashlib.sha256(combined.encode("utf-8")).digest()


def _record_key(key: bytes, salt: bytes, iterations: int) -> bytes:
    """Stretch the user key with the per-record salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    # base64 keeps record keys identical to those of the existing records
    return kdf.derive(base64.b64encode(key))


def _check_key(key: bytes) -> None:
    if not isinstance(key, bytes) or len(key) != KEY_LENGTH:
        raise ValueError(f"key must be {KEY_LENGTH} bytes")


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def encrypt(
    plaintext: str,
    key: bytes,
    iterations: int = DEFAULT_KDF_ITERATIONS,
    max_length: int = MAX_VALUE_LENGTH,
) -> CredentialEnvelope:
    """Encrypt a secret string into a credential envelope.

    Args:
        plaintext: Secret to protect (1..max_length characters).
        key: 32-byte user key from derive_key.
        iterations: PBKDF2 iterations for the record key.
        max_length: Maximum plaintext length in characters.

    Returns:
        CredentialEnvelope with fresh salt and iv.

    Raises:
        ValueError: If plaintext is empty, too long, or key is invalid.
    """
    if not isinstance(plaintext, str) or not plaintext:
        raise ValueError("plaintext cannot be empty")
    if len(plaintext) > max_length:
        raise ValueError(f"plaintext cannot exceed {max_length} characters")
    _check_key(key)

    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(NONCE_SIZE)
    cipher = CIPHER_CLS(_record_key(key, salt, iterations))
    sealed = cipher.encrypt(iv, plaintext.encode("utf-8"), None)
    ct, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    return CredentialEnvelope(
        encrypted_value=_b64(ct),
        salt=_b64(salt),
        iv=_b64(iv),
        auth_tag=_b64(tag),
    )


def decrypt(
    envelope: CredentialEnvelope,
    key: bytes,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> str:
    """Verify and decrypt a credential envelope.

    Args:
        envelope: Envelope produced by encrypt.
        key: 32-byte user key re-derived with the same inputs as at encryption.
        iterations: PBKDF2 iterations used at encryption time.

    Returns:
        Decrypted plaintext.

    Raises:
        MalformedEnvelopeError: If a field is missing or structurally invalid.
        IntegrityError: If the authentication tag does not verify.
    """
    if envelope is None:
        raise MalformedEnvelopeError("envelope is missing")
    _check_key(key)
    ct = _unb64(envelope.encrypted_value, "encrypted_value")
    salt = _unb64(envelope.salt, "salt", SALT_SIZE)
    iv = _unb64(envelope.iv, "iv", NONCE_SIZE)
    tag = _unb64(envelope.auth_tag, "auth_tag", TAG_SIZE)

    cipher = CIPHER_CLS(_record_key(key, salt, iterations))
    try:
        data = cipher.decrypt(iv, ct + tag, None)
    except InvalidTag as err:
        raise IntegrityError("authentication tag mismatch") from err
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise MalformedEnvelopeError("plaintext is not valid UTF-8") from err


# ---------------------------------------------------------------------------
# base64 helpers
# ---------------------------------------------------------------------------

def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str, field: str, size: Optional[int] = None) -> bytes:
    if not value:
        raise MalformedEnvelopeError(f"{field} is empty")
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise MalformedEnvelopeError(f"{field} is not valid base64") from err
    if not raw:
        raise MalformedEnvelopeError(f"{field} is empty")
    if size is not None and len(raw) != size:
        raise MalformedEnvelopeError(
            f"{field} must decode to {size} bytes, got {len(raw)}"
        )
    return raw
