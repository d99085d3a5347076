"""
CredentialStore — Per-user encrypted API key storage.

Provides the persistence API on top of CredentialCodec:
- ``list_credentials(user_id)`` — enumerate stored credentials (no decryption)
- ``create_credential(user_id, request)`` — validate, encrypt and insert
- ``get_credential(user_id, name)`` — fetch and decrypt
- ``update_credential(user_id, name, update)`` — re-encrypt an existing credential
- ``delete_credential(user_id, name)`` — remove a credential

Each row holds ``encrypted_value``, ``salt``, ``iv`` and ``auth_tag`` keyed by
``(user_id, name)``. Authorization is by ``user_id`` on every statement.

Security Note:
    Never log plaintext or ciphertext values. Only log credential names,
    operations, and user IDs.
"""
import re
import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..exceptions import (
    CredentialExistsError,
    CredentialNotFoundError,
    MalformedEnvelopeError,
)
from .config import MAX_NAME_LENGTH, MAX_VALUE_LENGTH
from .codec import CredentialCodec
from .crypto import CredentialEnvelope

logger = logging.getLogger("credential_vault")

NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
_NAME_RE = re.compile(NAME_PATTERN)

DISPLAY_NAMES = {
    "trading212": "Trading 212",
}

_UNIQUE_VIOLATION = "23505"

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_USER_CREDENTIALS = """
SELECT id, name, created_at, updated_at
FROM encrypted_credentials
WHERE user_id = $1
ORDER BY created_at DESC
"""

_SELECT_EXISTING = """
SELECT id
FROM encrypted_credentials
WHERE user_id = $1 AND name = $2
"""

_SELECT_ENVELOPE = """
SELECT encrypted_value, salt, iv, auth_tag
FROM encrypted_credentials
WHERE user_id = $1 AND name = $2
"""

_INSERT_CREDENTIAL = """
INSERT INTO encrypted_credentials (user_id, name, encrypted_value, salt, iv, auth_tag)
VALUES ($1, $2, $3, $4, $5, $6)
"""

_UPDATE_CREDENTIAL = """
UPDATE encrypted_credentials
SET encrypted_value = $3, salt = $4, iv = $5, auth_tag = $6, updated_at = NOW()
WHERE user_id = $1 AND name = $2
"""

_DELETE_CREDENTIAL = """
DELETE FROM encrypted_credentials
WHERE user_id = $1 AND name = $2
"""


def is_valid_credential_name(name: str, max_length: int = MAX_NAME_LENGTH) -> bool:
    return bool(name) and len(name) <= max_length and bool(_NAME_RE.match(name))


def validate_credential_name(name: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Validate a credential name.

    Raises:
        ValueError: If name is empty, too long, or has characters outside
            letters, digits, underscore and hyphen.
    """
    if not is_valid_credential_name(name, max_length):
        raise ValueError(
            "Invalid credential name. Use only letters, numbers, "
            "underscore, and hyphen."
        )
    return name


def display_name(name: str) -> str:
    return DISPLAY_NAMES.get(name, name)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CredentialUpdate(BaseModel):
    """Credential value as submitted by a client.

    ``value`` is either a plaintext API key, encrypted server-side, or an
    envelope the browser already encrypted (``is_encrypted=True``).
    """

    model_config = ConfigDict(populate_by_name=True)

    value: Union[CredentialEnvelope, str]
    is_encrypted: bool = Field(default=False, alias="isEncrypted")

    @field_validator("value")
    @classmethod
    def validate_value(cls, v):
        if isinstance(v, str) and not 0 < len(v) <= MAX_VALUE_LENGTH:
            raise ValueError("Invalid API key value.")
        return v

    @model_validator(mode="after")
    def validate_encryption_flag(self) -> "CredentialUpdate":
        """An envelope is only accepted when flagged as encrypted.

        A string flagged as encrypted is still taken as a plaintext key.
        """
        if isinstance(self.value, CredentialEnvelope) and not self.is_encrypted:
            raise ValueError("Invalid credential value.")
        return self

    @property
    def envelope(self) -> Optional[CredentialEnvelope]:
        if isinstance(self.value, CredentialEnvelope):
            return self.value
        return None


class CredentialRequest(CredentialUpdate):
    """New credential: a name plus its value."""

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH, pattern=NAME_PATTERN)


class CredentialStore:
    """Encrypted credential storage for one application.

    Args:
        codec: Configured CredentialCodec.
        db_pool: asyncpg-compatible connection pool.
    """

    def __init__(self, codec: CredentialCodec, db_pool: Any):
        self._codec = codec
        self._db = db_pool

    def _check_limits(self, update: CredentialUpdate, name: Optional[str] = None) -> None:
        """Apply the configured name and value limits.

        Raises:
            ValueError: If the name or plaintext value exceeds the limits.
        """
        config = self._codec.config
        if name is not None:
            validate_credential_name(name, config.max_name_length)
        if update.envelope is None and len(update.value) > config.max_value_length:
            raise ValueError("Invalid API key value.")

    def _seal(
        self,
        user_id: str,
        update: CredentialUpdate,
        session_id: Optional[str],
    ) -> CredentialEnvelope:
        """Return the envelope to persist, encrypting plaintext values."""
        if update.envelope is not None:
            return update.envelope
        return self._codec.encrypt_for_user(update.value, user_id, session_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_credentials(self, user_id: str) -> list[dict]:
        """List a user's credentials without decrypting any value.

        Returns:
            List of dicts with ``id``, ``name``, ``display_name`` and
            ``connected_at``, newest first.
        """
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_USER_CREDENTIALS, user_id)
        return [
            {
                "id": row["id"],
                "name": row["name"],
                "display_name": display_name(row["name"]),
                "connected_at": row["created_at"],
            }
            for row in rows
        ]

    async def create_credential(
        self,
        user_id: str,
        request: CredentialRequest,
        session_id: Optional[str] = None,
    ) -> CredentialEnvelope:
        """Encrypt and store a new credential.

        Raises:
            CredentialExistsError: If the user already has a credential
                with this name.
            ConfigurationError: If the master secret is not configured.
        """
        self._check_limits(request, request.name)
        async with self._db.acquire() as conn:
            existing = await conn.fetchrow(_SELECT_EXISTING, user_id, request.name)
            if existing:
                raise CredentialExistsError(
                    "Credential with this name already exists"
                )
            envelope = self._seal(user_id, request, session_id)
            record = envelope.to_record()
            try:
                await conn.execute(
                    _INSERT_CREDENTIAL,
                    user_id,
                    request.name,
                    record["encrypted_value"],
                    record["salt"],
                    record["iv"],
                    record["auth_tag"],
                )
            except Exception as err:
                # unique (user_id, name) lost to a concurrent insert
                if getattr(err, "sqlstate", None) == _UNIQUE_VIOLATION:
                    raise CredentialExistsError(
                        "Credential with this name already exists"
                    ) from err
                raise
        logger.info("Credential stored: user=%s name=%s", user_id, request.name)
        return envelope

    async def find_credential(
        self,
        user_id: str,
        name: str,
        session_id: Optional[str] = None,
    ) -> Optional[str]:
        """Decrypt and return a credential, or None when it does not exist.

        Raises:
            DecryptionError: If the stored envelope is malformed or fails
                authentication.
        """
        if not is_valid_credential_name(name):
            return None
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_ENVELOPE, user_id, name)
        if not row:
            return None
        try:
            envelope = CredentialEnvelope.from_record(row)
        except MalformedEnvelopeError as err:
            logger.error(
                "Invalid credential data for user=%s name=%s: %s",
                user_id, name, err.reason,
            )
            raise
        return self._codec.decrypt_for_user(envelope, user_id, session_id)

    async def get_credential(
        self,
        user_id: str,
        name: str,
        session_id: Optional[str] = None,
    ) -> str:
        """Decrypt and return a credential.

        Raises:
            CredentialNotFoundError: If no such credential exists.
            DecryptionError: If the stored envelope cannot be decrypted.
        """
        value = await self.find_credential(user_id, name, session_id)
        if value is None:
            raise CredentialNotFoundError("Credential not found")
        return value

    async def update_credential(
        self,
        user_id: str,
        name: str,
        update: CredentialUpdate,
        session_id: Optional[str] = None,
    ) -> CredentialEnvelope:
        """Replace the stored value of an existing credential.

        Raises:
            CredentialNotFoundError: If no such credential exists.
            ConfigurationError: If the master secret is not configured.
        """
        if not is_valid_credential_name(name):
            raise CredentialNotFoundError("Credential not found")
        self._check_limits(update)
        async with self._db.acquire() as conn:
            existing = await conn.fetchrow(_SELECT_EXISTING, user_id, name)
            if not existing:
                raise CredentialNotFoundError("Credential not found")
            envelope = self._seal(user_id, update, session_id)
            record = envelope.to_record()
            await conn.execute(
                _UPDATE_CREDENTIAL,
                user_id,
                name,
                record["encrypted_value"],
                record["salt"],
                record["iv"],
                record["auth_tag"],
            )
        logger.info("Credential updated: user=%s name=%s", user_id, name)
        return envelope

    async def delete_credential(self, user_id: str, name: str) -> bool:
        """Delete a credential.

        Returns:
            True if a row was removed.
        """
        if not is_valid_credential_name(name):
            return False
        async with self._db.acquire() as conn:
            status = await conn.execute(_DELETE_CREDENTIAL, user_id, name)
        deleted = not str(status).endswith(" 0")
        logger.info(
            "Credential delete: user=%s name=%s deleted=%s", user_id, name, deleted,
        )
        return deleted
