"""
CredentialCodec — configured facade over the vault crypto primitives.

Holds a VaultConfig, never a key: every call re-derives the user key and
drops it once the envelope is built or opened.
"""
import logging
from typing import Optional

from ..exceptions import DecryptionError
from .config import VaultConfig
from .crypto import CredentialEnvelope, derive_key, encrypt, decrypt

logger = logging.getLogger("credential_vault")


class CredentialCodec:
    """Encrypts and decrypts third-party API keys for a configured service.

    Args:
        config: Vault configuration carrying the master secret.
    """

    def __init__(self, config: VaultConfig):
        self._config = config

    @property
    def config(self) -> VaultConfig:
        return self._config

    def derive_key(self, user_id: str, session_id: Optional[str] = None) -> bytes:
        """Derive the user key.

        When no session id is available the user id stands in for it, which
        makes the key per-user rather than per-session.

        Raises:
            ConfigurationError: If the master secret is not configured.
        """
        if session_id is None:
            logger.debug(
                "No session id for user=%s, using user id as stand-in", user_id
            )
            session_id = user_id
        return derive_key(user_id, session_id, self._config.require_secret())

    def encrypt(self, plaintext: str, key: bytes) -> CredentialEnvelope:
        return encrypt(
            plaintext,
            key,
            iterations=self._config.kdf_iterations,
            max_length=self._config.max_value_length,
        )

    def dump_envelope(self, envelope: CredentialEnvelope) -> bytes:
        """JSON payload carrying this codec's KDF iteration count."""
        return envelope.to_json(iterations=self._config.kdf_iterations)

    def decrypt(self, envelope: CredentialEnvelope, key: bytes) -> str:
        try:
            return decrypt(envelope, key, iterations=self._config.kdf_iterations)
        except DecryptionError as err:
            logger.warning(
                "Credential decryption failed (%s): %s",
                type(err).__name__, err.reason,
            )
            raise

    def encrypt_for_user(
        self,
        plaintext: str,
        user_id: str,
        session_id: Optional[str] = None,
    ) -> CredentialEnvelope:
        """Derive the user key and encrypt plaintext with it."""
        key = self.derive_key(user_id, session_id)
        return self.encrypt(plaintext, key)

    def decrypt_for_user(
        self,
        envelope: CredentialEnvelope,
        user_id: str,
        session_id: Optional[str] = None,
    ) -> str:
        """Derive the user key and decrypt envelope with it."""
        key = self.derive_key(user_id, session_id)
        return self.decrypt(envelope, key)
