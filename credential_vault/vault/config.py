"""
Vault Configuration — Master secret loading and validated settings.

Reads settings from environment variables:
    ENCRYPTION_SECRET = <application master secret>
    VAULT_KDF_ITERATIONS = <integer, optional>

A missing master secret is not an error at load time; it surfaces as
ConfigurationError the first time a key is derived.

Security Note:
    Never log the master secret. SecretStr keeps it out of repr() output.
"""
import os
import base64
import secrets
import logging
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from ..exceptions import ConfigurationError

logger = logging.getLogger("credential_vault")

DEFAULT_KDF_ITERATIONS = 100000
MAX_VALUE_LENGTH = 1000
MAX_NAME_LENGTH = 50


def generate_master_secret() -> str:
    """Operator helper: a fresh value suitable for ENCRYPTION_SECRET.

    Draws 32 bytes from the secrets module; the base64 text is what goes
    into the environment.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    master_secret: Optional[SecretStr] = None
    kdf_iterations: int = Field(default=DEFAULT_KDF_ITERATIONS, ge=1000)
    # request models cap both limits; config can only tighten them
    max_value_length: int = Field(default=MAX_VALUE_LENGTH, ge=1, le=MAX_VALUE_LENGTH)
    max_name_length: int = Field(default=MAX_NAME_LENGTH, ge=1, le=MAX_NAME_LENGTH)

    @field_validator("master_secret", mode="before")
    @classmethod
    def empty_secret_is_missing(cls, v):
        """Treat an empty string as an absent secret."""
        if v is None:
            return None
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        return v or None

    def require_secret(self) -> str:
        """Return the master secret.

        Raises:
            ConfigurationError: If no master secret is configured.
        """
        if self.master_secret is None:
            raise ConfigurationError(
                "ENCRYPTION_SECRET not configured"
            )
        return self.master_secret.get_secret_value()

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Build the config from ENCRYPTION_SECRET and VAULT_KDF_ITERATIONS.

        An unset secret only logs a warning here; derive_key is where it
        becomes a ConfigurationError.
        """
        secret = os.environ.get("ENCRYPTION_SECRET")
        if not secret:
            logger.warning("ENCRYPTION_SECRET is not set; credential encryption is disabled")
        iterations = int(
            os.environ.get("VAULT_KDF_ITERATIONS", DEFAULT_KDF_ITERATIONS)
        )
        return cls(master_secret=secret, kdf_iterations=iterations)
