"""Credential Vault.

Per-user key derivation and AES-GCM envelopes for stored API keys.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    ConfigurationError,
    DecryptionError,
    MalformedEnvelopeError,
    IntegrityError,
    CredentialExistsError,
    CredentialNotFoundError,
)
from .vault import (
    CredentialCodec,
    CredentialEnvelope,
    CredentialStore,
    CredentialRequest,
    CredentialUpdate,
    VaultConfig,
)

__all__ = (
    "__version__",
    "VaultError",
    "ConfigurationError",
    "DecryptionError",
    "MalformedEnvelopeError",
    "IntegrityError",
    "CredentialExistsError",
    "CredentialNotFoundError",
    "CredentialCodec",
    "CredentialEnvelope",
    "CredentialStore",
    "CredentialRequest",
    "CredentialUpdate",
    "VaultConfig",
)
