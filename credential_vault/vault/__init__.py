"""Credential Vault — Authenticated encryption of third-party API keys at rest.

Security Note (Threat Model):
    User keys are never persisted; they are re-derived from
    (user_id, session_id, master secret) on every call. Anyone holding the
    master secret and a user id can therefore derive that user's key.
    While no real session id is wired in, the user id stands in for it and
    keys are per-user rather than per-session.
"""

from .codec import CredentialCodec
from .config import VaultConfig, generate_master_secret
from .crypto import CredentialEnvelope, derive_key, encrypt, decrypt
from .store import CredentialStore, CredentialRequest, CredentialUpdate

__all__ = [
    "CredentialCodec",
    "CredentialEnvelope",
    "CredentialStore",
    "CredentialRequest",
    "CredentialUpdate",
    "VaultConfig",
    "generate_master_secret",
    "derive_key",
    "encrypt",
    "decrypt",
]
