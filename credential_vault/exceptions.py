"""Credential Vault exceptions.

Every decryption failure shares the same public message so callers cannot
tell a tampered envelope from a wrong key. The concrete cause is kept on
``reason`` for internal logging only.
"""


class VaultError(Exception):
    """Base class for Credential Vault errors."""


class ConfigurationError(VaultError, RuntimeError):
    """Master secret is missing. Fatal server misconfiguration."""


class DecryptionError(VaultError):
    """Generic decryption failure."""

    message = "Decryption failed"

    def __init__(self, reason: str = ""):
        super().__init__(self.message)
        self.reason = reason


class MalformedEnvelopeError(DecryptionError):
    """Stored envelope is missing fields or holds invalid values."""


class IntegrityError(DecryptionError):
    """Authentication tag did not verify (tampering, corruption or wrong key)."""


class CredentialExistsError(VaultError):
    """A credential with the same (user, name) is already stored."""


class CredentialNotFoundError(VaultError, KeyError):
    """No credential stored under the requested (user, name)."""

    def __str__(self) -> str:
        return Exception.__str__(self)
