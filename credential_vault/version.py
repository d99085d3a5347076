"""Credential Vault Meta information.
   Credential Vault protects user-supplied third-party API keys at rest.
"""
__title__ = 'credential_vault'
__description__ = (
   'Credential Vault derives per-user keys and stores third-party '
   'API keys as authenticated-encryption envelopes.'
)
__version__ = '0.1.0'
__license__ = 'Apache-2.0'
