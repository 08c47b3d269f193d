"""
Credential resolution for remote calls.

Priority:
1. Vault-stored credential for the provider
2. Process-level fallback variable (API_KEY by default)

If neither resolves, fail fast with ConfigurationError before any network
attempt.
"""
import os
import sqlite3
from dataclasses import dataclass, field
from typing import Mapping, Optional

from genrelay.core.errors import ConfigurationError
from genrelay.core.logging import get_logger
from genrelay.core.metrics import record_credential_resolution
from genrelay.services.vault.store import CredentialVault

logger = get_logger(__name__)

SOURCE_VAULT = "vault"
SOURCE_ENVIRONMENT = "environment"


@dataclass(frozen=True)
class ResolvedCredential:
    """A credential value and where it came from."""
    value: str = field(repr=False)
    source: str
    provider: str


class CredentialResolver:
    """Resolves credentials by priority: vault, then environment."""

    def __init__(
        self,
        vault: CredentialVault,
        environ: Optional[Mapping[str, str]] = None,
        fallback_env_var: str = "API_KEY",
    ):
        self.vault = vault
        self._environ = environ
        self.fallback_env_var = fallback_env_var

    def resolve(self, provider: str) -> ResolvedCredential:
        """
        Resolve the credential for a provider.

        Raises:
            ConfigurationError if no credential is available
        """
        try:
            stored = self.vault.get_credential(provider)
        except sqlite3.Error as e:
            # Unreadable vault storage falls through to the environment
            logger.error("vault_read_failed", provider=provider, error=str(e), error_type=type(e).__name__)
            stored = None

        if stored:
            record_credential_resolution(SOURCE_VAULT)
            logger.debug("credential_resolved", provider=provider, source=SOURCE_VAULT)
            return ResolvedCredential(value=stored, source=SOURCE_VAULT, provider=provider)

        environ = self._environ if self._environ is not None else os.environ
        fallback = environ.get(self.fallback_env_var)
        if fallback and fallback.strip():
            record_credential_resolution(SOURCE_ENVIRONMENT)
            logger.debug("credential_resolved", provider=provider, source=SOURCE_ENVIRONMENT)
            return ResolvedCredential(value=fallback.strip(), source=SOURCE_ENVIRONMENT, provider=provider)

        record_credential_resolution("missing")
        logger.warning("credential_missing", provider=provider, fallback_env_var=self.fallback_env_var)
        raise ConfigurationError(
            f"No API key configured for provider '{provider}'.",
            hint=(
                f"Run 'genrelay set-key {provider} <key>' or set the "
                f"{self.fallback_env_var} environment variable."
            ),
        )
