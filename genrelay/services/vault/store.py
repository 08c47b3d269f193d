"""
Credential vault backed by a local SQLite file.

Table layout:

    secrets(
        provider          TEXT PRIMARY KEY,   -- validated charset, lower-case
        obfuscated_value  TEXT NOT NULL,      -- Base64 output of the transform
        created_at        INTEGER NOT NULL,   -- epoch millis
        scheme            TEXT NOT NULL       -- "xor" or "aesgcm"
    )

Callers only ever see decoded secret values, never rows. Decoded values live
in memory just long enough to hand them to the caller.
"""
import os
import re
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from genrelay.core.errors import InvalidCredentialError, VaultError
from genrelay.core.logging import get_logger
from genrelay.core.sanitize import masked_display
from genrelay.services.vault.transforms import (
    SecretTransform,
    XorObfuscator,
    build_transform,
)

logger = get_logger(__name__)

PROVIDER_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS secrets (
    provider         TEXT PRIMARY KEY,
    obfuscated_value TEXT NOT NULL,
    created_at       INTEGER NOT NULL,
    scheme           TEXT NOT NULL DEFAULT 'xor'
)
"""


@dataclass(frozen=True)
class CredentialInfo:
    """Non-secret metadata about a stored credential."""
    provider: str
    created_at: int
    scheme: str


def validate_provider(provider: str) -> str:
    """
    Validate and normalize a provider name.

    Returns:
        The lower-cased provider name

    Raises:
        InvalidCredentialError if empty or outside [A-Za-z0-9_-]
    """
    if not isinstance(provider, str) or not PROVIDER_PATTERN.fullmatch(provider):
        raise InvalidCredentialError(
            "Invalid provider name. Use letters, digits, hyphens and underscores only."
        )
    return provider.lower()


class CredentialVault:
    """Persists provider credentials with a reversible transform."""

    def __init__(
        self,
        path: str = ":memory:",
        transform: Optional[SecretTransform] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = path
        self._transform = transform or XorObfuscator()
        self._readers: Dict[str, SecretTransform] = {
            "xor": XorObfuscator(),
            self._transform.scheme: self._transform,
        }
        self._clock = clock
        self._lock = threading.Lock()

        if path != ":memory:":
            Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            path = str(Path(path).expanduser())
        self._conn = sqlite3.connect(path, check_same_thread=False)
        with self._conn:
            self._conn.execute(_SCHEMA)
        if path != ":memory:":
            try:
                os.chmod(path, 0o600)
            except OSError as e:
                logger.warning("vault_chmod_failed", path=path, error=str(e))

    @property
    def scheme(self) -> str:
        return self._transform.scheme

    def set_credential(self, provider: str, secret: str) -> None:
        """
        Store (or overwrite) the credential for a provider.

        Raises:
            InvalidCredentialError if the provider name or secret is invalid
        """
        key = validate_provider(provider)
        if not isinstance(secret, str) or not secret.strip():
            raise InvalidCredentialError("API key cannot be empty.")

        stored = self._transform.encode(secret)
        created_at = int(self._clock() * 1000)
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO secrets (provider, obfuscated_value, created_at, scheme)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(provider) DO UPDATE SET
                    obfuscated_value = excluded.obfuscated_value,
                    created_at = excluded.created_at,
                    scheme = excluded.scheme
                """,
                (key, stored, created_at, self._transform.scheme),
            )
        logger.info("vault_credential_stored", provider=key, scheme=self._transform.scheme)

    def get_credential(self, provider: str) -> Optional[str]:
        """
        Read and decode the credential for a provider.

        Returns:
            The secret, or None when absent or undecodable
        """
        try:
            key = validate_provider(provider)
        except InvalidCredentialError:
            return None

        with self._lock:
            row = self._conn.execute(
                "SELECT obfuscated_value, scheme FROM secrets WHERE provider = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None

        stored, scheme = row
        reader = self._readers.get(scheme)
        try:
            if reader is None:
                raise VaultError(f"No transform available for scheme '{scheme}'")
            return reader.decode(stored)
        except VaultError as e:
            logger.warning(
                "vault_decode_failed",
                provider=key,
                scheme=scheme,
                error=str(e),
            )
            return None

    def delete_credential(self, provider: str) -> bool:
        """Remove a credential. Returns whether one existed."""
        try:
            key = validate_provider(provider)
        except InvalidCredentialError:
            return False
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM secrets WHERE provider = ?", (key,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("vault_credential_deleted", provider=key)
        return deleted

    def list_providers(self) -> List[str]:
        """Providers that have a stored credential. Never returns secret material."""
        with self._lock:
            rows = self._conn.execute("SELECT provider FROM secrets ORDER BY provider").fetchall()
        return [row[0] for row in rows]

    def get_info(self, provider: str) -> Optional[CredentialInfo]:
        try:
            key = validate_provider(provider)
        except InvalidCredentialError:
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT provider, created_at, scheme FROM secrets WHERE provider = ?",
                (key,),
            ).fetchone()
        return CredentialInfo(*row) if row else None

    @staticmethod
    def masked_display(secret: str) -> str:
        return masked_display(secret)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    """Process-wide vault built from settings."""
    global _vault
    if _vault is None:
        from genrelay.core.config import get_settings

        settings = get_settings()
        _vault = CredentialVault(
            path=settings.vault_path,
            transform=build_transform(settings.vault_passphrase),
        )
    return _vault


def reset_vault() -> None:
    global _vault
    if _vault is not None:
        _vault.close()
    _vault = None
