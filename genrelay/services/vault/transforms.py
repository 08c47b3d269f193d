"""
Reversible transforms applied to secrets before they are stored.

Two schemes are supported:

- "xor": obfuscation. UTF-8 bytes XOR a repeating keystream derived from a
  fixed application passphrase, Base64-encoded. This hides values from casual
  inspection (screenshots, a quick look at the database) and nothing more:
  anyone holding this source can reverse it.
- "aesgcm": AES-256-GCM with a key derived from a user-supplied passphrase
  (Scrypt, per-record salt). Stored as Base64(salt || nonce || ciphertext+tag).

Both expose the same encode/decode pair so the vault contract does not change
with the scheme.
"""
import base64
import binascii
import secrets as _secrets
from typing import Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from genrelay.core.errors import VaultError
from genrelay.core.logging import get_logger

logger = get_logger(__name__)

# Application-specific, intentionally not secret.
APP_OBFUSCATION_SEED = "genrelay-credential-vault-v1"

SALT_BYTES = 16
NONCE_BYTES = 12
TAG_BYTES = 16


class SecretTransform(Protocol):
    """Reversible secret encoding used by the vault."""
    scheme: str

    def encode(self, plaintext: str) -> str: ...

    def decode(self, stored: str) -> str: ...


class XorObfuscator:
    """XOR-with-passphrase obfuscation, Base64 for storage."""

    scheme = "xor"

    def __init__(self, passphrase: str = APP_OBFUSCATION_SEED):
        if not passphrase:
            raise ValueError("Obfuscation passphrase must be non-empty")
        self._keystream = passphrase.encode("utf-8")

    def _xor(self, data: bytes) -> bytes:
        key = self._keystream
        return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))

    def encode(self, plaintext: str) -> str:
        return base64.b64encode(self._xor(plaintext.encode("utf-8"))).decode("ascii")

    def decode(self, stored: str) -> str:
        try:
            raw = base64.b64decode(stored.encode("ascii"), validate=True)
            return self._xor(raw).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError):
            # Never attach partial plaintext to the error
            raise VaultError("Stored credential could not be deobfuscated") from None


class AesGcmTransform:
    """AES-256-GCM keyed by a passphrase through Scrypt."""

    scheme = "aesgcm"

    def __init__(self, passphrase: str, n: int = 2 ** 14, r: int = 8, p: int = 1):
        if not passphrase:
            raise ValueError("Encryption passphrase must be non-empty")
        self._passphrase = passphrase.encode("utf-8")
        self._n = n
        self._r = r
        self._p = p

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = Scrypt(salt=salt, length=32, n=self._n, r=self._r, p=self._p)
        return kdf.derive(self._passphrase)

    def encode(self, plaintext: str) -> str:
        salt = _secrets.token_bytes(SALT_BYTES)
        nonce = _secrets.token_bytes(NONCE_BYTES)
        ciphertext = AESGCM(self._derive_key(salt)).encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(salt + nonce + ciphertext).decode("ascii")

    def decode(self, stored: str) -> str:
        try:
            raw = base64.b64decode(stored.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeError, ValueError):
            raise VaultError("Stored credential is not valid Base64") from None

        if len(raw) < SALT_BYTES + NONCE_BYTES + TAG_BYTES:
            raise VaultError("Stored credential is too short")

        salt = raw[:SALT_BYTES]
        nonce = raw[SALT_BYTES:SALT_BYTES + NONCE_BYTES]
        ciphertext = raw[SALT_BYTES + NONCE_BYTES:]
        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(nonce, ciphertext, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeError):
            raise VaultError("Stored credential failed authentication (wrong passphrase or tampered)") from None


def build_transform(passphrase: Optional[str] = None) -> SecretTransform:
    """
    Pick the transform for new records.

    With a passphrase, secrets are encrypted; without one they fall back to
    obfuscation and a warning is logged.
    """
    if passphrase:
        return AesGcmTransform(passphrase)
    logger.warning(
        "vault_obfuscation_only",
        message="GENRELAY_VAULT_PASSPHRASE is not set; stored credentials are obfuscated, not encrypted",
    )
    return XorObfuscator()
