"""Local credential vault: storage, transforms and resolution."""

from .resolver import CredentialResolver, ResolvedCredential
from .store import (
    CredentialInfo,
    CredentialVault,
    get_vault,
    reset_vault,
    validate_provider,
)
from .transforms import AesGcmTransform, XorObfuscator, build_transform

__all__ = [
    "AesGcmTransform",
    "CredentialInfo",
    "CredentialResolver",
    "CredentialVault",
    "ResolvedCredential",
    "XorObfuscator",
    "build_transform",
    "get_vault",
    "reset_vault",
    "validate_provider",
]
