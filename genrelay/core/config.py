"""
Runtime configuration.

Settings are read from environment variables, optionally seeded from a .env
file in the working directory (python-dotenv). Nothing here is a secret except
GENRELAY_VAULT_PASSPHRASE, which is only handed to the vault transform.

Environment configuration:
- LOG_LEVEL / LOG_JSON: logging level and JSON output toggle
- GENRELAY_VAULT_PATH: SQLite file backing the credential vault
- GENRELAY_VAULT_PASSPHRASE: enables AES-GCM encryption of stored credentials
- GENRELAY_FALLBACK_ENV_VAR: variable holding the fallback credential (API_KEY)
- GENRELAY_DEFAULT_PROVIDER: provider name used when a call does not name one
- GENRELAY_CACHE_MAX_ENTRIES / GENRELAY_CACHE_TTL_SECONDS
- GENRELAY_RETRY_MAX_ATTEMPTS / GENRELAY_RETRY_INITIAL_DELAY_SECONDS /
  GENRELAY_RETRY_MAX_DELAY_SECONDS / GENRELAY_RETRY_BACKOFF_MULTIPLIER /
  GENRELAY_RETRY_JITTER
- GENRELAY_USAGE_MAX_RECORDS: size of the in-memory usage log
- GENRELAY_API_BASE / GENRELAY_MODEL / GENRELAY_TIMEOUT_SECONDS: provider client.
  The defaults match the default provider: the Gemini OpenAI-compatible
  endpoint with gemini-2.0-flash. Point both at another provider together.
- OTEL_EXPORTER_OTLP_ENDPOINT: optional trace export endpoint
"""
import os
from pathlib import Path
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError

T = TypeVar("T")

DEFAULT_VAULT_PATH = Path.home() / ".genrelay" / "vault.db"

# OpenAI-compatible endpoint of the default provider
GEMINI_OPENAI_BASE = "https://generativelanguage.googleapis.com/v1beta/openai"


class Settings(BaseModel):
    """Validated process settings."""

    log_level: str = "INFO"
    log_json: bool = True
    service_name: str = "genrelay"

    vault_path: str = str(DEFAULT_VAULT_PATH)
    vault_passphrase: Optional[str] = Field(default=None, repr=False)
    fallback_env_var: str = "API_KEY"
    default_provider: str = "gemini"

    cache_max_entries: int = Field(100, ge=1)
    cache_ttl_seconds: float = Field(300.0, gt=0)

    retry_max_attempts: int = Field(3, ge=1)
    retry_initial_delay_seconds: float = Field(1.0, ge=0)
    retry_max_delay_seconds: float = Field(10.0, ge=0)
    retry_backoff_multiplier: float = Field(2.0, ge=1.0)
    retry_jitter: float = Field(0.3, ge=0.0, le=1.0)

    usage_max_records: int = Field(1000, ge=1)

    api_base: str = GEMINI_OPENAI_BASE
    model: str = "gemini-2.0-flash"
    timeout_seconds: float = Field(30.0, gt=0)

    otlp_endpoint: Optional[str] = None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _read(environ: Mapping[str, str], name: str, cast: Callable[[str], T]) -> Optional[T]:
    raw = environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r}",
            hint=f"Check the {name} environment variable.",
        ) from exc


# Settings field -> (environment variable, parser)
_ENV_FIELDS = {
    "log_level": ("LOG_LEVEL", str),
    "log_json": ("LOG_JSON", _parse_bool),
    "service_name": ("GENRELAY_SERVICE_NAME", str),
    "vault_path": ("GENRELAY_VAULT_PATH", str),
    "vault_passphrase": ("GENRELAY_VAULT_PASSPHRASE", str),
    "fallback_env_var": ("GENRELAY_FALLBACK_ENV_VAR", str),
    "default_provider": ("GENRELAY_DEFAULT_PROVIDER", str),
    "cache_max_entries": ("GENRELAY_CACHE_MAX_ENTRIES", int),
    "cache_ttl_seconds": ("GENRELAY_CACHE_TTL_SECONDS", float),
    "retry_max_attempts": ("GENRELAY_RETRY_MAX_ATTEMPTS", int),
    "retry_initial_delay_seconds": ("GENRELAY_RETRY_INITIAL_DELAY_SECONDS", float),
    "retry_max_delay_seconds": ("GENRELAY_RETRY_MAX_DELAY_SECONDS", float),
    "retry_backoff_multiplier": ("GENRELAY_RETRY_BACKOFF_MULTIPLIER", float),
    "retry_jitter": ("GENRELAY_RETRY_JITTER", float),
    "usage_max_records": ("GENRELAY_USAGE_MAX_RECORDS", int),
    "api_base": ("GENRELAY_API_BASE", str),
    "model": ("GENRELAY_MODEL", str),
    "timeout_seconds": ("GENRELAY_TIMEOUT_SECONDS", float),
    "otlp_endpoint": ("OTEL_EXPORTER_OTLP_ENDPOINT", str),
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from an environment mapping.

    Raises:
        ConfigurationError if a variable cannot be parsed or fails validation.
    """
    if environ is None:
        environ = os.environ

    values = {}
    for field_name, (env_name, cast) in _ENV_FIELDS.items():
        value = _read(environ, env_name, cast)
        if value is not None:
            values[field_name] = value

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid genrelay configuration: {exc.errors()[0].get('loc')}",
            hint="Check the GENRELAY_* environment variables.",
        ) from exc


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Global settings accessor. Loads .env from the working directory once."""
    global _settings
    if _settings is None:
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests, reconfiguration)."""
    global _settings
    _settings = None
