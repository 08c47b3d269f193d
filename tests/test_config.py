"""
Unit tests for settings loading.
"""
import pytest

from genrelay.core.config import DEFAULT_VAULT_PATH, get_settings, load_settings, reset_settings
from genrelay.core.errors import ConfigurationError


def test_defaults():
    settings = load_settings({})
    assert settings.cache_max_entries == 100
    assert settings.cache_ttl_seconds == 300
    assert settings.retry_max_attempts == 3
    assert settings.retry_initial_delay_seconds == 1.0
    assert settings.retry_max_delay_seconds == 10.0
    assert settings.retry_backoff_multiplier == 2.0
    assert settings.usage_max_records == 1000
    assert settings.fallback_env_var == "API_KEY"
    assert settings.default_provider == "gemini"
    assert settings.api_base == "https://generativelanguage.googleapis.com/v1beta/openai"
    assert settings.model == "gemini-2.0-flash"
    assert settings.vault_path == str(DEFAULT_VAULT_PATH)
    assert settings.vault_passphrase is None


def test_environment_overrides():
    settings = load_settings(
        {
            "LOG_LEVEL": "DEBUG",
            "LOG_JSON": "false",
            "GENRELAY_CACHE_MAX_ENTRIES": "10",
            "GENRELAY_CACHE_TTL_SECONDS": "2.5",
            "GENRELAY_RETRY_MAX_ATTEMPTS": "5",
            "GENRELAY_DEFAULT_PROVIDER": "openai",
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://localhost:4317",
        }
    )
    assert settings.log_level == "DEBUG"
    assert settings.log_json is False
    assert settings.cache_max_entries == 10
    assert settings.cache_ttl_seconds == 2.5
    assert settings.retry_max_attempts == 5
    assert settings.default_provider == "openai"
    assert settings.otlp_endpoint == "http://localhost:4317"


def test_empty_values_are_ignored():
    assert load_settings({"GENRELAY_CACHE_MAX_ENTRIES": ""}).cache_max_entries == 100


def test_unparseable_value_raises_configuration_error():
    with pytest.raises(ConfigurationError) as exc_info:
        load_settings({"GENRELAY_CACHE_MAX_ENTRIES": "lots"})
    assert "GENRELAY_CACHE_MAX_ENTRIES" in exc_info.value.user_message


def test_out_of_range_value_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        load_settings({"GENRELAY_RETRY_JITTER": "2.0"})
    with pytest.raises(ConfigurationError):
        load_settings({"GENRELAY_RETRY_MAX_ATTEMPTS": "0"})


def test_passphrase_is_not_in_repr():
    settings = load_settings({"GENRELAY_VAULT_PASSPHRASE": "hunter2-hunter2"})
    assert settings.vault_passphrase == "hunter2-hunter2"
    assert "hunter2" not in repr(settings)


def test_get_settings_reads_dotenv(tmp_path, monkeypatch):
    # Register the variable with monkeypatch so teardown removes what .env sets
    monkeypatch.setenv("GENRELAY_MODEL", "placeholder")
    monkeypatch.delenv("GENRELAY_MODEL")
    (tmp_path / ".env").write_text("GENRELAY_MODEL=from-dotenv\n")
    reset_settings()

    settings = get_settings()
    assert settings.model == "from-dotenv"
    assert get_settings() is settings
