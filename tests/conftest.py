"""
Shared fixtures.

Every test starts with fresh process-wide singletons and an environment that
cannot reach a real vault file or a real credential.
"""
import pytest

from genrelay.core.cache import reset_response_cache
from genrelay.core.config import reset_settings
from genrelay.services.orchestration import reset_orchestrator
from genrelay.services.provider import reset_provider_client
from genrelay.services.usage import reset_usage_meter
from genrelay.services.vault import reset_vault


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep stand-in that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


def _reset_singletons():
    reset_orchestrator()
    reset_provider_client()
    reset_usage_meter()
    reset_vault()
    reset_response_cache()
    reset_settings()


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Point settings at a temporary vault and clear credential variables."""
    for name in ("API_KEY", "GENRELAY_VAULT_PASSPHRASE", "OTEL_EXPORTER_OTLP_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GENRELAY_VAULT_PATH", str(tmp_path / "vault.db"))
    monkeypatch.chdir(tmp_path)
    _reset_singletons()
    yield
    _reset_singletons()
