"""
Tests for the command-line interface.

The vault lives in a per-test temporary file (see conftest) and the provider
client is replaced with a stub, so no network calls are made.
"""
import json

import httpx
import pytest

from genrelay import cli
from genrelay.services.vault import get_vault

SECRET = "AIzaSyABCDEFGH1234"


class StubProviderClient:
    def __init__(self, text="OK", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate(self, api_key, prompt, **kwargs):
        self.calls.append((api_key, prompt))
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def stub_client(monkeypatch):
    client = StubProviderClient(text="model says hi")
    monkeypatch.setattr(cli, "get_provider_client", lambda: client)
    return client


def test_set_key_prints_masked_key_only(capsys):
    assert cli.main(["set-key", "Gemini", SECRET]) == 0
    out = capsys.readouterr().out
    assert "AIza...1234" in out
    assert SECRET not in out
    assert get_vault().get_credential("gemini") == SECRET


def test_set_key_rejects_invalid_provider(capsys):
    assert cli.main(["set-key", "bad/provider", SECRET]) == 1
    assert "Invalid provider name" in capsys.readouterr().err


def test_list_keys(capsys):
    assert cli.main(["list-keys"]) == 0
    assert "No API keys configured" in capsys.readouterr().out

    cli.main(["set-key", "openai", "sk-abcdefghijklmnop"])
    cli.main(["set-key", "gemini", SECRET])
    capsys.readouterr()

    assert cli.main(["list-keys"]) == 0
    out = capsys.readouterr().out
    assert "gemini: AIza...1234" in out
    assert "openai: sk-a...mnop" in out
    assert SECRET not in out


def test_delete_key(capsys):
    cli.main(["set-key", "gemini", SECRET])
    assert cli.main(["delete-key", "gemini"]) == 0
    assert cli.main(["delete-key", "gemini"]) == 1
    assert get_vault().get_credential("gemini") is None


def test_test_key_success(capsys, stub_client):
    cli.main(["set-key", "gemini", SECRET])
    capsys.readouterr()

    assert cli.main(["test-key", "gemini"]) == 0
    out = capsys.readouterr().out
    assert "is valid" in out
    assert SECRET not in out
    assert stub_client.calls[0][0] == SECRET


def test_test_key_without_stored_key(capsys, stub_client):
    assert cli.main(["test-key", "gemini"]) == 1
    assert "set-key gemini" in capsys.readouterr().err
    assert stub_client.calls == []


def test_test_key_remote_rejection(capsys, monkeypatch):
    request = httpx.Request("POST", "https://api.example.test")
    rejected = httpx.HTTPStatusError(
        f"401 for key {SECRET}",
        request=request,
        response=httpx.Response(401, request=request),
    )
    monkeypatch.setattr(cli, "get_provider_client", lambda: StubProviderClient(error=rejected))
    cli.main(["set-key", "gemini", SECRET])
    capsys.readouterr()

    assert cli.main(["test-key", "gemini"]) == 1
    err = capsys.readouterr().err
    assert "API key test failed" in err
    assert SECRET not in err


def test_exec_runs_through_cache(capsys, stub_client):
    cli.main(["set-key", "gemini", SECRET])
    capsys.readouterr()

    assert cli.main(["exec", "Explain", "caching"]) == 0
    first = capsys.readouterr()
    assert first.out.strip() == "model says hi"
    assert "(cached)" not in first.err

    assert cli.main(["exec", "explain   caching"]) == 0
    second = capsys.readouterr()
    assert second.out.strip() == "model says hi"
    assert "(cached)" in second.err
    assert len(stub_client.calls) == 1
    assert stub_client.calls[0] == (SECRET, "Explain caching")


def test_exec_uses_environment_fallback(capsys, stub_client, monkeypatch):
    monkeypatch.setenv("API_KEY", "env-key-0123456789")
    assert cli.main(["exec", "hello"]) == 0
    assert stub_client.calls[0][0] == "env-key-0123456789"


def test_exec_without_credential(capsys, stub_client):
    assert cli.main(["exec", "hello"]) == 1
    err = capsys.readouterr().err
    assert "No API key configured" in err
    assert stub_client.calls == []


def test_usage_reports_session_totals(capsys, stub_client):
    cli.main(["set-key", "gemini", SECRET])
    cli.main(["exec", "hello"])
    cli.main(["exec", "hello"])
    capsys.readouterr()

    assert cli.main(["usage"]) == 0
    totals = json.loads(capsys.readouterr().out)
    assert totals["request_count"] == 2
    assert totals["cache_hits"] == 1


def test_exec_show_usage_prints_totals_for_the_call(capsys, stub_client):
    cli.main(["set-key", "gemini", SECRET])
    capsys.readouterr()

    assert cli.main(["exec", "--show-usage", "hello"]) == 0
    captured = capsys.readouterr()
    assert captured.out.strip() == "model says hi"
    totals = json.loads(captured.err[captured.err.index("{"):])
    assert totals["request_count"] == 1
    assert totals["cache_hits"] == 0
    assert totals["total_input_tokens"] > 0


def test_missing_command_exits():
    with pytest.raises(SystemExit):
        cli.main([])
