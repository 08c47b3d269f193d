"""
Async HTTP client for the generation provider.

Talks to an OpenAI-compatible /chat/completions endpoint over httpx; no vendor
SDK. The client is stateless with respect to credentials: the key is passed
per call (the orchestrator resolves it) and sent only as a bearer header.

Non-2xx responses raise httpx.HTTPStatusError so the retry layer can classify
them by status code.
"""
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import httpx

from genrelay.core.logging import get_logger

logger = get_logger(__name__)

GENERATE_OPERATION = "generate"


class ProviderResponseError(ValueError):
    """The provider answered 2xx with a body we cannot use."""


class ProviderClient:
    """Async client for chat completion calls."""

    def __init__(
        self,
        api_base: str,
        model: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def _post(self, path: str, api_key: str, json_payload: Dict[str, Any]) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        url = f"{self.api_base}{path}"
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            return await client.post(url, headers=headers, json=json_payload)

    async def chat(
        self,
        api_key: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> Dict[str, Any]:
        """
        Call the chat completion endpoint.

        Args:
            api_key: Bearer credential for this call
            messages: OpenAI-style chat messages
            max_tokens: Max tokens for the completion
            temperature: Sampling temperature

        Returns:
            Raw JSON response from the API.

        Raises:
            httpx.HTTPStatusError on non-2xx responses, httpx.TransportError
            on connection failures.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        response = await self._post("/chat/completions", api_key, payload)
        if response.is_error:
            logger.warning(
                "provider_http_error",
                model=self.model,
                status=response.status_code,
            )
        response.raise_for_status()
        return response.json()

    async def generate(self, api_key: str, prompt: str, **kwargs: Any) -> str:
        """Single-turn generation returning the first choice's text."""
        data = await self.chat(api_key, [{"role": "user", "content": prompt}], **kwargs)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderResponseError("Provider response has no completion text") from exc


def make_generate_task(
    client: ProviderClient,
) -> Callable[[str, Mapping[str, Any]], Awaitable[str]]:
    """
    Adapt a ProviderClient to the orchestrator's remote task signature.

    The returned coroutine function reads ``params["prompt"]`` and forwards
    ``max_tokens`` / ``temperature`` when present.
    """

    async def remote_task(credential: str, params: Mapping[str, Any]) -> str:
        prompt = params.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("params['prompt'] must be a non-empty string")
        options = {k: params[k] for k in ("max_tokens", "temperature") if k in params}
        return await client.generate(credential, prompt, **options)

    return remote_task


_provider_client: Optional[ProviderClient] = None


def get_provider_client() -> ProviderClient:
    """Global provider client built from settings."""
    global _provider_client
    if _provider_client is None:
        from genrelay.core.config import get_settings

        settings = get_settings()
        _provider_client = ProviderClient(
            api_base=settings.api_base,
            model=settings.model,
            timeout_seconds=settings.timeout_seconds,
        )
    return _provider_client


def reset_provider_client() -> None:
    global _provider_client
    _provider_client = None
