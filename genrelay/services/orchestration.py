"""
Orchestration layer for remote generation calls.

invoke() composes the components around one remote task:
1. Fingerprint the request (operation name + normalized params)
2. Cache-first: a live entry short-circuits the call (usage recorded as a hit)
3. Resolve the credential (vault, then environment); fail fast if missing
4. Run the remote task under the retry policy
5. On success: record usage, write the cache (if cacheable), return
6. On failure: propagate the classified error; nothing is cached

The cache, usage meter and vault are advisory. A fault in any of them is
logged and the call proceeds as if it missed. Only credential absence and
remote failures reach the caller.

Concurrent identical requests are not deduplicated unless the caller opts in
with InvokeOptions(dedupe_in_flight=True), in which case callers sharing a
fingerprint await a single in-flight task.
"""
import asyncio
import functools
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from genrelay.core.cache import ResponseCache, get_response_cache
from genrelay.core.errors import ConfigurationError, RemoteServiceError, UsageTrackingError
from genrelay.core.fingerprint import fingerprint
from genrelay.core.logging import (
    generate_request_id,
    get_logger,
    set_fingerprint,
    set_provider,
    set_request_id,
)
from genrelay.core.metrics import record_remote_request
from genrelay.core.retry import RetryExecutor, RetryPolicy
from genrelay.core.tracing import get_tracer, record_exception
from genrelay.services.usage import DEFAULT_PRICING, UsageMeter, UsageRecord, get_usage_meter
from genrelay.services.usage.meter import DEFAULT_MODEL, PricingTable
from genrelay.services.vault import CredentialResolver, get_vault

logger = get_logger(__name__)

RemoteTask = Callable[[str, Mapping[str, Any]], Awaitable[Any]]


@dataclass
class InvokeOptions:
    """Per-call options for Orchestrator.invoke()."""
    cacheable: bool = True
    ttl_seconds: Optional[float] = None
    retry_policy: Optional[RetryPolicy] = None
    provider: Optional[str] = None
    model: str = DEFAULT_MODEL
    request_id: Optional[str] = None
    dedupe_in_flight: bool = False
    timeout_seconds: Optional[float] = None


@dataclass
class InvokeResult:
    """Outcome of a successful invoke()."""
    value: Any
    from_cache: bool
    fingerprint: str
    usage: Optional[UsageRecord] = None
    attempts: int = 0
    deduplicated: bool = False


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _input_text(params: Mapping[str, Any]) -> str:
    prompt = params.get("prompt") if isinstance(params, Mapping) else None
    if isinstance(prompt, str):
        return prompt
    return _as_text(dict(params) if isinstance(params, Mapping) else params)


class Orchestrator:
    """
    Cache-first, retrying, metered invocation of remote tasks.

    Each collaborator guards its own state. The orchestrator's only lock
    covers the in-flight map, and no lock is held across the remote await.
    """

    def __init__(
        self,
        cache: ResponseCache,
        resolver: CredentialResolver,
        executor: Optional[RetryExecutor] = None,
        meter: Optional[UsageMeter] = None,
        pricing_table: Optional[PricingTable] = None,
        default_provider: str = "gemini",
        default_retry_policy: Optional[RetryPolicy] = None,
    ):
        self.cache = cache
        self.resolver = resolver
        self.executor = executor or RetryExecutor()
        self.meter = meter or UsageMeter()
        self.pricing_table = pricing_table if pricing_table is not None else DEFAULT_PRICING
        self.default_provider = default_provider
        self.default_retry_policy = default_retry_policy or RetryPolicy()
        self._in_flight: Dict[Tuple[int, str], "asyncio.Task[InvokeResult]"] = {}
        self._in_flight_lock = threading.Lock()

    async def invoke(
        self,
        operation_name: str,
        params: Mapping[str, Any],
        remote_task: RemoteTask,
        options: Optional[InvokeOptions] = None,
    ) -> InvokeResult:
        """
        Invoke a remote task with caching, credential resolution and retry.

        Args:
            operation_name: Logical operation (part of the cache key)
            params: Request parameters passed to the remote task
            remote_task: Coroutine function ``(credential, params) -> value``
            options: Per-call options (defaults to InvokeOptions())

        Returns:
            InvokeResult with the value and provenance

        Raises:
            ConfigurationError: no credential for the provider
            RemoteServiceError: the remote task failed for good
        """
        options = options or InvokeOptions()
        key = fingerprint(operation_name, params)
        request_id = options.request_id or generate_request_id()
        provider = options.provider or self.default_provider

        set_request_id(request_id)
        set_fingerprint(key)
        set_provider(provider)

        with get_tracer().start_as_current_span("genrelay.invoke") as span:
            span.set_attribute("genrelay.operation", operation_name)
            span.set_attribute("genrelay.fingerprint", key)
            span.set_attribute("genrelay.provider", provider)
            span.set_attribute("genrelay.cacheable", options.cacheable)

            if options.cacheable:
                cached = self.cache.get(key)
                if cached is not None:
                    span.set_attribute("genrelay.cache_hit", True)
                    record_remote_request(operation_name, "cache_hit")
                    usage = self._record_usage(request_id, params, cached, True, options.model)
                    logger.info(
                        "invoke_cache_hit",
                        operation=operation_name,
                        fingerprint=key[:16],
                    )
                    return InvokeResult(value=cached, from_cache=True, fingerprint=key, usage=usage)
            span.set_attribute("genrelay.cache_hit", False)

            if not options.dedupe_in_flight:
                return await self._execute(operation_name, params, remote_task, options, key, request_id, provider)

            return await self._single_flight(operation_name, params, remote_task, options, key, request_id, provider)

    async def _single_flight(
        self,
        operation_name: str,
        params: Mapping[str, Any],
        remote_task: RemoteTask,
        options: InvokeOptions,
        key: str,
        request_id: str,
        provider: str,
    ) -> InvokeResult:
        # Tasks belong to one event loop, so flights are keyed per loop
        slot = (id(asyncio.get_running_loop()), key)
        with self._in_flight_lock:
            existing = self._in_flight.get(slot)
            if existing is None:
                task = asyncio.ensure_future(
                    self._execute(operation_name, params, remote_task, options, key, request_id, provider)
                )
                self._in_flight[slot] = task
                task.add_done_callback(functools.partial(self._release_flight, slot))

        # Shielded: a cancelled caller leaves the shared call running for the others
        if existing is None:
            return await asyncio.shield(task)

        logger.info("invoke_joined_in_flight", operation=operation_name, fingerprint=key[:16])
        shared = await asyncio.shield(existing)
        # Followers are accounted like cache hits: counted, zero cost
        usage = self._record_usage(request_id, params, shared.value, True, options.model)
        return InvokeResult(
            value=shared.value,
            from_cache=False,
            fingerprint=key,
            usage=usage,
            attempts=0,
            deduplicated=True,
        )

    def _release_flight(self, slot: Tuple[int, str], task: "asyncio.Task[InvokeResult]") -> None:
        with self._in_flight_lock:
            if self._in_flight.get(slot) is task:
                del self._in_flight[slot]
        if not task.cancelled():
            # Marks the outcome retrieved when every caller has gone away
            task.exception()

    async def _execute(
        self,
        operation_name: str,
        params: Mapping[str, Any],
        remote_task: RemoteTask,
        options: InvokeOptions,
        key: str,
        request_id: str,
        provider: str,
    ) -> InvokeResult:
        try:
            credential = self.resolver.resolve(provider)
        except ConfigurationError as exc:
            record_remote_request(operation_name, "config_error")
            record_exception(exc)
            raise

        policy = options.retry_policy or self.default_retry_policy
        if options.timeout_seconds is not None:
            policy = policy.model_copy(update={"timeout_seconds": options.timeout_seconds})

        attempts = 0

        async def attempt() -> Any:
            nonlocal attempts
            attempts += 1
            return await remote_task(credential.value, params)

        start = time.time()
        try:
            value = await self.executor.execute(
                attempt,
                policy=policy,
                operation=operation_name,
                secrets=[credential.value],
            )
        except RemoteServiceError as exc:
            duration = time.time() - start
            record_remote_request(operation_name, "failed", duration)
            record_exception(exc)
            logger.warning(
                "invoke_failed",
                operation=operation_name,
                fingerprint=key[:16],
                attempts=exc.attempts,
                status=exc.status,
                error_type=type(exc).__name__,
                duration_ms=round(duration * 1000, 1),
            )
            raise

        duration = time.time() - start
        record_remote_request(operation_name, "success", duration)
        usage = self._record_usage(request_id, params, value, False, options.model)

        if options.cacheable and not self.cache.set(key, value, options.ttl_seconds):
            # Best-effort cache; a failed write only costs a future miss
            logger.warning("invoke_cache_write_skipped", operation=operation_name, fingerprint=key[:16])

        logger.info(
            "invoke_completed",
            operation=operation_name,
            fingerprint=key[:16],
            attempts=attempts,
            credential_source=credential.source,
            duration_ms=round(duration * 1000, 1),
        )
        return InvokeResult(
            value=value,
            from_cache=False,
            fingerprint=key,
            usage=usage,
            attempts=attempts,
        )

    def _record_usage(
        self,
        request_id: str,
        params: Mapping[str, Any],
        value: Any,
        cache_hit: bool,
        model: str,
    ) -> Optional[UsageRecord]:
        try:
            return self.meter.record_usage(
                request_id=request_id,
                input_text=_input_text(params),
                output_text=_as_text(value),
                pricing_table=self.pricing_table,
                cache_hit=cache_hit,
                model=model,
            )
        except UsageTrackingError as exc:
            logger.error("usage_tracking_failed", request_id=request_id, error=str(exc))
            return None


_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Global singleton accessor, wired from settings and the shared components."""
    global _orchestrator
    if _orchestrator is None:
        from genrelay.core.config import get_settings

        settings = get_settings()
        _orchestrator = Orchestrator(
            cache=get_response_cache(),
            resolver=CredentialResolver(get_vault(), fallback_env_var=settings.fallback_env_var),
            executor=RetryExecutor(),
            meter=get_usage_meter(),
            pricing_table=DEFAULT_PRICING,
            default_provider=settings.default_provider,
            default_retry_policy=RetryPolicy.from_settings(settings),
        )
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    _orchestrator = None
