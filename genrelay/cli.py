"""
Command-line management surface.

Usage:
    genrelay set-key <provider> <key>   Store an API key in the local vault
    genrelay test-key <provider>        Verify a stored key with a tiny request
    genrelay list-keys                  Show providers with a stored key
    genrelay delete-key <provider>      Remove a stored key
    genrelay exec <prompt...>           Run a prompt through the orchestrator
    genrelay usage                      Print session usage totals

Usage totals live in memory for one process. A fresh `genrelay usage` run
reports an empty session; `genrelay exec --show-usage` prints the totals
after the call instead.

Keys are only ever echoed in masked form (first 4 / last 4 characters).
Exit status is 0 on success and 1 on failure.
"""
import argparse
import asyncio
import json
import sys
from typing import List, Optional, TextIO

from genrelay.core.config import get_settings
from genrelay.core.errors import (
    ConfigurationError,
    GenRelayError,
    InvalidCredentialError,
    RemoteServiceError,
    classify_error,
    to_remote_error,
)
from genrelay.core.logging import configure_logging, get_logger
from genrelay.core.sanitize import masked_display
from genrelay.core.tracing import configure_tracing, shutdown_tracing
from genrelay.services.orchestration import InvokeOptions, get_orchestrator
from genrelay.services.provider import GENERATE_OPERATION, get_provider_client, make_generate_task
from genrelay.services.usage import get_usage_meter
from genrelay.services.vault import get_vault, validate_provider

logger = get_logger(__name__)

TEST_PROMPT = "Respond with: OK"


def _error(message: str) -> int:
    print(message, file=sys.stderr)
    return 1


def _print_usage(stream: Optional[TextIO] = None) -> None:
    totals = get_usage_meter().session_totals()
    print(json.dumps(totals.model_dump(), indent=2), file=stream or sys.stdout)


def cmd_set_key(args: argparse.Namespace) -> int:
    try:
        get_vault().set_credential(args.provider, args.key)
    except InvalidCredentialError as e:
        return _error(f"Failed to store key: {e.user_message}")
    provider = args.provider.lower()
    print(f"API key for '{provider}' stored.")
    print(f"Key: {masked_display(args.key)}")
    print(f"Use 'genrelay test-key {provider}' to verify.")
    return 0


def cmd_test_key(args: argparse.Namespace) -> int:
    try:
        provider = validate_provider(args.provider)
    except InvalidCredentialError as e:
        return _error(e.user_message)

    api_key = get_vault().get_credential(provider)
    if not api_key:
        return _error(
            f"No API key found for provider '{provider}'.\n"
            f"Use 'genrelay set-key {provider} YOUR_KEY' first."
        )

    client = get_provider_client()
    try:
        text = asyncio.run(client.generate(api_key, TEST_PROMPT, max_tokens=8))
    except Exception as e:
        error = to_remote_error(e, classify_error(e), [api_key])
        logger.warning("test_key_failed", provider=provider, status=error.status)
        return _error(f"API key test failed for '{provider}': {error.user_message}")

    if not text:
        return _error(f"API key for '{provider}' returned an empty response.")
    print(f"API key for '{provider}' ({masked_display(api_key)}) is valid.")
    print(f"Test response: {text}")
    return 0


def cmd_list_keys(args: argparse.Namespace) -> int:
    vault = get_vault()
    providers = vault.list_providers()
    if not providers:
        print("No API keys configured. Use 'genrelay set-key <provider> <key>'.")
        return 0
    print("Configured providers:")
    for provider in providers:
        print(f"  - {provider}: {masked_display(vault.get_credential(provider))}")
    return 0


def cmd_delete_key(args: argparse.Namespace) -> int:
    if not get_vault().delete_credential(args.provider):
        return _error(f"No API key found for provider '{args.provider.lower()}'.")
    print(f"API key for '{args.provider.lower()}' deleted.")
    return 0


def cmd_exec(args: argparse.Namespace) -> int:
    prompt = " ".join(args.prompt).strip()
    if not prompt:
        return _error("Usage: genrelay exec <prompt>")

    settings = get_settings()
    orchestrator = get_orchestrator()
    options = InvokeOptions(
        provider=args.provider,
        model=settings.model,
        cacheable=not args.no_cache,
    )
    try:
        result = asyncio.run(
            orchestrator.invoke(
                GENERATE_OPERATION,
                {"prompt": prompt},
                make_generate_task(get_provider_client()),
                options,
            )
        )
    except ConfigurationError as e:
        return _error(e.user_message)
    except RemoteServiceError as e:
        return _error(f"Request failed: {e.user_message}")

    print(result.value)
    if result.from_cache:
        print("(cached)", file=sys.stderr)
    if args.show_usage:
        _print_usage(sys.stderr)
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    _print_usage()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genrelay",
        description="Manage provider credentials and run cached, retrying generation calls",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for diagnostics on stderr (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("set-key", help="Store an API key")
    p.add_argument("provider", help="Provider name (letters, digits, - and _)")
    p.add_argument("key", help="API key")
    p.set_defaults(func=cmd_set_key)

    p = subparsers.add_parser("test-key", help="Test a stored API key")
    p.add_argument("provider")
    p.set_defaults(func=cmd_test_key)

    p = subparsers.add_parser("list-keys", help="Show configured providers")
    p.set_defaults(func=cmd_list_keys)

    p = subparsers.add_parser("delete-key", help="Remove a stored API key")
    p.add_argument("provider")
    p.set_defaults(func=cmd_delete_key)

    p = subparsers.add_parser("exec", help="Run a prompt")
    p.add_argument("prompt", nargs="+")
    p.add_argument("--provider", default=None, help="Provider (default: GENRELAY_DEFAULT_PROVIDER)")
    p.add_argument("--no-cache", action="store_true", help="Bypass the response cache")
    p.add_argument(
        "--show-usage",
        action="store_true",
        help="Print session usage totals to stderr after the call",
    )
    p.set_defaults(func=cmd_exec)

    p = subparsers.add_parser(
        "usage", help="Print usage totals of this process (empty in a fresh process)"
    )
    p.set_defaults(func=cmd_usage)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(log_level=args.log_level, json_output=False)

    try:
        settings = get_settings()
        if settings.otlp_endpoint:
            configure_tracing(settings.service_name, settings.otlp_endpoint)
        return args.func(args)
    except GenRelayError as e:
        logger.error("cli_command_failed", command=args.command, error_type=type(e).__name__)
        return _error(e.user_message)
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
