"""CLI entrypoints for running and inspecting the LinkVault API."""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence

import uvicorn
from pydantic import ValidationError

from linkvault.config import Settings, get_settings


def redacted_settings(settings: Settings) -> dict[str, object]:
    """Summarize loaded settings without secrets."""
    return {
        "app": settings.app.model_dump(),
        "database": {
            "driver": settings.database.url.split("://", 1)[0],
            "pool_size": settings.database.pool_size,
        },
        "redis": {"scheme": settings.redis.url.split("://", 1)[0]},
        "jwt": {
            "algorithm": settings.jwt.algorithm,
            "access_token_ttl_seconds": settings.jwt.access_token_ttl_seconds,
        },
        "github": {
            "client_id": settings.github.client_id,
            "redirect_uri": str(settings.github.redirect_uri),
            "scope": settings.github.scope,
            "request_timeout_seconds": settings.github.request_timeout_seconds,
        },
        "cors_origins": settings.cors_origins(),
        "rate_limit": settings.rate_limit.model_dump(),
    }


def _run_check_config() -> int:
    try:
        settings = get_settings()
    except ValidationError as exc:
        print(json.dumps({"valid": False, "errors": exc.errors(include_url=False)}, default=str))
        return 1
    print(json.dumps({"valid": True, "settings": redacted_settings(settings)}))
    return 0


def _run_serve(host: str | None, port: int | None, reload: bool) -> int:
    settings = get_settings()
    uvicorn.run(
        "linkvault.main:app",
        host=host or settings.app.host,
        port=port or settings.app.port,
        reload=reload,
        log_level=settings.app.log_level.lower(),
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported commands."""
    parser = argparse.ArgumentParser(prog="python -m linkvault.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    serve_parser = subcommands.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve_parser.add_argument("--host", default=None, help="Override APP__HOST.")
    serve_parser.add_argument("--port", type=int, default=None, help="Override APP__PORT.")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload.")

    subcommands.add_parser("check-config", help="Validate settings and print a redacted summary.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "serve":
        return _run_serve(host=args.host, port=args.port, reload=args.reload)
    if args.command == "check-config":
        return _run_check_config()
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
