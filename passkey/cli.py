"""
Passkey Command Line Interface

Provides command-line access to the passkey server.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import httpx


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="passkey",
        description="Passkey ceremony server CLI",
    )
    parser.add_argument("--config", type=Path, help="JSON configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the passkey server")
    server_parser.add_argument("--host", default=None, help="Host to bind to")
    server_parser.add_argument("--port", type=int, default=None, help="Port")
    server_parser.add_argument("--reload", action="store_true", help="Auto-reload")

    # Status command
    status_parser = subparsers.add_parser("status", help="Get server status")
    status_parser.add_argument("--url", default="http://localhost:5001", help="Server URL")
    status_parser.add_argument("--insecure", action="store_true", help="Skip TLS verification")

    # Credentials command
    creds_parser = subparsers.add_parser("credentials", help="List a user's credentials")
    creds_parser.add_argument("username", help="Account name")
    creds_parser.add_argument("--url", default="http://localhost:5001", help="Server URL")
    creds_parser.add_argument("--insecure", action="store_true", help="Skip TLS verification")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 1

    if args.config:
        from passkey.core.config import PasskeyConfig, set_config
        set_config(PasskeyConfig.from_file(args.config))

    if args.command == "server":
        from passkey.main import run_server
        run_server(host=args.host, port=args.port, reload=args.reload)
        return 0

    if args.command == "status":
        return _get(args.url, "/health", args.insecure)

    if args.command == "credentials":
        return _get(args.url, f"/users/{args.username}/credentials", args.insecure)

    parser.print_help()
    return 1


def _get(base_url: str, path: str, insecure: bool) -> int:
    """GET a JSON endpoint and print the body."""
    try:
        response = httpx.get(f"{base_url}{path}", verify=not insecure, timeout=10.0)
    except httpx.HTTPError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(response.json(), indent=2))
    return 0 if response.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
