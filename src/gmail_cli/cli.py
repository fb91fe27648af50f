"""Command-line entry point for authorizing gmail-cli-tools.

Usage:
    gmail-auth login        # Authorize (or refresh) and store the credential
    gmail-auth login --force
    gmail-auth status       # Show the stored credential without contacting Google
    gmail-auth logout       # Delete the stored credential
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv
from pydantic import ValidationError

from gmail_cli.auth.models.errors import AuthError, CredentialLoadError
from gmail_cli.auth.services.manager import CredentialManager
from gmail_cli.auth.services.store import CredentialStore
from gmail_cli.logging import setup_logging
from gmail_cli.settings import Settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command-line overrides applied."""
    overrides = {
        "credentials_file": args.credentials_file,
        "token_file": args.token_file,
        "callback_port": args.port,
        "authorization_timeout": args.timeout,
    }
    if args.no_browser:
        overrides["open_browser"] = False
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


async def _login(settings: Settings, force: bool) -> None:
    manager = CredentialManager.from_settings(settings)
    try:
        if force:
            await manager.authorize()
        else:
            transport = await manager.obtain()
            await transport.aclose()
    finally:
        await manager.close()


def cmd_login(args: argparse.Namespace, settings: Settings) -> int:
    """Authorize and store the credential."""
    logger.info(f"Starting authentication process (credentials: {settings.credentials_file})")
    asyncio.run(_login(settings, force=args.force))
    logger.info(
        f"Authentication successful! Token saved to {settings.token_file}, "
        "you can now use other commands."
    )
    return EXIT_OK


def cmd_status(_args: argparse.Namespace, settings: Settings) -> int:
    """Describe the stored credential."""
    store = CredentialStore(settings.token_file)
    try:
        credential = store.load()
    except CredentialLoadError as e:
        print(f"No usable credential: {e}")
        return EXIT_FAILURE

    print(f"Credential file: {store.path}")
    print(f"Refresh token: {'present' if credential.can_refresh() else 'absent'}")
    if credential.expiry is None:
        print("Access token expiry: unknown")
    else:
        remaining = credential.expiry - datetime.now(timezone.utc)
        state = "expired" if credential.is_expired(0) else f"in {int(remaining.total_seconds())}s"
        print(f"Access token expiry: {credential.expiry.isoformat()} ({state})")
    return EXIT_OK


def cmd_logout(_args: argparse.Namespace, settings: Settings) -> int:
    """Delete the stored credential."""
    store = CredentialStore(settings.token_file)
    try:
        removed = store.clear()
    except OSError as e:
        print(f"Failed to clear credentials: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if removed:
        print(f"Credentials cleared from {store.path}")
    else:
        print("No stored credentials found.")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gmail-auth",
        description="Authorize gmail-cli-tools against your Google account",
    )
    parser.add_argument(
        "--credentials-file",
        help="Path to the OAuth2 client credentials file (env: GMAIL_CREDENTIALS_FILE)",
    )
    parser.add_argument(
        "--token-file",
        help="Where the credential is stored (env: GMAIL_TOKEN_FILE)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Local callback port (env: GMAIL_CALLBACK_PORT, default 8080)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the browser redirect (env: GMAIL_AUTHORIZATION_TIMEOUT)",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Only print the authorization URL",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    login = subparsers.add_parser("login", help="Authorize and store the credential")
    login.add_argument(
        "--force",
        action="store_true",
        help="Re-authorize even if a stored credential still works",
    )
    login.set_defaults(func=cmd_login)

    status = subparsers.add_parser("status", help="Show the stored credential")
    status.set_defaults(func=cmd_status)

    logout = subparsers.add_parser("logout", help="Delete the stored credential")
    logout.set_defaults(func=cmd_logout)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(settings.log_level)

    try:
        return args.func(args, settings)
    except AuthError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
