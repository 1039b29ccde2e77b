"""``gtm auth`` commands: login, logout and status."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Any

from gtm_cli.api.client import tag_manager_client
from gtm_cli.auth.oauth import oauth_manager
from gtm_cli.auth.service_account import AuthMethod, service_account_auth
from gtm_cli.cli.common import add_output_option, resolve_output_format
from gtm_cli.config.constants import SERVICE_ACCOUNT_ENV
from gtm_cli.utils.errors import TokenError
from gtm_cli.utils.output import info, output, success, warn

logger = logging.getLogger(__name__)


def _clear_alternate_method() -> bool:
    """Drop a saved service-account/ADC method so OAuth becomes active."""
    try:
        method = service_account_auth.load_auth_method()
    except TokenError:
        return service_account_auth.clear_auth_method()
    if method is None or method.method is AuthMethod.OAUTH:
        return False
    return service_account_auth.clear_auth_method()


def cmd_login(args: argparse.Namespace) -> int:
    if args.service_account:
        info(f"Authenticating with service account key: {args.service_account}")
        config = service_account_auth.login_with_service_account(args.service_account)
        tag_manager_client.invalidate()
        success(f"Successfully authenticated as {config.service_account_email}")
        info("Service account credentials are now active.")
        info("Note: Service account uses your own GCP project's API quotas.")
        return 0

    if args.adc:
        info("Authenticating with Application Default Credentials...")
        config = service_account_auth.login_with_adc()
        tag_manager_client.invalidate()
        who = config.service_account_email or "Application Default Credentials"
        success(f"Successfully authenticated as {who}")
        return 0

    status = oauth_manager.get_auth_status()
    if status.authenticated:
        if _clear_alternate_method():
            tag_manager_client.invalidate()
            success(f"Switched to OAuth as {status.email}")
            return 0
        info(f"Already authenticated as {status.email}")
        info("Run 'gtm auth logout' to sign out first, or use 'gtm auth status' to view details.")
        return 0

    record = oauth_manager.login(timeout=args.timeout)
    _clear_alternate_method()
    tag_manager_client.invalidate()
    success(f"Successfully authenticated as {record.user_email}")
    info("You can now use GTM CLI to manage your Tag Manager resources.")
    return 0


def cmd_logout(args: argparse.Namespace) -> int:
    try:
        method = service_account_auth.load_auth_method()
    except TokenError as e:
        logger.warning("Removing unreadable auth method file: %s", e.message)
        method = None
        cleared_method = service_account_auth.clear_auth_method()
    else:
        cleared_method = method is not None and service_account_auth.clear_auth_method()

    if method is not None and method.method is AuthMethod.SERVICE_ACCOUNT:
        success(f"Cleared service account configuration ({method.service_account_email})")
        info("Note: The service account key file was not deleted.")
    elif method is not None and method.method is AuthMethod.ADC:
        success("Cleared Application Default Credentials configuration")
    elif cleared_method:
        success("Cleared saved authentication method")

    logged_out = oauth_manager.logout()
    if logged_out:
        success("Successfully logged out from OAuth session.")

    if not (cleared_method or logged_out):
        info("Not currently authenticated.")

    tag_manager_client.invalidate()
    return 0


def _status_data() -> dict[str, Any]:
    env_key_path = os.getenv(SERVICE_ACCOUNT_ENV)
    if env_key_path:
        return {
            "authenticated": True,
            "method": AuthMethod.SERVICE_ACCOUNT.value,
            "source": SERVICE_ACCOUNT_ENV,
            "keyPath": env_key_path,
        }

    method = service_account_auth.load_auth_method()
    if method is not None and method.method is not AuthMethod.OAUTH:
        data: dict[str, Any] = {"authenticated": True, "method": method.method.value}
        if method.service_account_email:
            data["email"] = method.service_account_email
        if method.service_account_path:
            data["keyPath"] = method.service_account_path
        return data

    status = oauth_manager.get_auth_status()
    data = status.model_dump(by_alias=True, exclude_none=True, mode="json")
    data["method"] = AuthMethod.OAUTH.value
    return data


def cmd_status(args: argparse.Namespace) -> int:
    data = _status_data()
    fmt = resolve_output_format(args)
    output(data, fmt)

    if fmt == "json":
        return 0
    if data.get("source") == SERVICE_ACCOUNT_ENV:
        warn("Environment variable takes precedence over other auth methods.")
    elif not data["authenticated"]:
        info("Not authenticated. Run 'gtm auth login' to sign in.")
        info(
            "Authentication options:\n"
            "  gtm auth login                          # OAuth (browser)\n"
            "  gtm auth login --service-account <file> # Service account\n"
            "  gtm auth login --adc                    # Application Default Credentials"
        )
    elif data.get("needsRefresh"):
        info("Token will be refreshed on next request.")
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("auth", help="Manage authentication with Google Tag Manager")
    commands = parser.add_subparsers(dest="operation", metavar="<operation>", required=True)

    login = commands.add_parser("login", help="Authenticate with Google Tag Manager")
    method = login.add_mutually_exclusive_group()
    method.add_argument(
        "-s",
        "--service-account",
        metavar="PATH",
        help="Path to service account key JSON file",
    )
    method.add_argument(
        "--adc",
        action="store_true",
        help="Use Application Default Credentials",
    )
    login.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the browser (default: wait until cancelled)",
    )
    login.set_defaults(func=cmd_login)

    logout = commands.add_parser("logout", help="Sign out and revoke access tokens")
    logout.set_defaults(func=cmd_logout)

    status = commands.add_parser("status", help="Show current authentication status")
    add_output_option(status)
    status.set_defaults(func=cmd_status)


__all__ = ["register", "cmd_login", "cmd_logout", "cmd_status"]
