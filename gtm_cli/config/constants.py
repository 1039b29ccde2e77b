"""Application constants and config-directory resolution.

OAuth client credentials identify the CLI to Google. For development they are
read from ``GOOGLE_CLIENT_ID`` / ``GOOGLE_CLIENT_SECRET``; release builds replace
the placeholders below.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

from gtm_cli import __version__

APP_NAME = "gtm-cli"
APP_VERSION = __version__
APP_DESCRIPTION = "Command-line interface for Google Tag Manager"

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID") or "__OAUTH_CLIENT_ID__"
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET") or "__OAUTH_CLIENT_SECRET__"

OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/tagmanager.manage.accounts",
    "https://www.googleapis.com/auth/tagmanager.edit.containers",
    "https://www.googleapis.com/auth/tagmanager.delete.containers",
    "https://www.googleapis.com/auth/tagmanager.edit.containerversions",
    "https://www.googleapis.com/auth/tagmanager.manage.users",
    "https://www.googleapis.com/auth/tagmanager.publish",
    "https://www.googleapis.com/auth/tagmanager.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

# Local OAuth callback server
OAUTH_CALLBACK_HOST = "127.0.0.1"
OAUTH_CALLBACK_PORT = 8085
OAUTH_CALLBACK_PATH = "/callback"

# Google OAuth endpoints
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"

# Environment variables
CONFIG_DIR_ENV = "GTM_CLI_CONFIG_DIR"
SERVICE_ACCOUNT_ENV = "GOOGLE_APPLICATION_CREDENTIALS"

# Pagination defaults
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

HTTP_TIMEOUT_SECONDS = 30


def _config_dir_from_override() -> Path | None:
    value = os.getenv(CONFIG_DIR_ENV)
    return Path(value) if value else None


def _config_dir_from_xdg() -> Path | None:
    value = os.getenv("XDG_CONFIG_HOME")
    return Path(value) / APP_NAME if value else None


def _config_dir_from_appdata() -> Path | None:
    if sys.platform != "win32":
        return None
    appdata = os.getenv("APPDATA")
    base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    return base / APP_NAME


def _config_dir_default() -> Path:
    return Path.home() / ".config" / APP_NAME


# Evaluated in order, first non-None wins.
CONFIG_DIR_RESOLVERS: tuple[Callable[[], Path | None], ...] = (
    _config_dir_from_override,
    _config_dir_from_xdg,
    _config_dir_from_appdata,
    _config_dir_default,
)


def get_config_dir() -> Path:
    """Resolve the per-user configuration directory.

    Resolution is re-evaluated on every call so tests and long-lived callers
    pick up environment changes.
    """
    for resolver in CONFIG_DIR_RESOLVERS:
        path = resolver()
        if path is not None:
            return path
    # _config_dir_default never returns None
    raise RuntimeError("No configuration directory could be resolved")


def get_credentials_path() -> Path:
    return get_config_dir() / "credentials.json"


def get_auth_method_path() -> Path:
    return get_config_dir() / "auth-method.json"


def get_config_path() -> Path:
    return get_config_dir() / "config.json"


__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "OAUTH_SCOPES",
    "OAUTH_CALLBACK_HOST",
    "OAUTH_CALLBACK_PORT",
    "OAUTH_CALLBACK_PATH",
    "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI",
    "GOOGLE_USERINFO_URI",
    "GOOGLE_REVOKE_URI",
    "CONFIG_DIR_ENV",
    "SERVICE_ACCOUNT_ENV",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "HTTP_TIMEOUT_SECONDS",
    "CONFIG_DIR_RESOLVERS",
    "get_config_dir",
    "get_credentials_path",
    "get_auth_method_path",
    "get_config_path",
]
