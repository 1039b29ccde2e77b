"""Authentication module for GTM CLI.

This module provides every way the CLI can obtain a Tag Manager token:

- Interactive OAuth 2.0 login through a local callback listener
- File-based credential persistence with proactive refresh
- Service account key files and Application Default Credentials

Usage:
    >>> from gtm_cli.auth import oauth_manager, service_account_auth
    >>>
    >>> # Authenticate user (opens browser)
    >>> record = oauth_manager.login()
    >>>
    >>> # Later, get a fresh access token
    >>> token = oauth_manager.get_access_token()
    >>>
    >>> # Or switch to a service account
    >>> service_account_auth.login_with_service_account("key.json")
"""

from gtm_cli.auth.callback import CallbackServer
from gtm_cli.auth.credentials import (
    CredentialRecord,
    CredentialStore,
    is_expired,
    needs_refresh,
)
from gtm_cli.auth.oauth import (
    AuthStatus,
    LoginState,
    OAuthManager,
    generate_state,
    oauth_manager,
)
from gtm_cli.auth.service_account import (
    AuthMethod,
    AuthMethodConfig,
    AuthMethodStore,
    ServiceAccountAuth,
    service_account_auth,
    validate_key_file,
)

__all__ = [
    # OAuth
    "OAuthManager",
    "oauth_manager",
    "LoginState",
    "AuthStatus",
    "generate_state",
    "CallbackServer",
    # Credential storage
    "CredentialRecord",
    "CredentialStore",
    "is_expired",
    "needs_refresh",
    # Service account / ADC
    "AuthMethod",
    "AuthMethodConfig",
    "AuthMethodStore",
    "ServiceAccountAuth",
    "service_account_auth",
    "validate_key_file",
]
