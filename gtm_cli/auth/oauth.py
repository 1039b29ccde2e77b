"""Google OAuth 2.0 authentication for the Tag Manager API.

This module drives the interactive authorization-code flow used by
``gtm auth login``:

1. Generate a random state token and build the consent URL
2. Start the local callback listener (see :mod:`gtm_cli.auth.callback`)
3. Open the browser and wait for the redirect
4. Exchange the code for tokens and fetch the user's profile
5. Persist a :class:`~gtm_cli.auth.credentials.CredentialRecord`

It also refreshes stored tokens before API calls and revokes them on logout.

Security considerations:
- The state parameter protects the local listener against CSRF
- ``prompt=consent`` with ``access_type=offline`` guarantees a refresh token
- Stored credentials are written owner-only (see the credential store)
"""

from __future__ import annotations

import logging
import secrets
import webbrowser
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from urllib.parse import urlencode

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from gtm_cli.auth.callback import CallbackServer
from gtm_cli.auth.credentials import (
    CredentialRecord,
    CredentialStore,
    needs_refresh,
    now_ms,
)
from gtm_cli.config.constants import (
    GOOGLE_AUTH_URI,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REVOKE_URI,
    GOOGLE_TOKEN_URI,
    GOOGLE_USERINFO_URI,
    HTTP_TIMEOUT_SECONDS,
    OAUTH_CALLBACK_HOST,
    OAUTH_CALLBACK_PATH,
    OAUTH_CALLBACK_PORT,
    OAUTH_SCOPES,
)
from gtm_cli.utils.output import info, warn
from gtm_cli.utils.errors import AuthenticationError, TokenError

logger = logging.getLogger(__name__)

STATE_TOKEN_BYTES = 32


class LoginState(str, Enum):
    """Stages of an interactive login."""

    IDLE = "idle"
    AWAITING_SERVER_READY = "awaiting_server_ready"
    AWAITING_USER_AUTHORIZATION = "awaiting_user_authorization"
    EXCHANGING_CODE = "exchanging_code"
    FETCHING_PROFILE = "fetching_profile"
    PERSISTED = "persisted"
    ABORTED = "aborted"


class TokenResponse(BaseModel):
    """Token endpoint response for the authorization-code grant."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int
    token_type: str = "Bearer"
    scope: str = ""


class UserInfo(BaseModel):
    """Subset of the userinfo endpoint response."""

    id: str = ""
    email: str | None = None
    name: str | None = None


class AuthStatus(BaseModel):
    """OAuth session summary for ``gtm auth status``."""

    model_config = ConfigDict(populate_by_name=True)

    authenticated: bool
    email: str | None = None
    name: str | None = None
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    needs_refresh: bool | None = Field(default=None, alias="needsRefresh")


def generate_state() -> str:
    """Return a hex-encoded state token with 32 bytes of entropy."""
    return secrets.token_hex(STATE_TOKEN_BYTES)


def open_browser(url: str) -> bool:
    """Open ``url`` in the default browser.

    Returns:
        False when no browser could be launched.
    """
    try:
        return webbrowser.open(url)
    except webbrowser.Error as e:
        logger.debug("Could not launch browser: %s", e)
        return False


class OAuthManager:
    """Manages the Google OAuth 2.0 session of the CLI user.

    Attributes:
        state: Current :class:`LoginState` of the most recent login.

    Example:
        >>> manager = OAuthManager()
        >>> record = manager.login()
        >>> manager.get_access_token()
        'ya29...'
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        session: requests.Session | None = None,
        client_id: str = GOOGLE_CLIENT_ID,
        client_secret: str = GOOGLE_CLIENT_SECRET,
        scopes: list[str] | None = None,
        host: str = OAUTH_CALLBACK_HOST,
        port: int = OAUTH_CALLBACK_PORT,
        callback_path: str = OAUTH_CALLBACK_PATH,
        browser_opener: Callable[[str], bool] = open_browser,
        signal_delay: float | None = None,
        shutdown_grace: float | None = None,
    ) -> None:
        self._store = store or CredentialStore()
        self._session = session or requests.Session()
        self._client_id = client_id
        self._client_secret = client_secret
        self._scopes = scopes or OAUTH_SCOPES
        self._host = host
        self._port = port
        self._callback_path = callback_path
        self._browser_opener = browser_opener
        self._server_options: dict[str, float] = {}
        if signal_delay is not None:
            self._server_options["signal_delay"] = signal_delay
        if shutdown_grace is not None:
            self._server_options["shutdown_grace"] = shutdown_grace
        self.state = LoginState.IDLE

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self._port}{self._callback_path}"

    def _transition(self, new_state: LoginState) -> None:
        logger.debug("Login state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def create_auth_url(self, state: str) -> str:
        """Build the Google consent URL for ``state``."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._scopes),
            "state": state,
            "access_type": "offline",
            # Forces a refresh token to be reissued on repeat logins
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URI}?{urlencode(params)}"

    # =========================================================================
    # Interactive login
    # =========================================================================

    def login(self, timeout: float | None = None) -> CredentialRecord:
        """Run the browser login and persist the resulting credentials.

        Args:
            timeout: Seconds to wait for the browser callback. None waits
                until the user completes consent or presses Ctrl+C.

        Returns:
            The persisted credential record.

        Raises:
            AuthenticationError: If the provider reports an error, the
                callback lacks a code or has a mismatched state, or the code
                exchange fails.
            KeyboardInterrupt: If the user cancels while waiting; the local
                listener is released first.
        """
        self._transition(LoginState.IDLE)
        state = generate_state()
        auth_url = self.create_auth_url(state)

        server = CallbackServer(
            expected_state=state,
            host=self._host,
            port=self._port,
            callback_path=self._callback_path,
            **self._server_options,
        )
        self._transition(LoginState.AWAITING_SERVER_READY)
        try:
            port = server.start()
        except (AuthenticationError, OSError):
            self._transition(LoginState.ABORTED)
            raise
        info(f"Callback server listening on port {port}...")

        interrupted = False
        try:
            self._transition(LoginState.AWAITING_USER_AUTHORIZATION)
            info("Opening browser for authentication...")
            info(f"If the browser doesn't open, visit this URL:\n{auth_url}")
            if not self._browser_opener(auth_url):
                warn(f"Could not open browser. Please visit:\n{auth_url}")

            info("Waiting for authentication... (press Ctrl+C to cancel)")
            code = server.wait(timeout=timeout)
        except KeyboardInterrupt:
            interrupted = True
            self._transition(LoginState.ABORTED)
            raise
        except Exception:
            self._transition(LoginState.ABORTED)
            raise
        finally:
            server.close(grace=0 if interrupted else None)

        self._transition(LoginState.EXCHANGING_CODE)
        info("Exchanging code for tokens...")
        try:
            tokens = self.exchange_code(code)
        except AuthenticationError:
            self._transition(LoginState.ABORTED)
            raise

        self._transition(LoginState.FETCHING_PROFILE)
        try:
            user = self.fetch_user_info(tokens.access_token)
        except AuthenticationError:
            self._transition(LoginState.ABORTED)
            raise

        record = CredentialRecord(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or "",
            expires_at=now_ms() + tokens.expires_in * 1000,
            token_type=tokens.token_type,
            scope=tokens.scope,
            user_email=user.email,
            user_name=user.name,
            user_id=user.id,
        )
        self._store.save(record)
        self._transition(LoginState.PERSISTED)

        logger.info("Authenticated as %s", record.user_email)
        return record

    def exchange_code(self, code: str) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Raises:
            AuthenticationError: On a network error or a non-success status,
                carrying the response body.
        """
        try:
            response = self._session.post(
                GOOGLE_TOKEN_URI,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                },
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error("Network error exchanging authorization code: %s", e)
            raise AuthenticationError(
                f"Network error exchanging authorization code: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        if not 200 <= response.status_code < 300:
            raise AuthenticationError(
                f"Failed to exchange code for tokens: {response.text}",
                details={"status_code": response.status_code},
            )

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise AuthenticationError(
                f"Unexpected token endpoint response: {e}",
            ) from e

    def fetch_user_info(self, access_token: str) -> UserInfo:
        """Fetch the profile of the user who owns ``access_token``."""
        try:
            response = self._session.get(
                GOOGLE_USERINFO_URI,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise AuthenticationError(
                f"Network error fetching user info: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        if not 200 <= response.status_code < 300:
            raise AuthenticationError(
                f"Failed to fetch user info: {response.text}",
                details={"status_code": response.status_code},
            )

        try:
            return UserInfo.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise AuthenticationError(f"Unexpected user info response: {e}") from e

    # =========================================================================
    # Refresh
    # =========================================================================

    def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """Refresh the access token of ``record`` and persist the result.

        The previous refresh token is kept when Google does not issue a new
        one.

        Raises:
            TokenError: If the record has no refresh token or refresh fails.
        """
        if not record.refresh_token:
            raise TokenError(
                "Session expired. Please run 'gtm auth login' again.",
                details={"hint": "No refresh token is stored"},
            )

        credentials = Credentials(  # type: ignore[no-untyped-call]
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self._client_id,
            client_secret=self._client_secret,
        )

        try:
            credentials.refresh(Request())
        except GoogleAuthError as e:
            logger.error("Failed to refresh token: %s", e)
            raise TokenError(
                f"Failed to refresh token: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        if credentials.expiry is not None:
            # google-auth reports expiry as naive UTC
            expiry = credentials.expiry.replace(tzinfo=UTC)
            expires_at = int(expiry.timestamp() * 1000)
        else:
            expires_at = now_ms() + 3600 * 1000

        updated = record.model_copy(
            update={
                "access_token": credentials.token,
                "expires_at": expires_at,
                "refresh_token": credentials.refresh_token or record.refresh_token,
            }
        )
        self._store.save(updated)
        logger.info("Successfully refreshed access token")
        return updated

    def get_access_token(self) -> str:
        """Return a usable access token, refreshing it when close to expiry.

        Never interactive.

        Raises:
            AuthenticationError: If the user has not logged in.
            TokenError: If the session expired and cannot be refreshed.
        """
        record = self._store.load()
        if record is None:
            raise AuthenticationError(
                "Not authenticated. Please run 'gtm auth login' first."
            )

        if not needs_refresh(record):
            return record.access_token

        logger.info("Refreshing access token...")
        return self.refresh(record).access_token

    # =========================================================================
    # Logout and status
    # =========================================================================

    def revoke_token(self, token: str) -> bool:
        """Revoke ``token`` with Google.

        Failures are logged as warnings only; the token may already be
        invalid.

        Returns:
            True if Google confirmed the revocation.
        """
        try:
            response = self._session.post(
                GOOGLE_REVOKE_URI,
                params={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.warning("Could not revoke token with Google: %s", e)
            return False

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Could not revoke token with Google (HTTP %s)", response.status_code
            )
            return False
        return True

    def logout(self) -> bool:
        """Revoke the stored tokens and delete the local credential file.

        Local deletion always happens, even if revocation fails or the
        stored record cannot be read.

        Returns:
            True if a credential file existed.
        """
        try:
            record = self._store.load()
        except TokenError as e:
            logger.warning("Skipping token revocation: %s", e.message)
            record = None

        if record is not None:
            if record.access_token:
                self.revoke_token(record.access_token)
            if record.refresh_token:
                self.revoke_token(record.refresh_token)

        deleted = self._store.delete()
        return record is not None or deleted

    def get_auth_status(self) -> AuthStatus:
        record = self._store.load()
        if record is None:
            return AuthStatus(authenticated=False)

        return AuthStatus(
            authenticated=True,
            email=record.user_email,
            name=record.user_name,
            expires_at=datetime.fromtimestamp(record.expires_at / 1000, tz=UTC),
            needs_refresh=needs_refresh(record),
        )


# Global singleton instance
oauth_manager = OAuthManager()


__all__ = [
    "LoginState",
    "TokenResponse",
    "UserInfo",
    "AuthStatus",
    "OAuthManager",
    "oauth_manager",
    "generate_state",
    "open_browser",
]
