"""Service-account and Application Default Credentials authentication.

Besides the interactive OAuth flow, the CLI can authenticate with:

- A service account key file, given with ``gtm auth login --service-account``
  or through the ``GOOGLE_APPLICATION_CREDENTIALS`` environment variable
- Application Default Credentials (``gtm auth login --adc``), discovered from
  the environment or the gcloud configuration

The chosen method is persisted to ``auth-method.json``, separate from the
OAuth credential record.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

import google.auth
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from gtm_cli.config.constants import (
    OAUTH_SCOPES,
    SERVICE_ACCOUNT_ENV,
    get_auth_method_path,
)
from gtm_cli.utils.errors import TokenError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_KEY_FIELDS = ("private_key", "client_email")


class AuthMethod(str, Enum):
    OAUTH = "oauth"
    SERVICE_ACCOUNT = "service-account"
    ADC = "adc"


class AuthMethodConfig(BaseModel):
    """The active non-interactive auth method as stored on disk."""

    model_config = ConfigDict(populate_by_name=True)

    method: AuthMethod = AuthMethod.OAUTH
    service_account_path: str | None = Field(default=None, alias="serviceAccountPath")
    service_account_email: str | None = Field(default=None, alias="serviceAccountEmail")

    @model_validator(mode="after")
    def _require_key_path(self) -> AuthMethodConfig:
        if self.method is AuthMethod.SERVICE_ACCOUNT and not self.service_account_path:
            raise ValueError("serviceAccountPath is required for service-account")
        return self

    def to_json(self) -> str:
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        return json.dumps(data, indent=2) + "\n"


class ResolvedToken(NamedTuple):
    """An access token minted by a non-OAuth provider."""

    access_token: str
    method: AuthMethod
    source: str


class AuthMethodStore:
    """File-based store for :class:`AuthMethodConfig`."""

    def __init__(self, path_factory: Callable[[], Path] = get_auth_method_path) -> None:
        self._path_factory = path_factory

    @property
    def path(self) -> Path:
        return self._path_factory()

    def save(self, config: AuthMethodConfig) -> None:
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(config.to_json(), encoding="utf-8")
            if sys.platform != "win32":
                path.chmod(0o600)
        except OSError as e:
            logger.error("Failed to save auth method: %s", e)
            raise TokenError(
                f"Failed to save auth method: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

    def load(self) -> AuthMethodConfig | None:
        """Load the saved method, or None when no file exists."""
        path = self.path
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise TokenError(
                f"Failed to read auth method file: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

        try:
            return AuthMethodConfig.model_validate_json(content)
        except PydanticValidationError as e:
            logger.error("Invalid auth method file %s: %s", path, e)
            raise TokenError(
                "Auth method file is corrupt. Run 'gtm auth logout' and log in again.",
                details={"path": str(path)},
            ) from e

    def clear(self) -> bool:
        """Delete the saved method. Returns False if none existed."""
        path = self.path
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise TokenError(
                f"Failed to delete auth method file: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e
        return True


def validate_key_file(path: str | Path) -> dict[str, Any]:
    """Read and check a service account key file.

    Returns:
        The parsed key.

    Raises:
        ValidationError: If the file is missing, is not valid JSON, is not a
            service account key, or lacks ``private_key``/``client_email``.
    """
    key_path = Path(path).expanduser()
    try:
        content = key_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ValidationError(
            f"Service account key file not found: {path}",
            field="service_account",
        ) from e
    except OSError as e:
        raise ValidationError(
            f"Cannot read service account key file: {path} ({e})",
            field="service_account",
        ) from e

    try:
        key = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Invalid JSON in service account key file: {path}",
            field="service_account",
        ) from e

    if not isinstance(key, dict) or key.get("type") != "service_account":
        raise ValidationError(
            "Invalid key file: not a service account key",
            field="service_account",
        )

    missing = [name for name in REQUIRED_KEY_FIELDS if not key.get(name)]
    if missing:
        raise ValidationError(
            "Invalid key file: missing required fields",
            field="service_account",
            details={"missing": missing},
        )

    return key


class ServiceAccountAuth:
    """Service-account and ADC credential provider.

    ``get_access_token`` consults its token sources in order, first match
    wins:

    1. The key file named by ``GOOGLE_APPLICATION_CREDENTIALS``
    2. The saved :class:`AuthMethodConfig`

    A None result means OAuth should be used.
    """

    def __init__(
        self,
        store: AuthMethodStore | None = None,
        scopes: list[str] | None = None,
    ) -> None:
        self._store = store or AuthMethodStore()
        self._scopes = scopes or OAUTH_SCOPES
        self._token_sources: tuple[Callable[[], ResolvedToken | None], ...] = (
            self._token_from_env,
            self._token_from_saved_method,
        )

    @property
    def store(self) -> AuthMethodStore:
        return self._store

    # =========================================================================
    # Token minting
    # =========================================================================

    def _mint_from_key_file(self, path: str | Path) -> str:
        try:
            credentials = service_account.Credentials.from_service_account_file(
                str(Path(path).expanduser()), scopes=self._scopes
            )
            credentials.refresh(Request())
        except (GoogleAuthError, ValueError) as e:
            logger.error("Service account token request failed: %s", e)
            raise TokenError(
                f"Failed to get access token from service account: {e}",
                details={"key_file": str(path)},
            ) from e
        if not credentials.token:
            raise TokenError("Failed to get access token from service account")
        return str(credentials.token)

    def _mint_from_adc(self) -> tuple[str, str | None]:
        try:
            credentials, project_id = google.auth.default(scopes=self._scopes)
            credentials.refresh(Request())
        except DefaultCredentialsError as e:
            raise TokenError(
                "Application Default Credentials are not available. Run "
                "'gcloud auth application-default login' or set "
                f"{SERVICE_ACCOUNT_ENV}.",
                details={"error": str(e)},
            ) from e
        except GoogleAuthError as e:
            logger.error("ADC token request failed: %s", e)
            raise TokenError(
                f"Failed to get access token from Application Default Credentials: {e}",
            ) from e
        if not credentials.token:
            raise TokenError(
                "Failed to get access token from Application Default Credentials"
            )
        logger.debug("ADC resolved for project %s", project_id)
        email = getattr(credentials, "service_account_email", None)
        if email == "default":
            # Compute Engine credentials report "default" until queried
            email = None
        return str(credentials.token), email

    # =========================================================================
    # Token sources
    # =========================================================================

    def _token_from_env(self) -> ResolvedToken | None:
        key_path = os.getenv(SERVICE_ACCOUNT_ENV)
        if not key_path:
            return None
        validate_key_file(key_path)
        return ResolvedToken(
            self._mint_from_key_file(key_path),
            AuthMethod.SERVICE_ACCOUNT,
            SERVICE_ACCOUNT_ENV,
        )

    def _token_from_saved_method(self) -> ResolvedToken | None:
        config = self._store.load()
        if config is None or config.method is AuthMethod.OAUTH:
            return None

        if config.method is AuthMethod.SERVICE_ACCOUNT:
            validate_key_file(config.service_account_path)
            token = self._mint_from_key_file(config.service_account_path)
            return ResolvedToken(token, AuthMethod.SERVICE_ACCOUNT, str(self._store.path))

        token, _ = self._mint_from_adc()
        return ResolvedToken(token, AuthMethod.ADC, str(self._store.path))

    def get_access_token(self) -> ResolvedToken | None:
        """Mint a token from the first configured non-OAuth source.

        Returns:
            The token, or None if OAuth should be used.

        Raises:
            ValidationError: If a configured key file is invalid.
            TokenError: If minting fails.
        """
        for source in self._token_sources:
            resolved = source()
            if resolved is not None:
                logger.debug(
                    "Using %s credentials from %s", resolved.method.value, resolved.source
                )
                return resolved
        return None

    # =========================================================================
    # Login / logout
    # =========================================================================

    def login_with_service_account(self, path: str | Path) -> AuthMethodConfig:
        """Validate a key file, confirm it can mint a token and make it active.

        The OAuth credential record is left untouched.
        """
        key = validate_key_file(path)
        self._mint_from_key_file(path)

        config = AuthMethodConfig(
            method=AuthMethod.SERVICE_ACCOUNT,
            service_account_path=str(Path(path).expanduser().resolve()),
            service_account_email=key["client_email"],
        )
        self._store.save(config)
        logger.info("Authenticated with service account %s", config.service_account_email)
        return config

    def login_with_adc(self) -> AuthMethodConfig:
        """Confirm ADC can mint a token and make it the active method."""
        _, email = self._mint_from_adc()
        config = AuthMethodConfig(method=AuthMethod.ADC, service_account_email=email)
        self._store.save(config)
        logger.info("Authenticated with Application Default Credentials")
        return config

    def is_adc_available(self) -> bool:
        """Check for ADC without raising."""
        try:
            google.auth.default(scopes=self._scopes)
        except DefaultCredentialsError as e:
            logger.debug("ADC not available: %s", e)
            return False
        return True

    def load_auth_method(self) -> AuthMethodConfig | None:
        return self._store.load()

    def save_auth_method(self, config: AuthMethodConfig) -> None:
        self._store.save(config)

    def clear_auth_method(self) -> bool:
        return self._store.clear()


# Global singleton instance
service_account_auth = ServiceAccountAuth()


__all__ = [
    "AuthMethod",
    "AuthMethodConfig",
    "AuthMethodStore",
    "ResolvedToken",
    "ServiceAccountAuth",
    "service_account_auth",
    "validate_key_file",
]
