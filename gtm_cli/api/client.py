"""Authenticated Tag Manager API client factory.

Resolves the active credential provider (environment key file, then the saved
auth method, then OAuth), and binds the resulting bearer token to a
``googleapiclient`` service object. The service is cached per factory
instance and rebuilt only when the token changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, NamedTuple

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from gtm_cli.auth.oauth import OAuthManager, oauth_manager
from gtm_cli.auth.service_account import ServiceAccountAuth, service_account_auth
from gtm_cli.utils.errors import AuthenticationError, GtmAPIError

logger = logging.getLogger(__name__)

API_NAME = "tagmanager"
API_VERSION = "v2"

# Resource path segments, outermost first
PATH_SEGMENTS: tuple[tuple[str, str], ...] = (
    ("account_id", "accounts"),
    ("container_id", "containers"),
    ("workspace_id", "workspaces"),
    ("tag_id", "tags"),
    ("trigger_id", "triggers"),
    ("variable_id", "variables"),
    ("folder_id", "folders"),
    ("version_id", "versions"),
    ("environment_id", "environments"),
    ("client_id", "clients"),
    ("template_id", "templates"),
    ("transformation_id", "transformations"),
    ("zone_id", "zones"),
    ("destination_id", "destinations"),
    ("gtag_config_id", "gtag_config"),
    ("permission_id", "user_permissions"),
)


class CachedClient(NamedTuple):
    """A service object and the exact token it was built with."""

    token: str
    service: Any


def build_path(**ids: str | None) -> str:
    """Build a GTM resource path from IDs.

    Example:
        >>> build_path(account_id="1", container_id="2")
        'accounts/1/containers/2'
    """
    unknown = set(ids) - {name for name, _ in PATH_SEGMENTS}
    if unknown:
        raise TypeError(f"Unknown path component(s): {', '.join(sorted(unknown))}")
    return "/".join(
        f"{segment}/{ids[name]}" for name, segment in PATH_SEGMENTS if ids.get(name)
    )


class TagManagerClient:
    """Factory for authenticated Tag Manager API service objects.

    Example:
        >>> client = TagManagerClient()
        >>> service = client.get_client()
        >>> service.accounts().list().execute()
    """

    def __init__(
        self,
        oauth: OAuthManager | None = None,
        alternate: ServiceAccountAuth | None = None,
        service_builder: Callable[[str], Any] | None = None,
    ) -> None:
        self._oauth = oauth or oauth_manager
        self._alternate = alternate or service_account_auth
        self._service_builder = service_builder or self._build_service
        self._cached: CachedClient | None = None
        self._token_resolvers: tuple[Callable[[], str | None], ...] = (
            self._token_from_alternate,
            self._oauth.get_access_token,
        )

    def _token_from_alternate(self) -> str | None:
        resolved = self._alternate.get_access_token()
        return resolved.access_token if resolved is not None else None

    def resolve_token(self) -> str:
        """Return the bearer token of the first provider that yields one.

        Raises:
            AuthenticationError: If no provider has a usable token.
        """
        for resolver in self._token_resolvers:
            token = resolver()
            if token:
                return token
        raise AuthenticationError(
            "Not authenticated. Please run 'gtm auth login' first."
        )

    @staticmethod
    def _build_service(token: str) -> Any:
        credentials = Credentials(token=token)  # type: ignore[no-untyped-call]
        return build(API_NAME, API_VERSION, credentials=credentials, cache_discovery=False)

    def get_client(self) -> Any:
        """Return a Tag Manager service bound to the current token.

        The cached service is reused while the resolved token is unchanged.
        """
        token = self.resolve_token()
        if self._cached is not None and self._cached.token == token:
            return self._cached.service

        logger.debug("Building Tag Manager API client")
        self._cached = CachedClient(token, self._service_builder(token))
        return self._cached.service

    def invalidate(self) -> None:
        self._cached = None


def execute(request: Any) -> dict[str, Any]:
    """Execute a googleapiclient request, wrapping API errors.

    Raises:
        GtmAPIError: If the API returns an error status.
    """
    try:
        response = request.execute()
    except HttpError as e:
        logger.debug("Tag Manager API error: %s", e)
        raise GtmAPIError.from_http_error(e) from e
    return response or {}


# Global singleton instance
tag_manager_client = TagManagerClient()


def get_client() -> Any:
    """Return an authenticated service from the process-wide factory."""
    return tag_manager_client.get_client()


__all__ = [
    "CachedClient",
    "TagManagerClient",
    "tag_manager_client",
    "build_path",
    "execute",
    "get_client",
]
