"""Custom exception hierarchy and CLI error reporting for GTM CLI.

This module defines a structured exception hierarchy for the error conditions
that may occur while authenticating and talking to the Tag Manager API, plus
helpers that turn any raised error into a one-line message on stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import NoReturn

from googleapiclient.errors import HttpError

from gtm_cli.utils.output import error as print_error

logger = logging.getLogger(__name__)


class GtmCliError(Exception):
    """Base exception for all GTM CLI errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class AuthenticationError(GtmCliError):
    """Exception raised for OAuth, service-account and ADC failures.

    Examples:
        - The browser callback carried an ``error`` parameter
        - The callback ``state`` did not match (possible CSRF)
        - The token endpoint rejected the authorization code
        - No credential source is configured
    """

    pass


class TokenError(AuthenticationError):
    """Exception raised for credential file, refresh and minting errors.

    Examples:
        - Credential file is unreadable or contains invalid JSON
        - Token refresh failed due to revoked access
        - Session expired and no refresh token is stored
    """

    pass


class ValidationError(GtmCliError):
    """Exception raised for invalid user input.

    Attributes:
        field: The name of the option or key that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        """Initialize the validation error exception.

        Args:
            message: Human-readable error description.
            field: The name of the field that failed validation.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message, details)
        self.field = field


class GtmAPIError(GtmCliError):
    """Exception raised for errors returned by the Tag Manager API.

    Attributes:
        status_code: HTTP status code from the API response.
        error_code: API-specific error status, if available.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.error_code = error_code

    @classmethod
    def from_http_error(cls, error: HttpError) -> GtmAPIError:
        """Wrap a googleapiclient ``HttpError``."""
        status = getattr(error.resp, "status", None)
        error_code = None
        try:
            payload = json.loads(error.content.decode("utf-8"))
            error_code = payload.get("error", {}).get("status")
        except (ValueError, AttributeError):
            pass
        return cls(
            format_api_error(error),
            status_code=int(status) if status is not None else None,
            error_code=error_code,
        )


def format_api_error(error: BaseException | str | object) -> str:
    """Format an error for display.

    Google API errors carry their useful message inside the JSON response
    body; everything else falls back to its string form.
    """
    if isinstance(error, HttpError):
        try:
            payload = json.loads(error.content.decode("utf-8"))
        except (ValueError, AttributeError):
            return str(error)
        body = payload.get("error", {})
        nested = body.get("errors")
        if isinstance(nested, list) and nested:
            messages = [e.get("message", "") for e in nested if isinstance(e, dict)]
            if any(messages):
                return "\n".join(m for m in messages if m)
        if body.get("message"):
            return str(body["message"])
        return str(error)

    if isinstance(error, GtmCliError):
        return error.message

    return str(error)


def handle_error(error: BaseException) -> NoReturn:
    """Report an error on stderr and exit with status 1."""
    logger.debug("Command failed", exc_info=error)
    print_error(f"Error: {format_api_error(error)}")
    sys.exit(1)


def require_options(options: dict[str, object], required: list[str]) -> None:
    """Validate that every required option has a truthy value.

    Raises:
        ValidationError: Naming every missing option as a ``--flag``.
    """
    missing = [key for key in required if not options.get(key)]
    if missing:
        flags = ", ".join(f"--{key.replace('_', '-')}" for key in missing)
        raise ValidationError(
            f"Missing required options: {flags}",
            field=missing[0],
        )


__all__ = [
    "GtmCliError",
    "AuthenticationError",
    "TokenError",
    "ValidationError",
    "GtmAPIError",
    "format_api_error",
    "handle_error",
    "require_options",
]
