"""Utility functions and helpers for GTM CLI.

This module provides the exception hierarchy, output formatting and
pagination helpers shared by the command modules.
"""

from gtm_cli.utils.errors import (
    AuthenticationError,
    GtmAPIError,
    GtmCliError,
    TokenError,
    ValidationError,
    format_api_error,
    handle_error,
    require_options,
)
from gtm_cli.utils.output import error, get_output_format, info, success, warn
from gtm_cli.utils.pagination import (
    PaginatedResult,
    list_all_pages,
    paginate,
    with_pagination_info,
)

__all__ = [
    # Exception hierarchy
    "GtmCliError",
    "AuthenticationError",
    "TokenError",
    "ValidationError",
    "GtmAPIError",
    "format_api_error",
    "handle_error",
    "require_options",
    # Output
    "get_output_format",
    "success",
    "error",
    "warn",
    "info",
    # Pagination
    "PaginatedResult",
    "list_all_pages",
    "paginate",
    "with_pagination_info",
]
