"""Tag Manager API client."""

from gtm_cli.api.client import (
    TagManagerClient,
    build_path,
    execute,
    get_client,
    tag_manager_client,
)

__all__ = [
    "TagManagerClient",
    "tag_manager_client",
    "build_path",
    "execute",
    "get_client",
]
