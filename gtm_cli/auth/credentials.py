"""OAuth credential record and its on-disk store.

The record is written as pretty-printed JSON to ``credentials.json`` in the
per-user config directory. Field names are camelCase on disk.

Security considerations:
- File permissions are set to 0600 (owner read/write only) on POSIX
- A missing file means "not logged in"; any other read failure is an error
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from gtm_cli.config.constants import get_credentials_path
from gtm_cli.utils.errors import TokenError

logger = logging.getLogger(__name__)

# Safety buffers, in milliseconds
EXPIRY_BUFFER_MS = 5 * 60 * 1000
REFRESH_BUFFER_MS = 10 * 60 * 1000


def now_ms() -> int:
    """Current time as a millisecond epoch."""
    return int(time.time() * 1000)


class CredentialRecord(BaseModel):
    """An OAuth grant as stored on disk.

    Attributes:
        access_token: Bearer token for API calls.
        refresh_token: Long-lived refresh token; empty when Google issued none.
        expires_at: Expiry instant as a millisecond epoch.
        token_type: Usually "Bearer".
        scope: Space-delimited granted scopes.
        user_email: Display only.
        user_name: Display only.
        user_id: Display only.
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(default="", alias="refreshToken")
    expires_at: int = Field(..., alias="expiresAt")
    token_type: str = Field(default="Bearer", alias="tokenType")
    scope: str = Field(default="", alias="scope")
    user_email: str | None = Field(default=None, alias="userEmail")
    user_name: str | None = Field(default=None, alias="userName")
    user_id: str | None = Field(default=None, alias="userId")

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True), indent=2) + "\n"


def is_expired(record: CredentialRecord, now: int | None = None) -> bool:
    """True once within five minutes of expiry."""
    current = now_ms() if now is None else now
    return current >= record.expires_at - EXPIRY_BUFFER_MS


def needs_refresh(record: CredentialRecord, now: int | None = None) -> bool:
    """True once within ten minutes of expiry.

    Wider than :func:`is_expired` so refresh happens before hard expiry.
    """
    current = now_ms() if now is None else now
    return current >= record.expires_at - REFRESH_BUFFER_MS


class CredentialStore:
    """File-based store for the single OAuth credential record.

    Example:
        >>> store = CredentialStore()
        >>> store.save(record)
        >>> store.load().access_token
        'ya29...'
    """

    def __init__(self, path_factory: Callable[[], Path] = get_credentials_path) -> None:
        """Initialize the store.

        Args:
            path_factory: Returns the credential file path. Resolved on every
                operation so the config directory follows the environment.
        """
        self._path_factory = path_factory

    @property
    def path(self) -> Path:
        return self._path_factory()

    def save(self, record: CredentialRecord) -> None:
        """Write the record, creating the config directory if needed.

        Raises:
            TokenError: If the file cannot be written.
        """
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(record.to_json(), encoding="utf-8")
            if sys.platform != "win32":
                path.chmod(0o600)
        except PermissionError as e:
            logger.error("Permission denied writing credential file: %s", e)
            raise TokenError(
                "Permission denied writing credential file",
                details={"path": str(path)},
            ) from e
        except OSError as e:
            logger.error("Failed to save credentials: %s", e)
            raise TokenError(
                f"Failed to save credentials: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

        logger.debug("Saved credentials to %s", path)

    def load(self) -> CredentialRecord | None:
        """Load the stored record.

        Returns:
            The record, or None if no credential file exists.

        Raises:
            TokenError: If the file exists but cannot be read or parsed.
        """
        path = self.path
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No credentials found at %s", path)
            return None
        except OSError as e:
            logger.error("Failed to read credential file: %s", e)
            raise TokenError(
                f"Failed to read credential file: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

        try:
            return CredentialRecord.model_validate_json(content)
        except PydanticValidationError as e:
            logger.error("Invalid credential file %s: %s", path, e)
            raise TokenError(
                "Credential file is corrupt. Run 'gtm auth logout' and log in again.",
                details={"path": str(path)},
            ) from e

    def delete(self) -> bool:
        """Delete the stored record.

        Returns:
            True if a file was deleted, False if none existed.

        Raises:
            TokenError: If the file exists but cannot be removed.
        """
        path = self.path
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("No credentials to delete at %s", path)
            return False
        except OSError as e:
            logger.error("Failed to delete credential file: %s", e)
            raise TokenError(
                f"Failed to delete credential file: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

        logger.debug("Deleted credentials at %s", path)
        return True


__all__ = [
    "CredentialRecord",
    "CredentialStore",
    "EXPIRY_BUFFER_MS",
    "REFRESH_BUFFER_MS",
    "is_expired",
    "needs_refresh",
    "now_ms",
]
