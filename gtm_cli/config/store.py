"""User preferences and default resource IDs, stored in ``config.json``."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from gtm_cli.config.constants import get_config_path
from gtm_cli.utils.errors import GtmCliError, ValidationError

logger = logging.getLogger(__name__)

# Keys accepted by ``gtm config get|set|unset``, as written on disk
CONFIG_KEYS = (
    "defaultAccountId",
    "defaultContainerId",
    "defaultWorkspaceId",
    "outputFormat",
)


class UserConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    default_account_id: str | None = Field(default=None, alias="defaultAccountId")
    default_container_id: str | None = Field(default=None, alias="defaultContainerId")
    default_workspace_id: str | None = Field(default=None, alias="defaultWorkspaceId")
    output_format: Literal["json", "table", "compact"] | None = Field(
        default=None, alias="outputFormat"
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _field_name(key: str) -> str:
    """Map an on-disk key (``defaultAccountId``) to its attribute name."""
    for name, info in UserConfig.model_fields.items():
        if key in (name, info.alias):
            return name
    raise ValidationError(
        f"Invalid key: {key}. Valid keys: {', '.join(CONFIG_KEYS)}",
        field=key,
    )


class ConfigStore:
    """Loads and saves :class:`UserConfig`, caching it for the process.

    Example:
        >>> store = ConfigStore()
        >>> store.set("defaultAccountId", "123")
        >>> store.get_effective_value(None, "defaultAccountId")
        '123'
    """

    def __init__(self, path_factory: Callable[[], Path] = get_config_path) -> None:
        self._path_factory = path_factory
        self._cached: UserConfig | None = None

    @property
    def path(self) -> Path:
        return self._path_factory()

    def load(self) -> UserConfig:
        """Load the config, falling back to defaults when no file exists."""
        if self._cached is not None:
            return self._cached

        path = self.path
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._cached = UserConfig()
            return self._cached
        except OSError as e:
            raise GtmCliError(
                f"Failed to read config file: {e}",
                details={"path": str(path)},
            ) from e

        try:
            self._cached = UserConfig.model_validate_json(content)
        except PydanticValidationError as e:
            raise GtmCliError(
                f"Invalid config file {path}. Run 'gtm config clear' to reset it.",
                details={"errors": e.error_count()},
            ) from e
        return self._cached

    def save(self, config: UserConfig) -> None:
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise GtmCliError(
                f"Failed to save config file: {e}",
                details={"path": str(path)},
            ) from e
        self._cached = config
        logger.debug("Saved config to %s", path)

    def update(self, **updates: Any) -> UserConfig:
        """Apply attribute updates and persist the result."""
        try:
            updated = self.load().model_copy(update=updates)
            updated = UserConfig.model_validate(updated.model_dump())
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid configuration value: {e.errors()[0]['msg']}"
            ) from e
        self.save(updated)
        return updated

    def get(self, key: str) -> Any:
        return getattr(self.load(), _field_name(key))

    def set(self, key: str, value: Any) -> None:
        self.update(**{_field_name(key): value})

    def unset(self, key: str) -> None:
        self.update(**{_field_name(key): None})

    def clear(self) -> None:
        self.save(UserConfig())

    def invalidate(self) -> None:
        """Drop the cached config so the next load reads the file again."""
        self._cached = None

    def get_effective_value(self, cli_value: str | None, key: str) -> str | None:
        """CLI flag > config default > None."""
        if cli_value:
            return cli_value
        value = self.get(key)
        return str(value) if value else None


# Global singleton instance
config_store = ConfigStore()


__all__ = [
    "CONFIG_KEYS",
    "UserConfig",
    "ConfigStore",
    "config_store",
]
