"""Configuration: constants, config-directory resolution and user defaults."""

from gtm_cli.config.constants import (
    APP_NAME,
    APP_VERSION,
    get_auth_method_path,
    get_config_dir,
    get_config_path,
    get_credentials_path,
)
from gtm_cli.config.store import CONFIG_KEYS, ConfigStore, UserConfig, config_store

__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "get_config_dir",
    "get_credentials_path",
    "get_auth_method_path",
    "get_config_path",
    "CONFIG_KEYS",
    "ConfigStore",
    "UserConfig",
    "config_store",
]
