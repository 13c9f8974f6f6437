"""crmimport configuration module.

This module provides TOML-based configuration with environment variable overrides.

Configuration is loaded from the following locations (in order of priority):
1. Environment variables (highest priority)
2. ./config.toml (project root - for development)
3. ~/.config/crmimport/config.toml (user config)
4. /etc/crmimport/config.toml (system config)

Secrets are loaded from secrets.env files in the same directories.
"""

from crmimport.config.schema import (
    CrmImportConfig,
    DatabaseConfig,
    ImportConfig,
    SecretsConfig,
    ServerConfig,
    StorageConfig,
)
from crmimport.config.settings import get_settings, reset_settings, settings

__all__ = [
    "CrmImportConfig",
    "DatabaseConfig",
    "ImportConfig",
    "SecretsConfig",
    "ServerConfig",
    "StorageConfig",
    "get_settings",
    "reset_settings",
    "settings",
]
