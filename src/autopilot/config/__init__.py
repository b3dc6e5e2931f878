"""Configuration - process settings and tenant definitions."""

from autopilot.config.exceptions import ConfigError, UnknownTenantError
from autopilot.config.settings import Settings, resolve_github_token
from autopilot.config.tenants import (
    ChannelType,
    NotificationChannel,
    TenantConfig,
    TenantRegistry,
    ValidationConfig,
    ValidationMode,
    ValidationStep,
    load_tenants,
)

__all__ = [
    "ChannelType",
    "ConfigError",
    "NotificationChannel",
    "Settings",
    "TenantConfig",
    "TenantRegistry",
    "UnknownTenantError",
    "ValidationConfig",
    "ValidationMode",
    "ValidationStep",
    "load_tenants",
    "resolve_github_token",
]
