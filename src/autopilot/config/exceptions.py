"""Custom exceptions for configuration loading."""


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


class UnknownTenantError(ConfigError):
    """No tenant with the given name or team ID is configured."""
