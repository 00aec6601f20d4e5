"""Custom exceptions for configuration management."""

from sorty.errors import SortyError


class ConfigError(SortyError):
    """Raised when configuration data cannot be loaded, merged, or validated."""
