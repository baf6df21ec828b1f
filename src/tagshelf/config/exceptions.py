"""Configuration errors."""

from tagshelf.errors import TagShelfError


class ConfigError(TagShelfError):
    """Raised when a config file, environment variable, or CLI override is invalid."""
