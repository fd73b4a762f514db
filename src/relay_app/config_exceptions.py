"""Configuration exceptions."""

class ConfigLoadError(Exception):
    """Raised when a configuration file cannot be read or parsed."""
    pass

class ConfigValidationError(Exception):
    """Raised when configuration values are present but invalid."""
    pass
