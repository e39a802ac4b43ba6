"""Exception taxonomy for the configuration engine.

Structural problems (duplicate provider names, bad priority lists) are raised
to the caller. Per-provider reload and close problems are wrapped in
``ReloadFailure`` / ``CloseFailure`` and collected into reports instead.
"""

from typing import Optional


class ConfigurationError(Exception):
    """Base exception for configuration errors."""

    pass


class SourceRegistrationConflict(ConfigurationError):
    """Raised when a provider name is already registered with the engine."""

    def __init__(self, source: str):
        super().__init__(f"A provider named '{source}' is already registered")
        self.source = source


class ProviderError(ConfigurationError):
    """Exception raised by a provider for invalid use or bad input."""

    pass


class KeyUndefinedError(ConfigurationError, KeyError):
    """Raised by ``Configuration.require`` when no provider defines a key."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Configuration key '{self.key}' is not defined by any provider"


class ReloadFailure(ConfigurationError):
    """A provider could not complete a reload. The old snapshot stays live."""

    def __init__(self, source: str, cause: Optional[BaseException] = None):
        message = f"Reload of provider '{source}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.source = source
        self.cause = cause


class CloseFailure(ConfigurationError):
    """A provider raised while releasing its resources."""

    def __init__(self, source: str, cause: BaseException):
        super().__init__(f"Closing provider '{source}' failed: {cause}")
        self.source = source
        self.cause = cause


class ShutdownError(ConfigurationError):
    """Raised when an operation is attempted on a shut down engine."""

    pass
