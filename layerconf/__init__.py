"""Multi-provider configuration resolution engine."""

from .errors import (
    CloseFailure,
    ConfigurationError,
    KeyUndefinedError,
    ProviderError,
    ReloadFailure,
    ShutdownError,
    SourceRegistrationConflict,
)
from .manager import Configuration
from .merger import MergePolicy, MergeStrategy
from .models import (
    ConfigChange,
    EngineSettings,
    Override,
    ProviderStatus,
    ReloadReport,
    ResolvedEntry,
)
from .providers import (
    CommandLineProvider,
    EnvironmentProvider,
    FileProvider,
    MapProvider,
    Provider,
    ProviderFactory,
    SnapshotProvider,
    create_factory,
)
from .scheduler import ReloadScheduler

__all__ = [
    "Configuration",
    "EngineSettings",
    "MergePolicy",
    "MergeStrategy",
    "ReloadScheduler",
    "Override",
    "ResolvedEntry",
    "ConfigChange",
    "ReloadReport",
    "ProviderStatus",
    "Provider",
    "ProviderFactory",
    "SnapshotProvider",
    "MapProvider",
    "EnvironmentProvider",
    "FileProvider",
    "CommandLineProvider",
    "create_factory",
    "ConfigurationError",
    "SourceRegistrationConflict",
    "ProviderError",
    "KeyUndefinedError",
    "ReloadFailure",
    "CloseFailure",
    "ShutdownError",
]
