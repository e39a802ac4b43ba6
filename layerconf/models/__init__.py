"""Configuration models and schemas."""

from .schemas import (
    ConfigChange,
    EngineSettings,
    Override,
    ProviderStatus,
    ReloadReport,
    ResolvedEntry,
)

__all__ = [
    "Override",
    "ResolvedEntry",
    "ConfigChange",
    "ReloadReport",
    "ProviderStatus",
    "EngineSettings",
]
