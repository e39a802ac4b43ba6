"""Data models for the configuration engine.

This module defines:
- Immutable value objects exchanged between providers and the engine
- Tick and diagnostic reports
- The pydantic settings model that configures the engine itself
"""

import os
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import ReloadFailure

# =============================================================================
# Data Classes for Configuration Resolution
# =============================================================================


@dataclass(frozen=True)
class Override:
    """The raw value one provider contributes for one key.

    ``value`` is ``None`` when the key is absent at the provider. An empty
    string is a present value.
    """

    source: str
    value: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class ResolvedEntry:
    """Cached resolution of a key across all providers."""

    key: str
    value: Optional[str]
    source: Optional[str]
    generation: int = 0
    timestamp: float = 0.0

    @property
    def defined(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class ConfigChange:
    """Configuration change event."""

    key: str
    old_value: Optional[str]
    new_value: Optional[str]
    old_source: Optional[str]
    new_source: Optional[str]
    generation: int
    timestamp: float


@dataclass
class ReloadReport:
    """Outcome of a single reload tick."""

    generation: int
    reloaded: list[str] = field(default_factory=list)
    failures: list[ReloadFailure] = field(default_factory=list)
    changes: list[ConfigChange] = field(default_factory=list)
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class ProviderStatus:
    """Diagnostic snapshot of a registered provider."""

    name: str
    reloadable: bool
    last_reload: float
    last_error: Optional[str] = None
    description: Optional[str] = None


# =============================================================================
# Engine Settings
# =============================================================================


class EngineSettings(BaseModel):
    """Settings for the resolution engine, its scheduler and watcher."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    reload_interval: float = Field(
        default=300.0, gt=0, description="Seconds between reload ticks"
    )
    reload_workers: int = Field(
        default=4, ge=1, description="Maximum providers reloaded in parallel"
    )
    shutdown_timeout: float = Field(
        default=10.0,
        ge=0,
        description="Seconds to wait for an in-flight tick during shutdown",
    )
    reload_keys: set[str] = Field(
        default_factory=set,
        description="Keys worth a targeted reload, passed to provider factories",
    )
    watch_files: bool = Field(
        default=False, description="Trigger a reload when provider files change"
    )
    watch_debounce: float = Field(
        default=0.5, ge=0, description="Debounce delay for file change events"
    )
    concat_separator: str = Field(
        default=",", description="Separator used by the CONCATENATE merge strategy"
    )

    @field_validator("reload_keys", mode="before")
    @classmethod
    def split_reload_keys(cls, v):
        """Accept a comma separated string of keys."""
        if isinstance(v, str):
            return {key.strip() for key in v.split(",") if key.strip()}
        return v

    @classmethod
    def from_env(
        cls, prefix: str = "LAYERCONF_", environ: Optional[dict[str, str]] = None
    ) -> "EngineSettings":
        """Build settings from ``<PREFIX><FIELD>`` environment variables.

        Args:
            prefix: Environment variable prefix
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Validated settings; unset fields keep their defaults
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            env_key = f"{prefix}{name.upper()}"
            if env_key in environ:
                values[name] = environ[env_key]
        return cls.model_validate(values)
