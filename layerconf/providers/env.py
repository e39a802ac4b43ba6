"""Environment variable provider.

Keeps a snapshot of the process environment and re-reads it on every
reload. Config keys map to variable names by upper-casing and replacing
dots with the separator, so ``tsd.network.port`` with prefix ``APP_`` is
looked up as ``tsd.network.port`` first and then ``APP_TSD_NETWORK_PORT``.
"""

import logging
import os
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Optional

from ..models.schemas import Override
from .base import Provider, ProviderFactory, SnapshotProvider

if TYPE_CHECKING:
    from ..manager import Configuration

logger = logging.getLogger(__name__)


class EnvironmentProvider(SnapshotProvider):
    """Dynamic provider backed by environment variables."""

    SOURCE = "EnvironmentProvider"

    def __init__(
        self,
        prefix: str = "",
        separator: str = "_",
        include_patterns: Optional[list[str]] = None,
        exclude_patterns: Optional[list[str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        name: str = SOURCE,
    ):
        """Initialize the environment provider.

        Args:
            prefix: Prefix prepended to derived variable names
            separator: Replacement for dots when deriving variable names
            include_patterns: Regex patterns a variable must match to be kept
            exclude_patterns: Regex patterns that drop a variable
            environ: Mapping to read instead of ``os.environ``
            name: Provider identity
        """
        super().__init__(name, reloadable=True)
        self.prefix = prefix
        self.separator = separator
        self.include_patterns = include_patterns or []
        self.exclude_patterns = exclude_patterns or []
        self._environ = os.environ if environ is None else environ
        self._initial_load()

    def get_override(self, key: str) -> Optional[Override]:
        override = super().get_override(key)
        if override is None or override.present:
            return override
        env_key = self.config_key_to_env_key(key)
        return Override(source=self.source, value=self._snapshot.get(env_key))

    def config_key_to_env_key(self, config_key: str) -> str:
        """Convert config key to environment variable name."""
        return f"{self.prefix}{config_key.replace('.', self.separator).upper()}"

    def _load(self) -> dict[str, str]:
        env_vars = {}
        for key, value in self._environ.items():
            if self.include_patterns:
                if not any(re.match(pattern, key) for pattern in self.include_patterns):
                    continue
            if self.exclude_patterns:
                if any(re.match(pattern, key) for pattern in self.exclude_patterns):
                    continue
            env_vars[key] = value

        logger.debug(f"Loaded {len(env_vars)} environment variables")
        return env_vars


class EnvironmentProviderFactory(ProviderFactory):
    """Builds a fresh ``EnvironmentProvider`` for each engine."""

    def __init__(self, name: str = EnvironmentProvider.SOURCE, **options):
        self._name = name
        self._options = options

    @property
    def name(self) -> str:
        return self._name

    def new_instance(
        self, config: "Configuration", reload_keys: frozenset[str]
    ) -> Provider:
        return EnvironmentProvider(name=self._name, **self._options)

    def is_reloadable(self) -> bool:
        return True

    def describe(self) -> str:
        return "Reads configuration values from the process environment."
