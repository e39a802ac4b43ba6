"""Provider and provider factory contracts.

A provider owns a private snapshot of raw key/value pairs and hands the
engine an ``Override`` per key. Dynamic providers refresh the snapshot on
``reload()``; static providers never change after construction.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Optional

from ..errors import ProviderError
from ..models.schemas import Override

if TYPE_CHECKING:
    from ..manager import Configuration

logger = logging.getLogger(__name__)


class Provider(ABC):
    """A pluggable origin of configuration overrides."""

    @property
    @abstractmethod
    def source(self) -> str:
        """Stable, human readable identity of this provider."""

    @abstractmethod
    def get_override(self, key: str) -> Optional[Override]:
        """Return this provider's override for ``key``.

        A ``None`` return or an override whose value is ``None`` both mean
        the key is absent here.
        """

    @abstractmethod
    def reload(self) -> bool:
        """Refresh the snapshot from the backing system.

        Must not raise. Returns False when the reload could not complete, in
        which case the previous snapshot stays authoritative.
        """

    @property
    @abstractmethod
    def last_reload(self) -> float:
        """Epoch seconds of the last successful reload, ``0.0`` if never."""

    @abstractmethod
    def close(self) -> None:
        """Release held resources. Safe to call more than once."""

    @property
    def reloadable(self) -> bool:
        return False

    @property
    def last_error(self) -> Optional[str]:
        return None

    def keys(self) -> Iterable[str]:
        """Keys currently known to the provider, where it can list them."""
        return ()


class ProviderFactory(ABC):
    """Builds a provider for a configuration engine."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identity of the providers this factory builds."""

    @abstractmethod
    def new_instance(
        self, config: "Configuration", reload_keys: frozenset[str]
    ) -> Provider:
        """Create (or hand back) a provider for ``config``.

        Args:
            config: The engine the provider is being registered with
            reload_keys: Keys that justify a targeted reload; may be ignored
        """

    @abstractmethod
    def is_reloadable(self) -> bool:
        """Whether the providers built by this factory are dynamic."""

    @abstractmethod
    def describe(self) -> str:
        """Human readable description for diagnostics."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class SnapshotProvider(Provider):
    """Provider base that keeps its values in an atomically swapped snapshot.

    Subclasses implement ``_load`` to build a complete new mapping. The new
    mapping replaces the old one in a single assignment so concurrent readers
    see either the old or the new snapshot, never a mix.
    """

    def __init__(self, name: str, reloadable: bool = True):
        if not name:
            raise ProviderError("Provider name must be a non-empty string")
        self._name = name
        self._reloadable = reloadable
        self._snapshot: Mapping[str, str] = MappingProxyType({})
        self._last_reload = 0.0
        self._last_error: Optional[str] = None
        self._closed = False

    @property
    def source(self) -> str:
        return self._name

    @property
    def reloadable(self) -> bool:
        return self._reloadable

    @property
    def last_reload(self) -> float:
        return self._last_reload

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def closed(self) -> bool:
        return self._closed

    def get_override(self, key: str) -> Optional[Override]:
        if self._closed:
            raise ProviderError(f"Provider '{self._name}' is closed")
        if key is None:
            return None
        return Override(source=self._name, value=self._snapshot.get(key))

    def keys(self) -> Iterable[str]:
        return tuple(self._snapshot)

    def reload(self) -> bool:
        if self._closed:
            logger.debug(f"Ignoring reload of closed provider {self._name}")
            return False
        if not self._reloadable:
            return True

        try:
            values = self._load()
        except Exception as e:
            self._last_error = str(e) or type(e).__name__
            logger.warning(
                f"Reload of provider {self._name} failed, keeping last snapshot: {e}"
            )
            return False

        # None from _load means the backing data has not changed
        if values is not None:
            self._publish(values)
        self._last_reload = time.time()
        self._last_error = None
        return True

    def close(self) -> None:
        # Static snapshots hold nothing and may be shared between engines
        if self._closed or not self._reloadable:
            return
        self._closed = True
        self._release()
        logger.debug(f"Closed provider {self._name}")

    def _initial_load(self) -> None:
        """Populate the first snapshot, letting errors reach the constructor."""
        values = self._load()
        self._publish(values or {})
        self._last_reload = time.time()

    def _publish(self, values: Mapping[str, str]) -> None:
        self._snapshot = MappingProxyType(dict(values))

    @abstractmethod
    def _load(self) -> Optional[Mapping[str, str]]:
        """Build a fresh snapshot, or return None if nothing changed."""

    def _release(self) -> None:
        """Hook for subclasses holding resources."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source={self._name!r})"
