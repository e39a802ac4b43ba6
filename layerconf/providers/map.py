"""Static provider bootstrapped from an in-memory mapping."""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from .base import Provider, ProviderFactory, SnapshotProvider

if TYPE_CHECKING:
    from ..manager import Configuration

logger = logging.getLogger(__name__)


class MapProvider(SnapshotProvider):
    """Provider that copies a mapping once and never changes.

    ``reload()`` is a no-op and ``last_reload`` stays at ``0.0``: there is
    nothing behind the copy to re-synchronise with.
    """

    SOURCE = "MapProvider"

    def __init__(self, properties: Mapping[Any, Any], name: str = SOURCE):
        """Initialize the provider.

        Args:
            properties: Mapping to copy. Non-string keys are dropped, ``None``
                values are treated as absent and other values are stringified.
            name: Provider identity, unique within one engine
        """
        super().__init__(name, reloadable=False)
        values = {}
        for key, value in properties.items():
            if not isinstance(key, str):
                logger.debug(f"Dropping non-string key: {key!r}")
                continue
            if value is None:
                continue
            values[key] = value if isinstance(value, str) else str(value)
        self._publish(values)
        self._factory: Optional[MapProviderFactory] = None

    def factory(self) -> "MapProviderFactory":
        """Return the factory that hands out this instance."""
        if self._factory is None:
            self._factory = MapProviderFactory(self)
        return self._factory

    def _load(self) -> None:
        return None


class MapProviderFactory(ProviderFactory):
    """Factory wrapping a pre-built ``MapProvider``.

    Every ``new_instance`` call returns the same provider; construction
    happened once, when the mapping was copied.
    """

    def __init__(self, provider: MapProvider):
        self._provider = provider

    @property
    def name(self) -> str:
        return self._provider.source

    def new_instance(
        self, config: "Configuration", reload_keys: frozenset[str]
    ) -> Provider:
        return self._provider

    def is_reloadable(self) -> bool:
        return False

    def describe(self) -> str:
        return (
            "A provider generated by passing a mapping of properties "
            "to the configuration engine."
        )
