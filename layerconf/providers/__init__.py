"""Configuration provider package.

This package provides the provider contracts, the bundled provider
implementations and a registry that builds factories from simple names:

- ``Map``: static provider wrapping an in-memory mapping
- ``Environment``: dynamic provider backed by environment variables
- ``File``: dynamic provider backed by a JSON, YAML, INI, TOML or properties file
- ``CommandLine``: static provider parsed from command-line arguments
"""

from typing import Callable

from ..errors import ConfigurationError
from .base import Provider, ProviderFactory, SnapshotProvider
from .cli import CommandLineProvider, CommandLineProviderFactory
from .env import EnvironmentProvider, EnvironmentProviderFactory
from .file import ConfigFormat, FileProvider, FileProviderFactory
from .map import MapProvider, MapProviderFactory


def _map_factory(properties=None, **options) -> ProviderFactory:
    return MapProvider(properties or {}, **options).factory()


FACTORIES: dict[str, Callable[..., ProviderFactory]] = {
    "Map": _map_factory,
    "Environment": EnvironmentProviderFactory,
    "File": FileProviderFactory,
    "CommandLine": CommandLineProviderFactory,
}


def create_factory(name: str, **options) -> ProviderFactory:
    """Build a provider factory from its simple name.

    Args:
        name: One of the keys of ``FACTORIES``
        **options: Passed through to the factory constructor

    Raises:
        ConfigurationError: If the name is unknown
    """
    try:
        builder = FACTORIES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown provider '{name}'. Available: {', '.join(sorted(FACTORIES))}"
        ) from None
    return builder(**options)


__all__ = [
    "Provider",
    "ProviderFactory",
    "SnapshotProvider",
    "MapProvider",
    "MapProviderFactory",
    "EnvironmentProvider",
    "EnvironmentProviderFactory",
    "FileProvider",
    "FileProviderFactory",
    "ConfigFormat",
    "CommandLineProvider",
    "CommandLineProviderFactory",
    "FACTORIES",
    "create_factory",
]
