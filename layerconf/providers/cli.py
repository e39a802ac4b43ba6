"""Command-line argument provider.

Accepts ``-D key=value`` / ``--define key=value`` options and trailing
``--key=value`` tokens. Arguments are parsed once, so the provider is static.
"""

import argparse
import logging
import sys
from typing import TYPE_CHECKING, Optional

from ..errors import ProviderError
from .base import Provider, ProviderFactory, SnapshotProvider

if TYPE_CHECKING:
    from ..manager import Configuration

logger = logging.getLogger(__name__)


class CommandLineProvider(SnapshotProvider):
    """Static provider holding settings passed on the command line."""

    SOURCE = "CommandLineProvider"

    def __init__(
        self,
        args: Optional[list[str]] = None,
        prog_name: Optional[str] = None,
        name: str = SOURCE,
    ):
        """Initialize the command-line provider.

        Args:
            args: Arguments to parse (None to use ``sys.argv[1:]``)
            prog_name: Program name for help text
            name: Provider identity

        Raises:
            ProviderError: If a ``--define`` value is not ``key=value``
        """
        super().__init__(name, reloadable=False)
        self.parser = argparse.ArgumentParser(
            prog=prog_name,
            add_help=False,
            allow_abbrev=False,
        )
        self.parser.add_argument(
            "-D",
            "--define",
            action="append",
            dest="defines",
            default=[],
            metavar="KEY=VALUE",
            help="Set a configuration value",
        )
        self.ignored: list[str] = []
        self._publish(self._parse(sys.argv[1:] if args is None else list(args)))

    def _parse(self, args: list[str]) -> dict[str, str]:
        parsed, remaining = self.parser.parse_known_args(args)

        settings = {}
        for define in parsed.defines:
            key, sep, value = define.partition("=")
            if not sep or not key.strip():
                raise ProviderError(f"Expected KEY=VALUE, got '{define}'")
            settings[key.strip()] = value

        for token in remaining:
            if token.startswith("--") and "=" in token:
                key, _, value = token[2:].partition("=")
                if key:
                    settings[key] = value
                    continue
            self.ignored.append(token)

        if self.ignored:
            logger.debug(f"Ignored command-line tokens: {self.ignored}")
        logger.debug(f"Parsed {len(settings)} settings from the command line")
        return settings

    def _load(self) -> None:
        return None


class CommandLineProviderFactory(ProviderFactory):
    """Parses the command line once and shares the resulting provider."""

    def __init__(
        self, args: Optional[list[str]] = None, name: str = CommandLineProvider.SOURCE
    ):
        self._name = name
        self._provider = CommandLineProvider(args, name=name)

    @property
    def name(self) -> str:
        return self._name

    def new_instance(
        self, config: "Configuration", reload_keys: frozenset[str]
    ) -> Provider:
        return self._provider

    def is_reloadable(self) -> bool:
        return False

    def describe(self) -> str:
        return "Reads -D KEY=VALUE and --KEY=VALUE settings from the command line."
