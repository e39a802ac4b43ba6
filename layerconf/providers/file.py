"""File-based configuration provider.

Supports JSON, YAML, INI, TOML and Java-style ``.properties`` files. Nested
structures are flattened into dot-notation keys so every value the engine
sees is a plain string.
"""

import configparser
import json
import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

import yaml

from ..errors import ProviderError
from .base import Provider, ProviderFactory, SnapshotProvider

if TYPE_CHECKING:
    from ..manager import Configuration

logger = logging.getLogger(__name__)


class ConfigFormat(Enum):
    """Supported configuration file formats."""

    JSON = "json"
    YAML = "yaml"
    INI = "ini"
    TOML = "toml"
    PROPERTIES = "properties"


class FileLoadError(ProviderError):
    """Exception raised when file loading fails."""

    pass


class FormatError(ProviderError):
    """Exception raised when file format is unsupported or invalid."""

    pass


_FORMAT_MAP = {
    ".json": ConfigFormat.JSON,
    ".yaml": ConfigFormat.YAML,
    ".yml": ConfigFormat.YAML,
    ".ini": ConfigFormat.INI,
    ".cfg": ConfigFormat.INI,
    ".toml": ConfigFormat.TOML,
    ".properties": ConfigFormat.PROPERTIES,
}


def detect_format(path: Path) -> ConfigFormat:
    """Auto-detect configuration file format from extension.

    Raises:
        FormatError: If format cannot be detected
    """
    suffix = path.suffix.lower()
    if suffix in _FORMAT_MAP:
        return _FORMAT_MAP[suffix]
    raise FormatError(f"Unsupported file format: {suffix}")


def parse_content(content: str, format: ConfigFormat) -> dict[str, Any]:
    """Parse configuration content based on format.

    Raises:
        FormatError: If parsing fails or the document is not a mapping
    """
    try:
        if format == ConfigFormat.JSON:
            config = json.loads(content)
        elif format == ConfigFormat.YAML:
            config = yaml.safe_load(content) or {}
        elif format == ConfigFormat.TOML:
            config = tomllib.loads(content)
        elif format == ConfigFormat.INI:
            parser = configparser.ConfigParser(interpolation=None)
            parser.optionxform = str
            parser.read_string(content)
            config = dict(parser.defaults())
            for section_name in parser.sections():
                config[section_name] = dict(parser.items(section_name, raw=True))
        elif format == ConfigFormat.PROPERTIES:
            config = parse_properties(content)
        else:
            raise FormatError(f"Unsupported format: {format}")
    except FormatError:
        raise
    except Exception as e:
        raise FormatError(f"Failed to parse {format.value} content: {e}")

    if not isinstance(config, dict):
        raise FormatError(
            f"Top level of a {format.value} document must be a mapping, "
            f"got {type(config).__name__}"
        )
    return config


def parse_properties(content: str) -> dict[str, str]:
    """Parse Java-style properties: ``key=value`` or ``key: value`` lines.

    Lines starting with ``#`` or ``!`` are comments and a trailing backslash
    continues a value on the next line.
    """
    properties = {}
    pending = ""
    for raw_line in content.splitlines():
        line = raw_line.strip() if not pending else raw_line.lstrip()
        if not pending and (not line or line[0] in "#!"):
            continue
        if line.endswith("\\") and not line.endswith("\\\\"):
            pending += line[:-1]
            continue
        line = pending + line
        pending = ""

        separators = [i for i in (line.find("="), line.find(":")) if i >= 0]
        if separators:
            index = min(separators)
            key, value = line[:index].strip(), line[index + 1 :].strip()
        else:
            key, value = line.strip(), ""
        if key:
            properties[key] = value

    if pending.strip():
        properties[pending.strip()] = ""
    return properties


def flatten(
    config: dict[str, Any], parent_key: str = "", sep: str = "."
) -> dict[str, str]:
    """Flatten nested dictionary into dot-notation keys with string values.

    ``None`` values are dropped, booleans become ``true``/``false`` and
    lists are joined with commas.
    """
    items: dict[str, str] = {}
    for k, v in config.items():
        new_key = f"{parent_key}{sep}{k}" if parent_key else str(k)
        if isinstance(v, dict):
            items.update(flatten(v, new_key, sep=sep))
        elif v is None:
            continue
        else:
            items[new_key] = _to_string(v)
    return items


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_to_string(item) for item in value)
    return str(value)


class FileProvider(SnapshotProvider):
    """Dynamic provider that re-reads a configuration file when it changes.

    The file is only re-parsed when its modification time or size differ
    from the last successful load. A file that disappears or stops parsing
    leaves the previous snapshot in place.
    """

    SOURCE = "FileProvider"

    def __init__(
        self,
        file_path: Union[str, Path],
        format: Optional[ConfigFormat] = None,
        required: bool = False,
        encoding: str = "utf-8",
        name: Optional[str] = None,
    ):
        """Initialize the file provider.

        Args:
            file_path: Path to configuration file
            format: File format (auto-detected if None)
            required: Raise if the file is missing at construction
            encoding: File encoding to use
            name: Provider identity, defaults to ``FileProvider[<file name>]``

        Raises:
            FileLoadError: If the file is required but missing or unreadable
            FormatError: If the format is unsupported or the content invalid
        """
        self.path = Path(file_path)
        super().__init__(name or f"{self.SOURCE}[{self.path.name}]", reloadable=True)
        self.format = format or detect_format(self.path)
        self.encoding = encoding
        self.required = required
        self._stamp: Optional[tuple[int, int]] = None
        self._initial_load()

    def _load(self) -> Optional[dict[str, str]]:
        if not self.path.exists():
            if self._stamp is None and not self.required:
                logger.warning(f"Configuration file not found: {self.path}")
                return {}
            raise FileLoadError(f"Configuration file not found: {self.path}")

        if not self.path.is_file():
            raise FileLoadError(f"Path is not a file: {self.path}")

        try:
            stat = self.path.stat()
            stamp = (stat.st_mtime_ns, stat.st_size)
            if stamp == self._stamp:
                return None
            content = self.path.read_text(encoding=self.encoding)
        except OSError as e:
            raise FileLoadError(f"Failed to read file {self.path}: {e}")

        values = flatten(parse_content(content, self.format))
        self._stamp = stamp
        logger.info(
            f"Loaded {len(values)} settings from {self.path} ({self.format.value})"
        )
        return values


class FileProviderFactory(ProviderFactory):
    """Builds a fresh ``FileProvider`` for each engine."""

    def __init__(
        self, file_path: Union[str, Path], name: Optional[str] = None, **options
    ):
        self.file_path = Path(file_path)
        self._name = name or f"{FileProvider.SOURCE}[{self.file_path.name}]"
        self._options = options

    @property
    def name(self) -> str:
        return self._name

    def new_instance(
        self, config: "Configuration", reload_keys: frozenset[str]
    ) -> Provider:
        return FileProvider(self.file_path, name=self._name, **self._options)

    def is_reloadable(self) -> bool:
        return True

    def describe(self) -> str:
        return f"Reads configuration values from the file {self.file_path}."
