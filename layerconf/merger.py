"""Override merge policy.

Decides which value wins when several providers define the same key. The
default is first-present-wins in priority order; other strategies can be
assigned to key patterns.
"""

import logging
from collections.abc import Iterable
from enum import Enum
from fnmatch import fnmatchcase
from typing import Callable, Optional, Union

from .errors import ConfigurationError
from .models.schemas import Override

logger = logging.getLogger(__name__)

MergeHandler = Callable[[str, list[Override]], Optional[Override]]


class MergeStrategy(Enum):
    """Override merge strategies."""

    FIRST_WINS = "first_wins"  # Highest priority present override wins
    LAST_WINS = "last_wins"  # Lowest priority present override wins
    CONCATENATE = "concatenate"  # Join every present value, highest first


class MergeError(ConfigurationError):
    """Exception raised for an invalid merge policy."""

    pass


class MergePolicy:
    """Maps key patterns to merge strategies.

    Patterns use shell-style wildcards and are matched case-sensitively.
    When several patterns match, the longest one wins; equal lengths go to
    the pattern registered first.
    """

    def __init__(
        self,
        default_strategy: MergeStrategy = MergeStrategy.FIRST_WINS,
        separator: str = ",",
        strategies: Optional[dict[str, Union[MergeStrategy, MergeHandler]]] = None,
    ):
        """Initialize the merge policy.

        Args:
            default_strategy: Strategy for keys no pattern matches
            separator: Separator used by ``CONCATENATE``
            strategies: Pattern to strategy or custom handler mapping
        """
        self.default_strategy = default_strategy
        self.separator = separator
        self._strategies: dict[str, Union[MergeStrategy, MergeHandler]] = {}
        for pattern, strategy in (strategies or {}).items():
            self.set_strategy(pattern, strategy)

    def set_strategy(
        self, pattern: str, strategy: Union[MergeStrategy, MergeHandler]
    ) -> None:
        """Assign a strategy or custom handler to a key pattern."""
        if not pattern:
            raise MergeError("Merge pattern must be a non-empty string")
        if not isinstance(strategy, MergeStrategy) and not callable(strategy):
            raise MergeError(f"Invalid merge strategy for '{pattern}': {strategy!r}")
        self._strategies[pattern] = strategy

    def remove_strategy(self, pattern: str) -> bool:
        return self._strategies.pop(pattern, None) is not None

    def strategy_for(self, key: str) -> Union[MergeStrategy, MergeHandler]:
        best: Optional[str] = None
        for pattern in self._strategies:
            if fnmatchcase(key, pattern) and (best is None or len(pattern) > len(best)):
                best = pattern
        if best is None:
            return self.default_strategy
        return self._strategies[best]

    def merge(
        self, key: str, overrides: Iterable[Optional[Override]]
    ) -> Optional[Override]:
        """Pick the effective override for ``key``.

        Args:
            key: Configuration key
            overrides: Provider overrides in priority order, highest first.
                Consumed lazily for ``FIRST_WINS``.

        Returns:
            The winning override, or None when no provider defines the key
        """
        present = (o for o in overrides if o is not None and o.present)
        strategy = self.strategy_for(key)

        if strategy == MergeStrategy.FIRST_WINS:
            return next(present, None)

        candidates = list(present)
        if not candidates:
            return None

        if strategy == MergeStrategy.LAST_WINS:
            return candidates[-1]

        if strategy == MergeStrategy.CONCATENATE:
            return Override(
                source=candidates[0].source,
                value=self.separator.join(o.value for o in candidates),
            )

        try:
            result = strategy(key, candidates)
        except Exception as e:
            logger.warning(f"Custom merge handler failed for {key}: {e}")
            return candidates[0]
        if result is not None and not isinstance(result, Override):
            logger.warning(
                f"Custom merge handler for {key} returned {type(result).__name__}, "
                "expected Override"
            )
            return candidates[0]
        return result
