"""Main configuration resolution engine."""

import logging
import threading
import time
import uuid
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from fnmatch import fnmatchcase
from typing import Callable, Optional, Union

from .errors import (
    CloseFailure,
    ConfigurationError,
    KeyUndefinedError,
    ProviderError,
    ReloadFailure,
    ShutdownError,
    SourceRegistrationConflict,
)
from .merger import MergePolicy
from .models.schemas import (
    ConfigChange,
    EngineSettings,
    Override,
    ProviderStatus,
    ReloadReport,
    ResolvedEntry,
)
from .providers.base import Provider, ProviderFactory
from .providers.file import FileProvider
from .scheduler import ReloadScheduler
from .utils.watcher import FileChangeTrigger

logger = logging.getLogger(__name__)

ProviderLike = Union[Provider, ProviderFactory]
ProviderEntry = Union[ProviderLike, tuple[ProviderLike, int]]

_WILDCARDS = frozenset("*?[")


class Configuration:
    """Resolves configuration keys across an ordered list of providers.

    Providers are held highest priority first. A key resolves to the value of
    the first provider whose override is present, unless the merge policy
    assigns another strategy to the key. Resolutions are cached; every reload
    tick refreshes the dynamic providers, recomputes the cached keys and
    notifies subscribers about the ones whose value or provenance changed.

    Example:
        config = Configuration(
            [EnvironmentProvider(prefix="APP_"), MapProvider({"timeout": "30"})],
            settings=EngineSettings(reload_interval=60),
        )
        with config:
            timeout = config.resolve("timeout")
    """

    def __init__(
        self,
        providers: Optional[Sequence[ProviderEntry]] = None,
        settings: Optional[EngineSettings] = None,
        merge_policy: Optional[MergePolicy] = None,
    ):
        """Initialize the engine and register the given providers.

        Args:
            providers: Providers or factories, highest priority first. An entry
                may be a ``(provider, priority)`` tuple; entries are then
                ordered by priority (lower first) and bare entries use their
                list index. Ties keep list order.
            settings: Engine settings, defaults if None
            merge_policy: Merge policy, first-present-wins if None

        Raises:
            SourceRegistrationConflict: If two providers share a name
            ConfigurationError: If the provider list is malformed
        """
        self.settings = settings or EngineSettings()
        self.merge_policy = merge_policy or MergePolicy(
            separator=self.settings.concat_separator
        )

        self._providers: tuple[Provider, ...] = ()
        self._descriptions: dict[str, str] = {}
        self._entries: dict[str, ResolvedEntry] = {}
        self._subscriptions: dict[str, tuple[str, Callable[[ConfigChange], None]]] = {}

        # Cache writes and registration; readers go lock free
        self._write_lock = threading.RLock()
        # Serialises reload ticks so listeners see generations in order
        self._tick_lock = threading.Lock()
        # Cache misses wait here while providers are mid-reload
        self._reload_done = threading.Condition(self._write_lock)
        self._reloading = False
        self._epoch = 0
        self._generation = 0
        self._started = False
        self._closed = False

        self._executor: Optional[ThreadPoolExecutor] = None
        self._scheduler = ReloadScheduler(
            self.settings.reload_interval, self._scheduled_tick
        )
        self._watcher: Optional[FileChangeTrigger] = None

        try:
            for provider in self._order_entries(providers or []):
                self.register_provider(provider)
        except Exception:
            for provider in self._providers:
                self._close_provider(provider)
            raise

    # =============================================================================
    # Registration
    # =============================================================================

    def register_provider(
        self, provider: ProviderLike, position: Optional[int] = None
    ) -> Provider:
        """Register a provider or build one from a factory.

        Args:
            provider: Provider instance or factory
            position: Index in the priority list (0 is highest), None to
                append with the lowest priority

        Returns:
            The registered provider

        Raises:
            SourceRegistrationConflict: If the provider name is taken
            ConfigurationError: If the engine was started or the position is
                out of range
            ShutdownError: If the engine was shut down
        """
        with self._write_lock:
            self._check_registration_open()
            if position is not None and (
                isinstance(position, bool)
                or not isinstance(position, int)
                or not 0 <= position <= len(self._providers)
            ):
                raise ConfigurationError(
                    f"Invalid provider position {position!r}; expected 0 to "
                    f"{len(self._providers)}"
                )

            description = None
            if isinstance(provider, ProviderFactory):
                factory = provider
                self._check_name(factory.name)
                provider = factory.new_instance(self, self.reload_keys)
                description = factory.describe()
                try:
                    if provider.reloadable != factory.is_reloadable():
                        raise ConfigurationError(
                            f"Factory '{factory.name}' reports reloadable="
                            f"{factory.is_reloadable()} but built a provider with "
                            f"reloadable={provider.reloadable}"
                        )
                    self._check_name(provider.source)
                except ConfigurationError:
                    # Fresh instances belong to us; shared static ones do not
                    if factory.is_reloadable():
                        self._close_provider(provider)
                    raise
            elif isinstance(provider, Provider):
                self._check_name(provider.source)
            else:
                raise ConfigurationError(
                    "Expected a Provider or ProviderFactory, got "
                    f"{type(provider).__name__}"
                )

            providers = list(self._providers)
            providers.insert(len(providers) if position is None else position, provider)
            self._providers = tuple(providers)
            if description is not None:
                self._descriptions[provider.source] = description
            self._refresh_entries()

        logger.info(
            f"Registered provider {provider.source} at priority "
            f"{self._providers.index(provider)} (reloadable={provider.reloadable})"
        )
        return provider

    @property
    def providers(self) -> tuple[Provider, ...]:
        """Registered providers, highest priority first."""
        return self._providers

    def get_provider(self, name: str) -> Optional[Provider]:
        for provider in self._providers:
            if provider.source == name:
                return provider
        return None

    @property
    def reload_keys(self) -> frozenset[str]:
        """Keys worth a targeted reload: configured ones plus exact subscriptions."""
        keys = set(self.settings.reload_keys)
        for pattern, _ in self._subscriptions.values():
            if not _WILDCARDS.intersection(pattern):
                keys.add(pattern)
        return frozenset(keys)

    # =============================================================================
    # Queries
    # =============================================================================

    def resolve(self, key: str) -> Optional[str]:
        """Get the effective value of ``key``.

        Returns:
            The value, which may be an empty string, or None when no
            provider defines the key
        """
        return self._entry(key).value

    def resolve_with_provenance(self, key: str) -> Optional[ResolvedEntry]:
        """Get the effective value of ``key`` with the winning provider.

        Returns:
            The resolved entry, or None when no provider defines the key
        """
        entry = self._entry(key)
        return entry if entry.defined else None

    def require(self, key: str) -> str:
        """Get the effective value of ``key``, raising if it is undefined.

        Raises:
            KeyUndefinedError: If no provider defines the key
        """
        value = self._entry(key).value
        if value is None:
            raise KeyUndefinedError(key)
        return value

    def is_defined(self, key: str) -> bool:
        return self._entry(key).defined

    def get_overrides(self, key: str) -> list[Override]:
        """Get every provider's override for ``key`` in priority order."""
        self._check_open()
        return [
            self._get_override(provider, key) or Override(source=provider.source)
            for provider in self._providers
        ]

    def get_entries(self) -> dict[str, ResolvedEntry]:
        """Snapshot of the resolution cache."""
        return dict(self._entries)

    @property
    def generation(self) -> int:
        """Number of reload ticks that changed at least one value."""
        return self._generation

    def provider_status(self) -> list[ProviderStatus]:
        return [
            ProviderStatus(
                name=provider.source,
                reloadable=provider.reloadable,
                last_reload=provider.last_reload,
                last_error=provider.last_error,
                description=self._descriptions.get(provider.source),
            )
            for provider in self._providers
        ]

    # =============================================================================
    # Subscriptions
    # =============================================================================

    def subscribe(
        self, callback: Callable[[ConfigChange], None], pattern: str = "*"
    ) -> str:
        """Subscribe to changes of effective values.

        A pattern without wildcards is resolved immediately so the key is
        tracked from the next tick on.

        Args:
            callback: Called with a ``ConfigChange`` on every generation bump
            pattern: Shell-style key pattern

        Returns:
            Subscription ID for unsubscribing
        """
        if not callable(callback):
            raise ConfigurationError("Subscription callback must be callable")
        subscription_id = str(uuid.uuid4())
        self._subscriptions[subscription_id] = (pattern, callback)
        if not _WILDCARDS.intersection(pattern) and not self._closed:
            self._entry(pattern)
        logger.debug(f"Added subscription {subscription_id} for '{pattern}'")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription.

        Returns:
            True if the subscription existed
        """
        return self._subscriptions.pop(subscription_id, None) is not None

    def _notify_subscribers(self, change: ConfigChange) -> None:
        for pattern, callback in list(self._subscriptions.values()):
            if not fnmatchcase(change.key, pattern):
                continue
            try:
                callback(change)
            except Exception as e:
                logger.error(f"Error notifying subscriber of {change.key}: {e}")

    # =============================================================================
    # Reloading
    # =============================================================================

    def on_reload_tick(self) -> ReloadReport:
        """Reload every dynamic provider and publish changed values.

        One provider's failure never stops the others from reloading and
        never touches the cached entries beyond what its last good snapshot
        yields.

        Raises:
            ShutdownError: If the engine was shut down
        """
        self._check_open()
        with self._tick_lock:
            self._check_open()
            return self._tick()

    reload_now = on_reload_tick

    def _scheduled_tick(self) -> None:
        if self._closed:
            return
        try:
            report = self.on_reload_tick()
        except ShutdownError:
            return
        logger.debug(
            f"Reload tick finished in {report.duration:.3f}s: "
            f"{len(report.reloaded)} reloaded, {len(report.failures)} failed, "
            f"{len(report.changes)} changed"
        )

    def _tick(self) -> ReloadReport:
        started = time.monotonic()
        report = ReloadReport(generation=self._generation)
        dynamic = [p for p in self._providers if p.reloadable]

        with self._write_lock:
            self._epoch += 1
            self._reloading = True
        try:
            if dynamic:
                executor = self._get_executor()
                futures = [
                    (provider, executor.submit(self._reload_provider, provider))
                    for provider in dynamic
                ]
                for provider, future in futures:
                    failure = future.result()
                    if failure is None:
                        report.reloaded.append(provider.source)
                    else:
                        report.failures.append(failure)

            # Shut down mid-tick: providers are closed, keep the last view
            if self._closed:
                report.duration = time.monotonic() - started
                return report
            changes = self._recompute_entries()
        finally:
            with self._reload_done:
                self._reloading = False
                self._reload_done.notify_all()

        for change in changes:
            self._notify_subscribers(change)

        report.changes = changes
        report.generation = self._generation
        report.duration = time.monotonic() - started
        return report

    def _reload_provider(self, provider: Provider) -> Optional[ReloadFailure]:
        try:
            ok = provider.reload()
        except Exception as e:
            failure = ReloadFailure(provider.source, e)
        else:
            if ok is not False:
                return None
            cause = ProviderError(provider.last_error) if provider.last_error else None
            failure = ReloadFailure(provider.source, cause)
        logger.warning(str(failure))
        return failure

    def _recompute_entries(self) -> list[ConfigChange]:
        changes = []
        with self._write_lock:
            self._epoch += 1
            providers = self._providers
            now = time.time()
            for key, old in list(self._entries.items()):
                winner = self._merge(key, providers)
                value = winner.value if winner else None
                source = winner.source if winner else None
                if value == old.value and source == old.source:
                    continue
                entry = ResolvedEntry(key, value, source, old.generation + 1, now)
                self._entries[key] = entry
                changes.append(
                    ConfigChange(
                        key=key,
                        old_value=old.value,
                        new_value=value,
                        old_source=old.source,
                        new_source=source,
                        generation=entry.generation,
                        timestamp=now,
                    )
                )
            if changes:
                self._generation += 1
        if changes:
            logger.info(f"Reload changed {len(changes)} configuration values")
        return changes

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.reload_workers,
                thread_name_prefix="layerconf-provider",
            )
        return self._executor

    # =============================================================================
    # Lifecycle
    # =============================================================================

    def start(self) -> "Configuration":
        """Arm the reload scheduler and, if enabled, the file watcher."""
        with self._write_lock:
            self._check_open()
            if self._started:
                logger.warning("Configuration engine already started")
                return self
            self._started = True

        self._scheduler.start()
        if self.settings.watch_files:
            files = [p.path for p in self._providers if isinstance(p, FileProvider)]
            self._watcher = FileChangeTrigger(
                self._scheduler.trigger, self.settings.watch_debounce
            )
            if not self._watcher.start_watching(files):
                self._watcher = None

        logger.info(
            f"Started configuration engine with {len(self._providers)} providers"
        )
        return self

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    def shutdown(self, timeout: Optional[float] = None) -> list[CloseFailure]:
        """Stop reloading and close every provider.

        The scheduler is stopped first, then an in-flight tick gets up to
        ``timeout`` seconds to finish. Providers are closed regardless and
        close failures are collected rather than raised. Calling this again
        is a no-op returning an empty list.

        Args:
            timeout: Seconds to wait, ``settings.shutdown_timeout`` if None

        Returns:
            Failures raised by providers while closing
        """
        with self._write_lock:
            if self._closed:
                return []
            self._closed = True
            self._reload_done.notify_all()

        timeout = self.settings.shutdown_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        if self._watcher is not None:
            self._watcher.stop_watching()
            self._watcher = None

        if not self._scheduler.stop(timeout):
            logger.warning("Reload scheduler did not stop in time")

        acquired = self._tick_lock.acquire(
            timeout=max(0.0, deadline - time.monotonic())
        )
        if not acquired:
            logger.warning("Closing providers while a reload is still in flight")

        failures = []
        try:
            for provider in self._providers:
                failure = self._close_provider(provider)
                if failure is not None:
                    failures.append(failure)
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None
        finally:
            if acquired:
                self._tick_lock.release()

        if failures:
            logger.error(
                f"Shut down configuration engine with {len(failures)} close failures"
            )
        else:
            logger.info("Shut down configuration engine")
        return failures

    close = shutdown

    def __enter__(self) -> "Configuration":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # =============================================================================
    # Internals
    # =============================================================================

    def _entry(self, key: str) -> ResolvedEntry:
        self._check_open()
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        while True:
            with self._reload_done:
                # Snapshots are half refreshed until the tick recomputes
                while self._reloading:
                    self._check_open()
                    self._reload_done.wait()
                self._check_open()
                epoch = self._epoch
            winner = self._merge(key, self._providers)
            with self._write_lock:
                existing = self._entries.get(key)
                if existing is not None:
                    return existing
                # A tick ran while we read the providers; read them again
                if epoch != self._epoch:
                    continue
                entry = ResolvedEntry(
                    key=key,
                    value=winner.value if winner else None,
                    source=winner.source if winner else None,
                    timestamp=time.time(),
                )
                self._entries[key] = entry
            if not entry.defined:
                logger.debug(f"Configuration key '{key}' is undefined at all providers")
            return entry

    def _merge(self, key: str, providers: Sequence[Provider]) -> Optional[Override]:
        return self.merge_policy.merge(key, self._iter_overrides(key, providers))

    def _iter_overrides(
        self, key: str, providers: Sequence[Provider]
    ) -> Iterator[Optional[Override]]:
        for provider in providers:
            yield self._get_override(provider, key)

    def _get_override(self, provider: Provider, key: str) -> Optional[Override]:
        try:
            return provider.get_override(key)
        except Exception as e:
            logger.warning(f"Provider {provider.source} failed to look up {key}: {e}")
            return None

    def _refresh_entries(self) -> None:
        """Recompute cached entries after the priority list changed."""
        self._epoch += 1
        for key, old in list(self._entries.items()):
            winner = self._merge(key, self._providers)
            self._entries[key] = ResolvedEntry(
                key=key,
                value=winner.value if winner else None,
                source=winner.source if winner else None,
                generation=old.generation,
                timestamp=time.time(),
            )

    def _close_provider(self, provider: Provider) -> Optional[CloseFailure]:
        try:
            provider.close()
        except Exception as e:
            logger.error(f"Failed to close provider {provider.source}: {e}")
            return CloseFailure(provider.source, e)
        return None

    def _check_name(self, name: str) -> None:
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Invalid provider name: {name!r}")
        if any(p.source == name for p in self._providers):
            raise SourceRegistrationConflict(name)

    def _check_open(self) -> None:
        if self._closed:
            raise ShutdownError("Configuration engine has been shut down")

    def _check_registration_open(self) -> None:
        self._check_open()
        if self._started:
            raise ConfigurationError("Providers must be registered before start()")

    @staticmethod
    def _order_entries(entries: Sequence[ProviderEntry]) -> list[ProviderLike]:
        ordered = []
        for index, entry in enumerate(entries):
            if isinstance(entry, tuple):
                if len(entry) != 2:
                    raise ConfigurationError(
                        f"Provider entry {index} must be (provider, priority)"
                    )
                provider, priority = entry
                if isinstance(priority, bool) or not isinstance(priority, int):
                    raise ConfigurationError(
                        f"Priority of provider entry {index} must be an int, "
                        f"got {priority!r}"
                    )
            else:
                provider, priority = entry, index
            ordered.append((priority, index, provider))
        ordered.sort(key=lambda item: (item[0], item[1]))
        return [provider for _, _, provider in ordered]
