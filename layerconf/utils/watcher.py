"""File watching for out-of-cycle provider reloads."""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class ProviderFileHandler(FileSystemEventHandler):
    """Handles file system events for provider files."""

    def __init__(self, trigger: "FileChangeTrigger"):
        self.trigger = trigger

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.trigger.handle_event(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.trigger.handle_event(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors often save by renaming a temp file over the original
        if not event.is_directory:
            self.trigger.handle_event(event.dest_path)


class FileChangeTrigger:
    """Calls back when a watched file changes, debouncing bursts of events.

    The callback only requests a reload; providers still decide for
    themselves whether their file actually changed.
    """

    def __init__(self, callback: Callable[[], None], debounce_delay: float = 0.5):
        """Initialize the trigger.

        Args:
            callback: Function to call once a burst of changes settles
            debounce_delay: Delay in seconds to debounce rapid changes
        """
        self._callback = callback
        self._debounce_delay = debounce_delay
        self._observer: Optional[Observer] = None
        self._watched_files: set[Path] = set()
        self._watched_directories: set[Path] = set()
        self._pending: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._is_watching = False

    @property
    def is_watching(self) -> bool:
        return self._is_watching

    def start_watching(self, files: list[Path]) -> bool:
        """Start monitoring the given files.

        Returns:
            True if watching started successfully, False otherwise
        """
        if self._is_watching:
            logger.warning("Watcher is already running")
            return True

        for file_path in files:
            self._watched_files.add(Path(file_path).resolve())
        if not self._watched_files:
            logger.debug("No provider files to watch")
            return False

        try:
            self._observer = Observer()
            handler = ProviderFileHandler(self)
            for directory in {path.parent for path in self._watched_files}:
                if not directory.is_dir():
                    logger.warning(f"Cannot watch missing directory: {directory}")
                    continue
                self._observer.schedule(handler, str(directory), recursive=False)
                self._watched_directories.add(directory)
                logger.info(f"Watching directory: {directory}")
            self._observer.start()
        except Exception as e:
            logger.error(f"Failed to start file watching: {e}")
            self._observer = None
            self._watched_directories.clear()
            return False

        self._is_watching = True
        logger.info(f"Started watching {len(self._watched_files)} provider files")
        return True

    def stop_watching(self) -> None:
        """Stop file monitoring and drop any pending callback."""
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

        self._is_watching = False
        self._watched_files.clear()
        self._watched_directories.clear()
        logger.info("Stopped provider file watching")

    def get_watched_files(self) -> list[Path]:
        return sorted(self._watched_files)

    def is_watching_file(self, file_path: Path) -> bool:
        return Path(file_path).resolve() in self._watched_files

    def handle_event(self, src_path) -> None:
        """Schedule the callback if ``src_path`` is a watched file."""
        path = Path(os.fsdecode(src_path)).resolve()
        if path not in self._watched_files:
            return

        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._pending = threading.Timer(self._debounce_delay, self._fire, (path,))
            self._pending.daemon = True
            self._pending.start()

    def _fire(self, path: Path) -> None:
        with self._lock:
            self._pending = None
        logger.info(f"Detected change in {path}, requesting reload")
        try:
            self._callback()
        except Exception as e:
            logger.error(f"File change callback failed: {e}")
