"""
Configuration file watcher.

This module monitors a set of configuration files with watchdog and calls
back once per burst of changes, on a background thread.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[FileSystemEvent], Any]


class IConfigWatcher(ABC):
    """Interface for configuration file watchers."""

    @abstractmethod
    def start(self) -> None:
        """Start watching for configuration changes."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop watching for configuration changes."""
        pass

    @abstractmethod
    def is_running(self) -> bool:
        """Check if the watcher is currently running."""
        pass


class ConfigFileHandler(FileSystemEventHandler):
    """
    Handles file system events for a set of configuration files.

    Events for other files in the same directories are ignored. A single
    save usually produces several events (truncate, write, close, or a
    rename for editors writing a temp file), so changes are debounced:
    ``on_change`` runs once, ``debounce_delay`` seconds after the last
    event, and receives that last event.
    """

    def __init__(
        self,
        paths: Iterable[str],
        on_change: ChangeCallback,
        debounce_delay: float = 0.2
    ):
        super().__init__()
        self.paths = frozenset(os.path.abspath(p) for p in paths)
        self.on_change = on_change
        self.debounce_delay = debounce_delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._last_event: Optional[FileSystemEvent] = None

    def _matches(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False

        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if raw and os.path.abspath(os.fsdecode(raw)) in self.paths:
                return True
        return False

    def on_modified(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._schedule(event)

    def on_created(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._schedule(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            logger.debug(f"Configuration file moved: {event.src_path} -> {event.dest_path}")
            self._schedule(event)

    def _schedule(self, event: FileSystemEvent) -> None:
        with self._lock:
            self._last_event = event
            if self._timer is not None:
                self._timer.cancel()

            self._timer = threading.Timer(self.debounce_delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            event = self._last_event
            self._timer = None
        if event is None:
            return

        logger.debug(f"Configuration file change detected: {event.src_path}")
        try:
            self.on_change(event)
        except Exception as e:
            logger.error(f"Error handling configuration change: {e}")

    def cancel(self) -> None:
        """Drop a pending debounced callback."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class ConfigWatcher(IConfigWatcher):
    """
    Watches configuration files using a watchdog observer.

    Every distinct parent directory is scheduled non-recursively; the
    handler filters events down to the watched files.
    """

    def __init__(
        self,
        paths: Iterable[str],
        on_change: ChangeCallback,
        debounce_delay: float = 0.2
    ):
        """
        Initialize the configuration watcher.

        Args:
            paths: Files to watch
            on_change: Called with the last event of each burst of changes
            debounce_delay: Quiet period in seconds before ``on_change`` runs
        """
        self.paths: List[str] = [os.path.abspath(p) for p in paths]
        self.on_change = on_change
        self.debounce_delay = debounce_delay

        self._lock = threading.Lock()
        self._observer: Optional[Any] = None
        self._handler: Optional[ConfigFileHandler] = None
        self._running = False

    def start(self) -> None:
        """
        Start watching.

        Returns once the OS-level watches are armed; events are handled on
        the observer's thread.
        """
        with self._lock:
            if self._running:
                logger.warning("Configuration watcher is already running")
                return

            handler = ConfigFileHandler(
                paths=self.paths,
                on_change=self.on_change,
                debounce_delay=self.debounce_delay
            )
            observer = Observer()
            try:
                for directory in sorted({os.path.dirname(p) for p in self.paths}):
                    observer.schedule(handler, directory, recursive=False)
                observer.start()
            except Exception as e:
                logger.error(f"Failed to start configuration watcher: {e}")
                handler.cancel()
                raise

            self._observer = observer
            self._handler = handler
            self._running = True

        logger.info(f"Started watching configuration files: {self.paths}")

    def stop(self) -> None:
        """Stop watching and drop any pending callback."""
        with self._lock:
            if not self._running:
                return

            if self._observer is not None:
                self._observer.stop()
                if self._observer is not threading.current_thread():
                    self._observer.join(timeout=5.0)
                self._observer = None

            if self._handler is not None:
                self._handler.cancel()
                self._handler = None

            self._running = False

        logger.info("Stopped configuration file watcher")

    def stop_on(self, cancel: threading.Event) -> threading.Thread:
        """Stop the watcher once ``cancel`` is set."""
        def wait_and_stop() -> None:
            cancel.wait()
            self.stop()

        thread = threading.Thread(
            target=wait_and_stop, name="config-watch-cancel", daemon=True)
        thread.start()
        return thread

    def is_running(self) -> bool:
        """Check if the watcher is currently running."""
        return self._running and self._observer is not None and self._observer.is_alive()
