"""
Thread-safe configuration instance.

``Config`` owns a settings store and the reader/writer lock guarding it.
Every public operation takes the lock itself, so callers cannot reach the
store unguarded. Loading resolves ``include`` chains, decrypts ``*.enc``
files and can hot-reload the merged view when any loaded file changes.

Example:

    cfg = Config()
    cfg.load_from_file(
        "/etc/app/settings.yml",
        LoadOptions.build(
            with_enable_include(),
            with_aes_encrypt(key),
            with_watch_file_modified(),
        ),
    )
    port = cfg.get_int("server.port")
"""

import io
import logging
import os
import threading
from datetime import timedelta
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from ...core.concurrency import RWLock
from ...core.exceptions import ConfigError, ConfigParseError, RemoteConfigError
from ..clients.config_server import SpringConfigServer
from .loader import check_file, load_chain, resolve_chain
from .models import DEFAULT_CONFIG_FILE_NAME, LoadOptions
from .store import SettingsStore
from .watcher import ConfigWatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Config:
    """
    Layered configuration with include chains, decryption and hot reload.

    Getters share a read lock; writes, loads and reloads take the write
    lock. At most one file watch is ever armed per instance.
    """

    def __init__(self) -> None:
        self._lock = RWLock()
        self._store = SettingsStore()
        self._watch_armed = False
        self._watch_stopped = False
        self._watcher: Optional[ConfigWatcher] = None

    # -- getters --

    def get(self, key: str) -> Any:
        with self._lock.read_locked():
            return self._store.get(key)

    def get_string(self, key: str) -> str:
        with self._lock.read_locked():
            return self._store.get_string(key)

    def get_int(self, key: str) -> int:
        with self._lock.read_locked():
            return self._store.get_int(key)

    get_int64 = get_int

    def get_float(self, key: str) -> float:
        with self._lock.read_locked():
            return self._store.get_float(key)

    def get_bool(self, key: str) -> bool:
        with self._lock.read_locked():
            return self._store.get_bool(key)

    def get_duration(self, key: str) -> timedelta:
        with self._lock.read_locked():
            return self._store.get_duration(key)

    def get_string_slice(self, key: str) -> List[str]:
        with self._lock.read_locked():
            return self._store.get_string_slice(key)

    def get_string_map(self, key: str) -> Dict[str, Any]:
        with self._lock.read_locked():
            return self._store.get_string_map(key)

    def get_string_map_string(self, key: str) -> Dict[str, str]:
        with self._lock.read_locked():
            return self._store.get_string_map_string(key)

    def is_set(self, key: str) -> bool:
        with self._lock.read_locked():
            return self._store.is_set(key)

    def all_settings(self) -> Dict[str, Any]:
        with self._lock.read_locked():
            return self._store.all_settings()

    def unmarshal(self, target: Type[T]) -> T:
        """Decode all settings into ``target``, e.g. a dataclass or pydantic model."""
        with self._lock.read_locked():
            return self._store.unmarshal(target)

    def unmarshal_key(self, key: str, target: Type[T]) -> T:
        """Decode the settings under ``key`` into ``target``."""
        with self._lock.read_locked():
            return self._store.unmarshal_key(key, target)

    # -- writes --

    def set(self, key: str, value: Any) -> None:
        with self._lock.write_locked():
            self._store.set(key, value)

    def set_default(self, key: str, value: Any) -> None:
        with self._lock.write_locked():
            self._store.set_default(key, value)

    def bind_flags(self, flags: Mapping[str, Any], changed: Optional[Iterable[str]] = None) -> None:
        """Bind command line flags; see ``SettingsStore.bind_flags``."""
        with self._lock.write_locked():
            self._store.bind_flags(flags, changed)

    def read_config(self, stream: IO[Any], config_type: str = "yaml") -> None:
        """Replace the loaded configuration with ``stream``."""
        with self._lock.write_locked():
            self._store.read_config(stream, config_type)

    def merge_config(self, stream: IO[Any], config_type: str = "yaml") -> None:
        """Overlay ``stream`` onto the loaded configuration."""
        with self._lock.write_locked():
            self._store.merge_config(stream, config_type)

    def set_config_file(self, path: Union[str, Path]) -> None:
        with self._lock.write_locked():
            self._store.set_config_file(path)

    def set_config_name(self, name: str) -> None:
        with self._lock.write_locked():
            self._store.set_config_name(name)

    def add_config_path(self, directory: Union[str, Path]) -> None:
        with self._lock.write_locked():
            self._store.add_config_path(directory)

    # -- loading --

    def load_from_dir(self, dir_path: Union[str, Path], options: Optional[LoadOptions] = None) -> List[str]:
        """Load ``settings.yml`` from ``dir_path``."""
        return self.load_from_file(os.path.join(dir_path, DEFAULT_CONFIG_FILE_NAME), options)

    def load_from_file(self, entry_file: Union[str, Path], options: Optional[LoadOptions] = None) -> List[str]:
        """
        Load ``entry_file`` and, when enabled, every file it includes.

        Files are merged deepest include first, so values in the entry
        file win. With ``options.atomic`` (the default) the merged view is
        built aside and swapped in only if every file loaded; otherwise
        a failure leaves the store partially merged.

        Args:
            entry_file: Top-level configuration file
            options: Load options, defaults to ``LoadOptions()``

        Returns:
            Resolved file chain, entry file first

        Raises:
            ConfigPathError: A file is missing or not a regular file
            ConfigDecryptError: An encrypted file could not be decrypted
            ConfigParseError: A file is malformed
        """
        options = options or LoadOptions()
        entry_file = os.path.abspath(entry_file)
        check_file(entry_file)

        if options.atomic:
            chain = resolve_chain(SettingsStore(), entry_file, options)
            merged = SettingsStore()
            load_chain(merged, options, chain)
            with self._lock.write_locked():
                self._store.adopt_config(merged)
        else:
            with self._lock.write_locked():
                chain = resolve_chain(self._store, entry_file, options)
                load_chain(self._store, options, chain)

        if options.watch_modify:
            self._arm_watch(entry_file, chain, options)

        logger.info(
            f"Loaded configs from {entry_file} (include={options.enable_include}): {chain}")
        return chain

    def _arm_watch(self, entry_file: str, chain: List[str], options: LoadOptions) -> None:
        watcher = ConfigWatcher(
            paths=chain,
            on_change=lambda event: self._reload(entry_file, options, event),
            debounce_delay=options.watch_debounce
        )
        with self._lock.write_locked():
            if self._watch_armed:
                return
            self._watch_armed = True
            self._watcher = watcher

        try:
            watcher.start()
        except Exception as e:
            logger.error(f"Failed to watch config files {chain}: {e}")
            return

        # stop_watching may have run while the observer was starting
        with self._lock.read_locked():
            stopped = self._watch_stopped
        if stopped:
            watcher.stop()
            return

        if options.watch_cancel is not None:
            watcher.stop_on(options.watch_cancel)

        logger.debug(f"Watching config files: {chain}")

    def _reload(self, entry_file: str, options: LoadOptions, event: Any) -> None:
        try:
            self.load_from_file(entry_file, options)
        except Exception as e:
            logger.error(f"File watcher failed to reload settings: {e}")

        if options.watch_callback is not None:
            options.watch_callback(event)

    def is_watching(self) -> bool:
        with self._lock.read_locked():
            watcher = self._watcher
        return watcher is not None and watcher.is_running()

    def stop_watching(self) -> None:
        """Stop the file watch. A later watch request stays a no-op."""
        with self._lock.write_locked():
            self._watch_stopped = True
            watcher = self._watcher
        if watcher is not None:
            watcher.stop()

    async def load_from_config_server(self, url: str, app: str, profile: str, label: str) -> None:
        """
        Load settings from a config server at ``{url}/{app}/{profile}/{label}``.

        Every remote entry is written with ``set``.
        """
        logger.info(
            f"Loading settings from remote {url} (app={app}, profile={profile}, label={label})")

        srv = SpringConfigServer(url, app, profile, label)
        await srv.fetch()
        srv.map(self.set)

    async def load_from_config_server_with_raw_yaml(
        self, url: str, app: str, profile: str, label: str, key: str
    ) -> None:
        """Load the YAML document stored as a string under ``key`` on a config server."""
        logger.info(
            f"Loading raw settings from remote {url} "
            f"(app={app}, profile={profile}, label={label}, key={key})")

        srv = SpringConfigServer(url, app, profile, label)
        await srv.fetch()

        details = {"url": url, "app": app, "profile": profile, "label": label, "key": key}
        raw = srv.get_string(key)
        if raw is None:
            raise RemoteConfigError(f"can not load raw cfg with key {key!r}", details)

        logger.debug(f"Loaded raw cfg: {raw}")
        try:
            self.read_config(io.StringIO(raw), "yaml")
        except ConfigParseError as e:
            raise ConfigParseError(
                f"load raw cfg {key!r} from {srv.endpoint}: {e.message}", details) from e

    def load_settings(self) -> None:
        """
        Read the configured settings file in place.

        Uses ``set_config_file``, or searches ``set_config_name`` (default
        ``settings``) in the ``add_config_path`` directories. No include or
        decryption support; any failure is fatal.
        """
        with self._lock.write_locked():
            try:
                self._store.read_in_config()
            except ConfigError as e:
                logger.critical(f"Fatal error config file: {e}")
                raise SystemExit(1) from e


_shared: Optional[Config] = None
_shared_lock = threading.Lock()


def get_shared() -> Config:
    """
    Return the process-wide default ``Config``.

    It is created on first call and is an ordinary instance otherwise.
    """
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = Config()
        return _shared
