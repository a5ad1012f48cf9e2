"""
Configuration models and data structures.

This module defines the option records consumed by the loader and the
logging setup.
"""

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from ...core.exceptions import OptionError

DEFAULT_CONFIG_FILE_NAME = "settings.yml"
DEFAULT_ENCRYPTED_SUFFIX = ".enc"
INCLUDE_KEY = "include"

WatchCallback = Callable[[Any], None]


@dataclass(frozen=True)
class LoadOptions:
    """Options for a single ``Config.load_from_file`` call."""
    enable_include: bool = False
    aes_key: Optional[bytes] = None
    # only files whose name ends with this suffix are decrypted
    encrypted_suffix: str = DEFAULT_ENCRYPTED_SUFFIX
    watch_modify: bool = False
    watch_callback: Optional[WatchCallback] = None
    watch_cancel: Optional[threading.Event] = None
    watch_debounce: float = 0.2
    atomic: bool = True

    def __post_init__(self) -> None:
        if self.aes_key is not None and len(self.aes_key) == 0:
            raise OptionError("aes key is empty")
        if self.watch_debounce < 0:
            raise OptionError(
                f"watch debounce must not be negative: {self.watch_debounce}")

    @classmethod
    def build(cls, *modifiers: Callable[["LoadOptions"], "LoadOptions"]) -> "LoadOptions":
        """
        Build options by applying modifiers to the defaults, in order.

        Example:
            LoadOptions.build(with_enable_include(), with_aes_encrypt(key))
        """
        opts = cls()
        for modifier in modifiers:
            opts = modifier(opts)
        return opts


def with_enable_include() -> Callable[[LoadOptions], LoadOptions]:
    """Follow ``include`` keys in configuration files."""
    return lambda opts: replace(opts, enable_include=True)


def with_aes_encrypt(key: bytes) -> Callable[[LoadOptions], LoadOptions]:
    """Decrypt files carrying the encrypted suffix with ``key``."""
    if not key:
        raise OptionError("aes key is empty")
    return lambda opts: replace(opts, aes_key=key)


def with_encrypted_file_suffix(suffix: str) -> Callable[[LoadOptions], LoadOptions]:
    """Only decrypt files whose name ends with ``suffix``."""
    return lambda opts: replace(opts, encrypted_suffix=suffix)


def with_watch_file_modified(
    callback: Optional[WatchCallback] = None,
    cancel: Optional[threading.Event] = None,
) -> Callable[[LoadOptions], LoadOptions]:
    """
    Reload automatically when any loaded file changes.

    ``callback`` receives the filesystem event after the reload finished;
    pass ``None`` if you don't need to react to changes yourself. Setting
    ``cancel`` stops the watch.
    """
    return lambda opts: replace(
        opts, watch_modify=True, watch_callback=callback, watch_cancel=cancel)


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False
