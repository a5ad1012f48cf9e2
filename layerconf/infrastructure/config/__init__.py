"""
Configuration management infrastructure.

This module provides the settings store, include-chain loading, AES
decryption and file watching behind the thread-safe ``Config`` instance.
"""

from .models import (
    LoadOptions,
    LoggingConfig,
    with_aes_encrypt,
    with_enable_include,
    with_encrypted_file_suffix,
    with_watch_file_modified,
)
from .store import SettingsStore
from .crypto import ConfigCrypto, wrap_aes_reader
from .loader import LoadMode, is_encrypted, load_chain, load_one, resolve_chain
from .watcher import ConfigWatcher, IConfigWatcher
from .manager import Config, get_shared

__all__ = [
    "Config",
    "get_shared",
    "LoadOptions",
    "LoggingConfig",
    "with_aes_encrypt",
    "with_enable_include",
    "with_encrypted_file_suffix",
    "with_watch_file_modified",
    "SettingsStore",
    "ConfigCrypto",
    "wrap_aes_reader",
    "LoadMode",
    "is_encrypted",
    "load_chain",
    "load_one",
    "resolve_chain",
    "ConfigWatcher",
    "IConfigWatcher",
]
