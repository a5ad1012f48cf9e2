"""
layerconf - thread-safe layered configuration loading.

Resolves chains of configuration files joined by ``include`` keys, merges
them so the entry file wins, decrypts AES-encrypted files and hot-reloads
the merged view when any of them changes on disk.
"""

__version__ = "0.1.0"

# Public API exports
from .core.exceptions import (
    ConfigDecryptError,
    ConfigError,
    ConfigParseError,
    ConfigPathError,
    OptionError,
    RemoteConfigError,
)
from .infrastructure.config.manager import Config, get_shared
from .infrastructure.config.models import (
    LoadOptions,
    with_aes_encrypt,
    with_enable_include,
    with_encrypted_file_suffix,
    with_watch_file_modified,
)

__all__ = [
    "Config",
    "get_shared",
    "LoadOptions",
    "with_aes_encrypt",
    "with_enable_include",
    "with_encrypted_file_suffix",
    "with_watch_file_modified",
    "ConfigError",
    "ConfigPathError",
    "ConfigDecryptError",
    "ConfigParseError",
    "RemoteConfigError",
    "OptionError",
]
