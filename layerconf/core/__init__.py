"""
Core module containing the error taxonomy and concurrency primitives.

These pieces are independent of file formats, filesystem watching and
remote transports.
"""

from .concurrency import RWLock
from .exceptions import (
    BaseError,
    ConfigDecryptError,
    ConfigError,
    ConfigParseError,
    ConfigPathError,
    ErrorCode,
    OptionError,
    RemoteConfigError,
)

__all__ = [
    "RWLock",
    "BaseError",
    "ErrorCode",
    "ConfigError",
    "ConfigPathError",
    "ConfigDecryptError",
    "ConfigParseError",
    "RemoteConfigError",
    "OptionError",
]
