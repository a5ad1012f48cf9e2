"""
Exception hierarchy for configuration loading.

Every error raised by the loader carries an error code and a ``details``
mapping identifying where it happened (file path, or the remote
url/app/profile/label).
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    """Error codes for configuration failures."""
    UNKNOWN_ERROR = 10000
    CONFIG_ERROR = 10001
    PATH_ERROR = 10002
    DECRYPT_ERROR = 10003
    PARSE_ERROR = 10004
    REMOTE_ERROR = 10005
    OPTION_ERROR = 10006


class BaseError(Exception):
    """Base exception carrying an error code and optional details."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigError(BaseError):
    """Base class for everything the configuration loader raises."""

    def __init__(self, message: str, details: Any = None, code: ErrorCode = ErrorCode.CONFIG_ERROR):
        super().__init__(code, message, details)


class ConfigPathError(ConfigError):
    """Configuration file is missing or is not a regular file."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.PATH_ERROR)


class ConfigDecryptError(ConfigError):
    """Encrypted configuration could not be decrypted."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.DECRYPT_ERROR)


class ConfigParseError(ConfigError):
    """Configuration content is malformed or of an unsupported type."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.PARSE_ERROR)


class RemoteConfigError(ConfigError):
    """Remote config-server fetch failed or lacked the requested key."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.REMOTE_ERROR)


class OptionError(ConfigError):
    """Invalid load option combination."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, ErrorCode.OPTION_ERROR)
