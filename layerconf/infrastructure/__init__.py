"""
Infrastructure layer containing external dependencies and I/O operations.

This layer handles file formats, encryption, filesystem watching, remote
config servers and logging.
"""

from .config.manager import Config, get_shared
from .logging.setup import setup_logging

__all__ = [
    "Config",
    "get_shared",
    "setup_logging",
]
