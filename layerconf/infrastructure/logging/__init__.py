"""
Logging infrastructure.

Routes standard library logging into loguru.
"""

from .setup import InterceptHandler, setup_logging

__all__ = [
    "InterceptHandler",
    "setup_logging",
]
