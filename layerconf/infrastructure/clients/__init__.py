"""
Clients for remote configuration sources.
"""

from .config_server import RemoteConfig, RemoteSource, SpringConfigServer

__all__ = [
    "RemoteConfig",
    "RemoteSource",
    "SpringConfigServer",
]
