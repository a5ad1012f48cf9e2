"""
Client for Spring Cloud Config servers.

The server answers ``GET {url}/{app}/{profile}/{label}`` with a list of
property sources, each a flat key/value mapping. Lookups scan the sources
in the order the server returned them.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ...core.exceptions import RemoteConfigError

logger = logging.getLogger(__name__)


class RemoteSource(BaseModel):
    """One property source returned by the config server."""
    name: str = ""
    source: Dict[str, Any] = Field(default_factory=dict)


class RemoteConfig(BaseModel):
    """Whole configuration returned by the config server."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    profiles: List[str] = Field(default_factory=list)
    label: Optional[str] = None
    version: Optional[str] = None
    sources: List[RemoteSource] = Field(default_factory=list, alias="propertySources")


class SpringConfigServer:
    """Loads configuration from a Spring Cloud Config server."""

    def __init__(self, url: str, app: str, profile: str, label: str, timeout: float = 30.0):
        """
        Args:
            url: Config server base url
            app: Application name
            profile: Environment, e.g. ``prod``
            label: Branch
            timeout: Total request timeout in seconds
        """
        self.url = url
        self.app = app
        self.profile = profile
        self.label = label
        self.timeout = timeout
        self.remote_config = RemoteConfig()

    @property
    def endpoint(self) -> str:
        return "/".join([self.url.rstrip("/"), self.app, self.profile, self.label])

    def _details(self) -> Dict[str, str]:
        return {"url": self.url, "app": self.app, "profile": self.profile, "label": self.label}

    async def fetch(self, session: Optional[aiohttp.ClientSession] = None) -> RemoteConfig:
        """
        Download the configuration.

        Args:
            session: Optional session to reuse; a private one is opened otherwise

        Raises:
            RemoteConfigError: On transport failure, non-2xx status or
                a payload that is not a config-server response
        """
        try:
            if session is None:
                timeout_config = aiohttp.ClientTimeout(total=self.timeout)
                async with aiohttp.ClientSession(timeout=timeout_config) as own_session:
                    payload = await self._get(own_session)
            else:
                payload = await self._get(session)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RemoteConfigError(
                f"fetch remote config from {self.endpoint}: {e}", self._details()) from e

        try:
            self.remote_config = RemoteConfig.model_validate(payload)
        except ValidationError as e:
            raise RemoteConfigError(
                f"invalid remote config from {self.endpoint}: {e}", self._details()) from e

        logger.debug(
            f"Fetched {len(self.remote_config.sources)} property sources from {self.endpoint}")
        return self.remote_config

    async def _get(self, session: aiohttp.ClientSession) -> Any:
        async with session.get(self.endpoint) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    def has(self, name: str) -> bool:
        return any(name in src.source for src in self.remote_config.sources)

    def get(self, name: str, default: Any = None) -> Any:
        """Return the first value for ``name`` across all sources."""
        for src in self.remote_config.sources:
            if name in src.source:
                return src.source[name]
        return default

    def get_string(self, name: str) -> Optional[str]:
        if not self.has(name):
            return None
        value = self.get(name)
        return value if isinstance(value, str) else str(value)

    def get_int(self, name: str) -> Optional[int]:
        """Return ``name`` as an int, ``None`` if missing or not numeric."""
        if not self.has(name):
            return None

        value = self.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            logger.error(f"Unknown type for remote setting {name}: {value!r}")
            return None
        try:
            return int(value)
        except ValueError:
            logger.error(f"Cannot parse remote setting {name} as int: {value!r}")
            return None

    def get_bool(self, name: str) -> Optional[bool]:
        """Return ``name`` as a bool, ``None`` if missing or not boolean."""
        if not self.has(name):
            return None

        value = self.get(name)
        if isinstance(value, (bool, int)):
            return bool(value)
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "t", "true"):
                return True
            if text in ("0", "f", "false"):
                return False
        logger.error(f"Cannot parse remote setting {name} as bool: {value!r}")
        return None

    def map(self, set_value: Callable[[str, Any], None]) -> None:
        """Call ``set_value(key, value)`` for every entry of every source."""
        for src in self.remote_config.sources:
            for key, value in src.source.items():
                logger.debug(f"Set remote setting {key}={value!r}")
                set_value(key, value)
