"""
Hierarchical key/value settings store.

Values are addressed by dotted paths (``"server.tls.cert"``) and looked up
case-insensitively across four layers, highest precedence first:

1. overrides written with ``set``
2. flags bound as explicitly given
3. parsed configuration (``read_config`` replaces, ``merge_config`` overlays)
4. defaults, then flags bound as not given

The store itself is not thread-safe; ``Config`` wraps it with a lock.
"""

import copy
import json
import os
import re
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

import yaml
from pydantic import TypeAdapter, ValidationError

from ...core.exceptions import ConfigParseError, ConfigPathError

T = TypeVar("T")

SUPPORTED_CONFIG_TYPES = ("yaml", "yml", "json", "toml")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_TRUE_STRINGS = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_STRINGS = ("0", "f", "F", "FALSE", "false", "False")


def parse_config(stream: IO[Any], config_type: str) -> Dict[str, Any]:
    """Parse a YAML, JSON or TOML stream into a mapping with lower-cased keys."""
    config_type = config_type.lower()
    if config_type not in SUPPORTED_CONFIG_TYPES:
        raise ConfigParseError(
            f"unsupported config type {config_type!r}", {"type": config_type})

    raw = stream.read()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigParseError(f"config is not valid utf-8: {e}") from e

    try:
        if config_type in ("yaml", "yml"):
            data = yaml.safe_load(raw)
        elif config_type == "json":
            data = json.loads(raw) if raw.strip() else None
        else:
            data = tomllib.loads(raw)
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigParseError(f"invalid {config_type}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(
            f"top level of {config_type} config must be a mapping, got {type(data).__name__}")
    return _lower_keys(data)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(v) for v in value]
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries, ``override`` wins on conflict."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _search(tree: Any, path: List[str]) -> Tuple[bool, Any]:
    """
    Find ``path`` in ``tree``.

    Map keys may contain dots themselves (``{"k4.1": 12}``), so every
    joined prefix of the remaining path is tried as a key.
    """
    if not path:
        return True, tree
    if not isinstance(tree, dict):
        return False, None

    for i in range(1, len(path) + 1):
        key = ".".join(path[:i])
        if key in tree:
            found, value = _search(tree[key], path[i:])
            if found:
                return True, value
    return False, None


def _set_path(tree: Dict[str, Any], path: List[str], value: Any) -> None:
    current = tree
    for key in path[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[path[-1]] = value


def _split(key: str) -> List[str]:
    return key.lower().split(".")


def to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def to_int(value: Any) -> int:
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 0)
        except ValueError:
            pass
        try:
            return int(float(text))
        except ValueError:
            return 0
    return 0


def to_float(value: Any) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return False


def parse_duration(text: str) -> timedelta:
    """
    Parse a duration such as ``"1h30m"``, ``"500ms"`` or ``"-1.5s"``.

    A bare number is read as seconds.
    """
    text = text.strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    try:
        return timedelta(seconds=sign * float(text))
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration {text!r}")
    return timedelta(seconds=sign * total)


def to_duration(value: Any) -> timedelta:
    """Numbers are seconds; strings use unit suffixes such as ``1h30m`` or ``500ms``."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        return timedelta(0)
    try:
        if isinstance(value, (int, float)):
            return timedelta(seconds=value)
        if isinstance(value, str):
            return parse_duration(value)
    except (ValueError, OverflowError):
        return timedelta(0)
    return timedelta(0)


def to_string_slice(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [to_string(v) for v in value]
    if isinstance(value, str):
        return value.split()
    return [to_string(value)]


def to_string_map(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items()}
    return {}


class SettingsStore:
    """Layered settings store with dotted-path addressing and type coercion."""

    def __init__(self) -> None:
        self._overrides: Dict[str, Any] = {}
        self._flags: Dict[str, Any] = {}
        self._config: Dict[str, Any] = {}
        self._defaults: Dict[str, Any] = {}
        self._flag_defaults: Dict[str, Any] = {}

        self._config_file: Optional[str] = None
        self._config_name = "settings"
        self._config_paths: List[str] = []

    def _layers(self) -> Tuple[Dict[str, Any], ...]:
        return (self._overrides, self._flags, self._config, self._defaults, self._flag_defaults)

    # -- reading and merging sources --

    def read_config(self, stream: IO[Any], config_type: str) -> None:
        """Replace the configuration layer with the parsed ``stream``."""
        self._config = parse_config(stream, config_type)

    def merge_config(self, stream: IO[Any], config_type: str) -> None:
        """Overlay the parsed ``stream`` onto the configuration layer."""
        self._config = _deep_merge(self._config, parse_config(stream, config_type))

    def adopt_config(self, other: "SettingsStore") -> None:
        """Take over the configuration layer of ``other``, keeping every other layer."""
        self._config = copy.deepcopy(other._config)

    def set_config_file(self, path: Union[str, Path]) -> None:
        self._config_file = str(path)

    def set_config_name(self, name: str) -> None:
        self._config_name = name

    def add_config_path(self, directory: Union[str, Path]) -> None:
        self._config_paths.append(str(directory))

    def config_file_used(self) -> str:
        """Return the file ``read_in_config`` would read."""
        if self._config_file:
            return self._config_file

        for directory in self._config_paths or [os.getcwd()]:
            for ext in SUPPORTED_CONFIG_TYPES:
                candidate = Path(directory) / f"{self._config_name}.{ext}"
                if candidate.is_file():
                    return str(candidate)

        raise ConfigPathError(
            f"config file {self._config_name!r} not found in {self._config_paths or [os.getcwd()]}")

    def read_in_config(self) -> None:
        """Read the configured (or discovered) file into the configuration layer."""
        path = self.config_file_used()
        config_type = Path(path).suffix.lstrip(".")
        try:
            with open(path, "rb") as fp:
                self.read_config(fp, config_type)
        except OSError as e:
            raise ConfigPathError(f"open config file {path!r}: {e}", {"path": path}) from e

    # -- writing values --

    def set(self, key: str, value: Any) -> None:
        _set_path(self._overrides, _split(key), _lower_keys(value))

    def set_default(self, key: str, value: Any) -> None:
        _set_path(self._defaults, _split(key), _lower_keys(value))

    def bind_flags(self, flags: Mapping[str, Any], changed: Optional[Iterable[str]] = None) -> None:
        """
        Bind command line flag values.

        Flags named in ``changed`` were given explicitly and override the
        configuration layer; the rest only act as defaults. When ``changed``
        is omitted every flag with a non-``None`` value counts as given.
        """
        given = set(changed) if changed is not None else {
            name for name, value in flags.items() if value is not None}

        for name, value in flags.items():
            if value is None:
                continue
            layer = self._flags if name in given else self._flag_defaults
            _set_path(layer, _split(name), _lower_keys(value))

    # -- lookups --

    def get(self, key: str) -> Any:
        path = _split(key)
        mappings: List[Dict[str, Any]] = []
        for layer in self._layers():
            found, value = _search(layer, path)
            if not found:
                continue
            if not isinstance(value, dict):
                if mappings:
                    break
                return copy.deepcopy(value)
            mappings.append(value)

        if not mappings:
            return None

        merged: Dict[str, Any] = {}
        for mapping in reversed(mappings):
            merged = _deep_merge(merged, mapping)
        return copy.deepcopy(merged)

    def is_set(self, key: str) -> bool:
        path = _split(key)
        return any(_search(layer, path)[0] for layer in self._layers())

    def all_settings(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for layer in reversed(self._layers()):
            merged = _deep_merge(merged, layer)
        return copy.deepcopy(merged)

    def get_string(self, key: str) -> str:
        return to_string(self.get(key))

    def get_int(self, key: str) -> int:
        return to_int(self.get(key))

    def get_float(self, key: str) -> float:
        return to_float(self.get(key))

    def get_bool(self, key: str) -> bool:
        return to_bool(self.get(key))

    def get_duration(self, key: str) -> timedelta:
        return to_duration(self.get(key))

    def get_string_slice(self, key: str) -> List[str]:
        return to_string_slice(self.get(key))

    def get_string_map(self, key: str) -> Dict[str, Any]:
        return to_string_map(self.get(key))

    def get_string_map_string(self, key: str) -> Dict[str, str]:
        return {k: to_string(v) for k, v in to_string_map(self.get(key)).items()}

    # -- decoding into typed objects --

    def unmarshal(self, target: Type[T]) -> T:
        """Decode every setting into ``target`` (dataclass, pydantic model, TypedDict...)."""
        return self._decode(self.all_settings(), target, "")

    def unmarshal_key(self, key: str, target: Type[T]) -> T:
        """Decode the value at ``key`` into ``target``."""
        value = self.get(key)
        return self._decode({} if value is None else value, target, key)

    @staticmethod
    def _decode(value: Any, target: Type[T], key: str) -> T:
        try:
            return TypeAdapter(target).validate_python(value)
        except ValidationError as e:
            where = f"key {key!r}" if key else "settings"
            raise ConfigParseError(
                f"unmarshal {where} into {getattr(target, '__name__', target)}: {e}",
                {"key": key}) from e
