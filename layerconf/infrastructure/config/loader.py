"""
Configuration file loading utilities.

This module resolves ``include`` chains and feeds files, decrypted when
needed, into a ``SettingsStore`` in the right order.
"""

import logging
import os
from enum import Enum
from typing import List

from ...core.exceptions import ConfigDecryptError, ConfigParseError, ConfigPathError
from .crypto import wrap_aes_reader
from .models import INCLUDE_KEY, LoadOptions
from .store import SettingsStore

logger = logging.getLogger(__name__)


class LoadMode(Enum):
    """How a file is applied to the store."""
    REPLACE = "replace"
    MERGE = "merge"


def is_encrypted(options: LoadOptions, path: str) -> bool:
    """Encrypted files need a key and must end with the encrypted suffix."""
    if not options.aes_key:
        return False

    return bool(options.encrypted_suffix) and path.endswith(options.encrypted_suffix)


def config_type_of(options: LoadOptions, path: str) -> str:
    """Infer the config type from the extension, ignoring the encrypted suffix."""
    name = path
    if options.encrypted_suffix and name.endswith(options.encrypted_suffix):
        name = name[:-len(options.encrypted_suffix)]

    return os.path.splitext(name)[1].lstrip(".").lower()


def check_file(path: str) -> None:
    """Raise ``ConfigPathError`` unless ``path`` is an existing regular file."""
    if not os.path.exists(path):
        raise ConfigPathError(f"config file {path!r} not found", {"path": path})
    if not os.path.isfile(path):
        raise ConfigPathError(f"{path!r} is not a file", {"path": path})


def load_one(store: SettingsStore, options: LoadOptions, path: str, mode: LoadMode) -> None:
    """
    Read one file into ``store``.

    Args:
        store: Target store
        options: Load options, decides decryption
        path: File to read
        mode: ``REPLACE`` the configuration layer or ``MERGE`` onto it

    Raises:
        ConfigPathError: File missing, not a file or unreadable
        ConfigDecryptError: File flagged as encrypted could not be decrypted
        ConfigParseError: Content is malformed for its type
    """
    check_file(path)
    config_type = config_type_of(options, path)

    try:
        with open(path, "rb") as fp:
            stream = fp
            if is_encrypted(options, path):
                stream = wrap_aes_reader(fp, options.aes_key)  # type: ignore[arg-type]

            if mode is LoadMode.REPLACE:
                store.read_config(stream, config_type)
            else:
                store.merge_config(stream, config_type)
    except OSError as e:
        raise ConfigPathError(f"open config file {path!r}: {e}", {"path": path}) from e
    except ConfigDecryptError as e:
        raise ConfigDecryptError(
            f"decrypt config file {path!r}: {e.message}", {"path": path}) from e
    except ConfigParseError as e:
        raise ConfigParseError(
            f"{mode.value} config from file {path!r}: {e.message}", {"path": path}) from e


def resolve_chain(store: SettingsStore, entry_file: str, options: LoadOptions) -> List[str]:
    """
    Walk the ``include`` chain starting at ``entry_file``.

    Every file is read into ``store`` in replace mode so its ``include`` key
    can be read back. Every include, absolute or not, resolves under the
    entry file's directory. A file that is already in the chain ends the
    walk without error.

    Returns:
        Absolute paths in discovery order, entry file first
    """
    entry_file = os.path.abspath(entry_file)
    base_dir = os.path.dirname(entry_file)
    chain = [entry_file]
    current = entry_file

    while True:
        load_one(store, options, current, LoadMode.REPLACE)
        if not options.enable_include:
            break

        include = store.get_string(INCLUDE_KEY)
        if not include:
            break

        # absolute includes are still rooted at the entry directory
        candidate = os.path.normpath(os.path.join(base_dir, include.lstrip("/\\")))
        if candidate in chain:
            logger.debug(f"Include cycle at {candidate}, chain stops at {current}")
            break

        chain.append(candidate)
        current = candidate

    return chain


def load_chain(store: SettingsStore, options: LoadOptions, chain: List[str]) -> None:
    """
    Merge ``chain`` into ``store`` deepest include first.

    The entry file is merged last so its values win. The first failure
    aborts; files merged before it stay merged.
    """
    for path in reversed(chain):
        load_one(store, options, path, LoadMode.MERGE)
