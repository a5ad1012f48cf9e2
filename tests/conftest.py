"""
Shared fixtures for layerconf tests.
"""

from pathlib import Path
from typing import Callable

import pytest

from layerconf.infrastructure.config.crypto import encrypt_bytes


AES_KEY = b"0123456789abcdef0123456789abcdef"


@pytest.fixture
def aes_key() -> bytes:
    """32-byte AES key."""
    return AES_KEY


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    """Write a text file under ``tmp_path``, encrypting it when a key is given."""
    def _write(name: str, content: str, key: bytes = b"") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8")
        path.write_bytes(encrypt_bytes(key, data) if key else data)
        return path

    return _write
