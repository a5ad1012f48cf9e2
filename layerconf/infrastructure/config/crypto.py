"""
AES encryption and decryption of configuration files.

Encrypted files hold a random 12-byte nonce followed by the AES-GCM
ciphertext and tag. Keys must be 16, 24 or 32 bytes long.
"""

import io
import logging
import os
from pathlib import Path
from typing import IO, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ...core.exceptions import ConfigDecryptError, ConfigPathError
from .models import DEFAULT_ENCRYPTED_SUFFIX

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
VALID_KEY_SIZES = (16, 24, 32)


def _cipher(key: bytes) -> AESGCM:
    if len(key) not in VALID_KEY_SIZES:
        raise ConfigDecryptError(
            f"aes key must be {VALID_KEY_SIZES} bytes long, got {len(key)}")
    return AESGCM(key)


def encrypt_bytes(key: bytes, plaintext: bytes) -> bytes:
    """Encrypt ``plaintext``, returning ``nonce + ciphertext``."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + _cipher(key).encrypt(nonce, plaintext, None)


def decrypt_bytes(key: bytes, data: bytes) -> bytes:
    """
    Decrypt data produced by ``encrypt_bytes``.

    Raises:
        ConfigDecryptError: If the key is malformed, or the data is
            truncated, tampered with or encrypted under another key
    """
    cipher = _cipher(key)
    if len(data) < NONCE_SIZE:
        raise ConfigDecryptError(
            f"encrypted data too short: {len(data)} bytes")

    try:
        return cipher.decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise ConfigDecryptError(
            "decrypt failed: wrong key or corrupted data") from e


def wrap_aes_reader(stream: IO[bytes], key: bytes) -> IO[bytes]:
    """Turn an encrypted byte stream into a plaintext byte stream."""
    return io.BytesIO(decrypt_bytes(key, stream.read()))


class ConfigCrypto:
    """
    Encrypts and decrypts whole configuration files with one AES key.

    Used to produce the ``*.enc`` files the loader decrypts on the fly.
    """

    def __init__(self, key: bytes):
        """
        Initialize the crypto service.

        Args:
            key: Raw AES key, 16, 24 or 32 bytes
        """
        _cipher(key)
        self._key = key

    @staticmethod
    def generate_key() -> bytes:
        """Generate a random 256-bit key."""
        return AESGCM.generate_key(bit_length=256)

    def encrypt_data(self, data: bytes) -> bytes:
        return encrypt_bytes(self._key, data)

    def decrypt_data(self, data: bytes) -> bytes:
        return decrypt_bytes(self._key, data)

    def encrypt_file(
        self,
        input_file: Path,
        output_file: Optional[Path] = None,
        suffix: str = DEFAULT_ENCRYPTED_SUFFIX
    ) -> Path:
        """
        Encrypt a configuration file.

        Args:
            input_file: Plaintext configuration file
            output_file: Destination, defaults to ``input_file`` + ``suffix``
            suffix: Suffix appended when ``output_file`` is omitted

        Returns:
            Path of the encrypted file
        """
        if not input_file.is_file():
            raise ConfigPathError(
                f"input file not found: {input_file}", {"path": str(input_file)})

        if output_file is None:
            output_file = input_file.with_name(input_file.name + suffix)

        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_bytes(self.encrypt_data(input_file.read_bytes()))

        logger.info(f"Configuration file encrypted: {input_file} -> {output_file}")
        return output_file

    def decrypt_file(self, input_file: Path, output_file: Path) -> None:
        """Decrypt ``input_file`` into ``output_file``."""
        if not input_file.is_file():
            raise ConfigPathError(
                f"input file not found: {input_file}", {"path": str(input_file)})

        plaintext = self.decrypt_data(input_file.read_bytes())
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_bytes(plaintext)

        logger.info(f"Configuration file decrypted: {input_file} -> {output_file}")
