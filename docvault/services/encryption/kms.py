"""
Key Management Service
Data-key generation and unwrapping for envelope encryption
"""

import base64
import os
from dataclasses import dataclass
from typing import Optional, Protocol

from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap, aes_key_wrap

from docvault.core.config import settings
from docvault.core.exceptions import EncryptionException
from docvault.core.logging import get_logger

logger = get_logger(__name__)

DATA_KEY_BYTES = 32  # AES-256


@dataclass
class DataKey:
    """Plaintext data key with its wrapped form; ``plaintext`` must be zeroed after use"""

    plaintext: bytearray
    ciphertext: bytes
    key_id: str


class KeyManagementService(Protocol):
    async def generate_data_key(self, key_id: str) -> DataKey:
        ...

    async def decrypt_data_key(self, encrypted_key: bytes, key_id: str) -> bytearray:
        ...


def zero_key(key: bytearray) -> None:
    """Overwrite key material in place"""
    for i in range(len(key)):
        key[i] = 0


class LocalKeyManagementService:
    """
    In-process key service wrapping data keys with an AES key-wrap (RFC 3394) master key

    Intended for development and tests. The master key comes from
    KMS_MASTER_KEY (base64, 32 bytes); without one an ephemeral key is
    generated and every wrapped key becomes unreadable on restart.
    """

    def __init__(self, master_key: Optional[bytes] = None, key_id: Optional[str] = None):
        self.key_id = key_id or settings.KMS_KEY_ID

        if master_key is None and settings.KMS_MASTER_KEY:
            master_key = base64.b64decode(settings.KMS_MASTER_KEY)
        if master_key is None:
            logger.warning("KMS_MASTER_KEY not set; using an ephemeral master key")
            master_key = os.urandom(DATA_KEY_BYTES)
        if len(master_key) != DATA_KEY_BYTES:
            raise ValueError("KMS master key must be 32 bytes")

        self._master_key = master_key

    def _check_key_id(self, key_id: str) -> None:
        if key_id != self.key_id:
            raise EncryptionException(
                f"Unknown key id: {key_id}",
                code="unknown_key_id",
            )

    async def generate_data_key(self, key_id: str) -> DataKey:
        self._check_key_id(key_id)
        plaintext = bytearray(os.urandom(DATA_KEY_BYTES))
        wrapped = aes_key_wrap(self._master_key, plaintext)
        return DataKey(plaintext=plaintext, ciphertext=wrapped, key_id=key_id)

    async def decrypt_data_key(self, encrypted_key: bytes, key_id: str) -> bytearray:
        self._check_key_id(key_id)
        try:
            return bytearray(aes_key_unwrap(self._master_key, encrypted_key))
        except InvalidUnwrap:
            raise EncryptionException(
                "Failed to unwrap data key",
                code="key_unwrap_failed",
            )
