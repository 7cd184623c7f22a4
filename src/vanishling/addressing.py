"""Keyed content addressing."""

import hashlib
import logging
import secrets
import time
from typing import BinaryIO, Callable

logger = logging.getLogger(__name__)

KEY_SIZE = 32
DIGEST_SIZE = 32
CHUNK_SIZE = 1024 * 1024  # 1MB


class ContentAddresser:
    """Derive storage identifiers from uploaded bytes.

    Each call builds its own keyed BLAKE2b state, feeds it the current
    high-resolution time and then the stream, and returns the hex digest.
    The same bytes hashed at different instants give different ids; the
    same bytes at the same instant collide, and that is caught by the
    store's exclusive create.
    """

    def __init__(self, key: bytes, clock: Callable[[], int] = time.time_ns) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"hash key must be {KEY_SIZE} bytes, got {len(key)}")
        self._key = key
        self._clock = clock

    @classmethod
    def from_hex(cls, hex_key: str | None, **kwargs) -> "ContentAddresser":
        if hex_key is None:
            logger.warning("no hash key configured, using a random key for this process")
            return cls(secrets.token_bytes(KEY_SIZE), **kwargs)
        return cls(bytes.fromhex(hex_key), **kwargs)

    def address(self, stream: BinaryIO) -> str:
        hasher = hashlib.blake2b(key=self._key, digest_size=DIGEST_SIZE)
        hasher.update(str(self._clock()).encode("ascii"))  # mixer
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
        return hasher.hexdigest()
