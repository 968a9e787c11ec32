"""
Message Hashing

Digest functions applied to serialized messages before they are signed.
ECDSA identities sign a SHA-256 digest; Ed25519 identities sign the
message itself, so they pair with `none`.
"""

import hashlib
from typing import Callable, Union

Hash = Callable[[bytes], bytes]


def sha256(message: bytes) -> bytes:
    """SHA-256 digest of the message."""
    return hashlib.sha256(message).digest()


def sha384(message: bytes) -> bytes:
    """SHA-384 digest of the message."""
    return hashlib.sha384(message).digest()


def none(message: bytes) -> bytes:
    """Identity digest, for signing algorithms that hash internally."""
    return bytes(message)


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()
