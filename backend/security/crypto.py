"""
Security module: SHA-256 digests and shared-secret helpers.

Chunk contents are never encrypted; the only secret material is the
per-node secret a sender proves knowledge of to get auto-accepted.
"""

import secrets
import string
import time

from cryptography.hazmat.primitives import constant_time, hashes

# 24 random bytes, url-safe base64 encoded
SECRET_BYTES = 24
NODE_ID_PREFIX = "ocft"
_ID_ALPHABET = string.ascii_letters + string.digits + "_-"
_BASE36 = string.digits + string.ascii_lowercase


class Sha256:
    """Incremental SHA-256 hasher producing lowercase hex digests."""

    def __init__(self) -> None:
        self._ctx = hashes.Hash(hashes.SHA256())

    def update(self, data: bytes) -> None:
        self._ctx.update(data)

    def hexdigest(self) -> str:
        return self._ctx.finalize().hex()


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 of ``data`` as a lowercase hex string."""
    hasher = Sha256()
    hasher.update(data)
    return hasher.hexdigest()


def secrets_match(presented: str | None, expected: str | None) -> bool:
    """
    Compare two secrets in constant time.

    An empty or missing value never matches.
    """
    if not presented or not expected:
        return False
    return constant_time.bytes_eq(
        presented.encode("utf-8"), expected.encode("utf-8")
    )


def generate_secret() -> str:
    """Generate a fresh node secret."""
    return secrets.token_urlsafe(SECRET_BYTES)


def _base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_node_id() -> str:
    """Generate a node id of the form ``ocft_<base36 ms>_<8 random chars>``."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
    return f"{NODE_ID_PREFIX}_{stamp}_{suffix}"


def secret_fingerprint(secret: str) -> str:
    """Short, non-reversible tag for a secret, safe to log."""
    return sha256_hex(secret.encode("utf-8"))[:16]
