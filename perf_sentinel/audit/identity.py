"""Deterministic short keys for audited URLs."""

import hashlib
import string

KEY_LENGTH = 12

_ALPHABET = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits))


def derive_key(url: str) -> str:
    """Derive a 12 character lowercase alphanumeric key for a URL.

    The SHA-256 hex digest of the URL is read as an integer, re-encoded in
    base 36, truncated to 12 symbols and left-padded with '0'. The key
    depends on the URL alone, so the same page keeps its key across runs
    and device profiles.
    """
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
    encoded = _to_base36(int(digest, 16))
    return encoded[:KEY_LENGTH].rjust(KEY_LENGTH, "0")
