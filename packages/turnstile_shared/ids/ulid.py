"""Record identifier generation.

Identifiers are 26-character Crockford Base32 ULID strings: a 48-bit
millisecond timestamp followed by 80 bits of secure randomness, so ids sort
by creation time when compared as plain text.
"""

from __future__ import annotations

import secrets
import time

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
RECORD_ID_LENGTH = 26


def new_record_id(*, timestamp_ms: int | None = None) -> str:
    """Return a new time-ordered record id."""
    ts_ms = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    if not 0 <= ts_ms < (1 << 48):
        raise ValueError("timestamp_ms out of 48-bit range")

    value = (ts_ms << 80) | secrets.randbits(80)
    chars = []
    for _ in range(RECORD_ID_LENGTH):
        value, remainder = divmod(value, 32)
        chars.append(_CROCKFORD[remainder])
    return "".join(reversed(chars))


def is_record_id(value: object) -> bool:
    """Return whether ``value`` looks like a record id produced by this module."""
    return (
        isinstance(value, str)
        and len(value) == RECORD_ID_LENGTH
        and all(char in _CROCKFORD for char in value)
        and value[0] in "01234567"
    )
