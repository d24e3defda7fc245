"""
Monotonic UUIDv7 generator following RFC 9562.

Reservation ids minted by the queue service are time-ordered: the first
48 bits carry the Unix timestamp in milliseconds, so ids sort in the order
reservations were requested and cluster well in the SQLite indexes.

Within one process ids are strictly increasing, even for reservations
placed in the same millisecond. The 12-bit rand_a field holds a counter
(RFC 9562, section 6.2, method 1) that is seeded randomly at each new
millisecond and incremented for every further id in that millisecond.
If the counter runs out, the timestamp is borrowed from the next
millisecond. A clock stepping backwards is treated the same way as a
repeated millisecond.

Layout (128 bits):
- 48 bits  unix_ts_ms
- 4 bits   version (0111)
- 12 bits  counter
- 2 bits   variant (10)
- 62 bits  random

RFC 9562: https://www.rfc-editor.org/rfc/rfc9562.html
"""

import os
import threading
import time
from typing import Tuple
from uuid import UUID

_COUNTER_BITS = 12
_COUNTER_MAX = (1 << _COUNTER_BITS) - 1
# Seeds use the lower half of the counter range
_COUNTER_SEED_MASK = _COUNTER_MAX >> 1
_RANDOM_BITS = 62

_lock = threading.Lock()
_last_timestamp_ms = -1
_counter = 0


def _next_timestamp_and_counter() -> Tuple[int, int]:
    global _last_timestamp_ms, _counter

    with _lock:
        timestamp_ms = time.time_ns() // 1_000_000

        if timestamp_ms > _last_timestamp_ms:
            _last_timestamp_ms = timestamp_ms
            _counter = int.from_bytes(os.urandom(2), "big") & _COUNTER_SEED_MASK
        elif _counter < _COUNTER_MAX:
            _counter += 1
        else:
            _last_timestamp_ms += 1
            _counter = 0

        return _last_timestamp_ms, _counter


def uuid7() -> UUID:
    """
    Generate a time-ordered UUIDv7.

    Returns:
        A uuid.UUID instance with version 7, greater than every id
        previously returned by this process.

    Example:
        >>> from app.domain.utils.uuid7 import uuid7
        >>> first, second = uuid7(), uuid7()
        >>> first < second
        True
        >>> second.version
        7
    """
    timestamp_ms, counter = _next_timestamp_and_counter()
    random_bits = int.from_bytes(os.urandom(8), "big") & ((1 << _RANDOM_BITS) - 1)

    value = (
        (timestamp_ms & 0xFFFF_FFFF_FFFF) << 80
        | 0x7 << 76
        | counter << 64
        | 0b10 << 62
        | random_bits
    )
    return UUID(int=value)
