"""
ULID (Universally Unique Lexicographically Sortable Identifier) generator.

Format: TTTTTTTTTTRRRRRRRRRRRRRRRR
  T — 48-bit millisecond timestamp, 10 chars
  R — 80 bits of randomness, 16 chars

Both parts are big-endian Crockford base-32, so string order follows
issuance time without any coordination between processes.
"""
import secrets
import threading
import time
from typing import Optional

ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ENCODING_LEN = len(ENCODING)
TIME_LEN = 10
RANDOM_LEN = 16
ULID_LEN = TIME_LEN + RANDOM_LEN
TIME_MAX = 2 ** 48 - 1
RANDOM_MAX = 2 ** 80 - 1

_DECODING = {ch: i for i, ch in enumerate(ENCODING)}


class ULIDError(ValueError):
    pass


class InvalidULIDError(ULIDError):
    pass


class ULIDOverflowError(ULIDError):
    """Random part exhausted within a single millisecond."""


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        value, mod = divmod(value, ENCODING_LEN)
        chars.append(ENCODING[mod])
    return "".join(reversed(chars))


def _decode(text: str) -> int:
    value = 0
    for ch in text:
        index = _DECODING.get(ch)
        if index is None:
            raise InvalidULIDError(f"Invalid ULID character: {ch!r}")
        value = value * ENCODING_LEN + index
    return value


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _check_time(timestamp_ms: int) -> int:
    if timestamp_ms < 0 or timestamp_ms > TIME_MAX:
        raise ULIDError(f"Time value {timestamp_ms} outside 48-bit range")
    return timestamp_ms


def _random_part() -> int:
    return int.from_bytes(secrets.token_bytes(10), "big")


def generate(timestamp_ms: Optional[int] = None) -> str:
    """Return a 26-character ULID for `timestamp_ms` (defaults to now)."""
    now = _check_time(_now_ms() if timestamp_ms is None else timestamp_ms)
    return _encode(now, TIME_LEN) + _encode(_random_part(), RANDOM_LEN)


def decode_time(ulid: str) -> int:
    """Millisecond timestamp carried by the first 10 characters."""
    if not isinstance(ulid, str):
        raise InvalidULIDError(f"ULID must be a string, got {type(ulid).__name__}")
    if len(ulid) != ULID_LEN:
        raise InvalidULIDError(f"Invalid ULID length: {len(ulid)}")
    _decode(ulid[TIME_LEN:])
    return _decode(ulid[:TIME_LEN])


def is_valid(ulid) -> bool:
    """Length and alphabet check only; the timestamp is not range-checked."""
    if not isinstance(ulid, str) or len(ulid) != ULID_LEN:
        return False
    return all(ch in _DECODING for ch in ulid)


class MonotonicFactory:
    """
    Issues strictly increasing ULIDs within one process.

    A second call in the same millisecond reuses the previous random part
    plus one instead of drawing fresh randomness.
    """

    def __init__(self) -> None:
        self._last_time = -1
        self._last_random = 0
        self._lock = threading.Lock()

    def generate(self, timestamp_ms: Optional[int] = None) -> str:
        now = _check_time(_now_ms() if timestamp_ms is None else timestamp_ms)
        with self._lock:
            if now == self._last_time:
                if self._last_random >= RANDOM_MAX:
                    raise ULIDOverflowError(
                        f"ULID sequence exhausted for millisecond {now}"
                    )
                self._last_random += 1
            else:
                self._last_time = now
                self._last_random = _random_part()
            random_part = self._last_random
        return _encode(now, TIME_LEN) + _encode(random_part, RANDOM_LEN)

    __call__ = generate


_default_factory = MonotonicFactory()


def new_id() -> str:
    """Process-wide monotonic ULID used for every entity the DAL creates."""
    return _default_factory.generate()
