"""
Key schema for typed buckets.

Every bucket has one key kind, fixed when the bucket is created:

- STRING:   caller supplied text, stored as UTF-8 bytes verbatim.
- SEQUENCE: store generated unsigned integer, stored big-endian at a fixed
            width (``BOLTBASE["SEQUENCE_WIDTH"]``) so byte order equals
            numeric order.
- TIME:     insertion instant in UTC, stored as the fixed-width text
            ``YYYY-MM-DDTHH:MM:SS.ffffffZ`` so byte order equals
            chronological order.

``encode`` and ``decode`` are exact inverses for valid values; ``decode``
raises MalformedKey for bytes that could not have been produced by
``encode`` for that kind.
"""

import enum
import re
from datetime import datetime, timezone
from typing import Optional, Union

from boltbase.conf import get_setting
from boltbase.errors import InvalidKeyKind, MalformedKey

Logical = Union[str, int, datetime]

TIME_KEY_LENGTH = 27
_TIME_KEY_RE = re.compile(
    rb"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d{6})Z$"
)


class KeyKind(str, enum.Enum):
    STRING = "string"
    SEQUENCE = "seq"
    TIME = "time"

    @classmethod
    def parse(cls, token: str) -> "KeyKind":
        try:
            return cls(token)
        except ValueError as exc:
            raise InvalidKeyKind(token) from exc

    @property
    def auto_key(self) -> bool:
        """True for kinds whose keys are generated by the store on insert."""
        return self is not KeyKind.STRING


def sequence_width() -> int:
    return get_setting("SEQUENCE_WIDTH")


def encode_sequence(n: int, width: Optional[int] = None) -> bytes:
    width = width or sequence_width()
    if isinstance(n, bool) or not isinstance(n, int):
        raise MalformedKey(f"sequence key must be an integer, got {type(n).__name__}")
    if not (0 <= n < (1 << (8 * width))):
        raise MalformedKey(f"sequence key {n} does not fit in {width} bytes")
    return n.to_bytes(width, "big")


def decode_sequence(raw: bytes, width: Optional[int] = None) -> int:
    width = width or sequence_width()
    if len(raw) != width:
        raise MalformedKey(f"sequence key must be {width} bytes, got {len(raw)}")
    return int.from_bytes(raw, "big")


def encode_time(moment: datetime) -> bytes:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    else:
        moment = moment.astimezone(timezone.utc)
    # Formatted by hand: strftime("%Y") does not zero-pad years below 1000
    # on every platform.
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
        f".{moment.microsecond:06d}Z"
    )
    return text.encode("ascii")


def decode_time(raw: bytes) -> datetime:
    match = _TIME_KEY_RE.match(raw)
    if match is None:
        raise MalformedKey(f"unparsable time key: {raw!r}")
    try:
        return datetime(*(int(part) for part in match.groups()), tzinfo=timezone.utc)
    except ValueError as exc:
        raise MalformedKey(f"unparsable time key: {raw!r}") from exc


def encode_string(key: Union[str, bytes]) -> bytes:
    if isinstance(key, bytes):
        return key
    if not isinstance(key, str):
        raise MalformedKey(f"string key must be text, got {type(key).__name__}")
    return key.encode("utf-8")


def decode_string(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedKey(f"string key is not valid UTF-8: {raw!r}") from exc


def encode(kind: KeyKind, logical: Logical) -> bytes:
    if kind is KeyKind.SEQUENCE:
        return encode_sequence(logical)
    if kind is KeyKind.TIME:
        if not isinstance(logical, datetime):
            raise MalformedKey(f"time key must be a datetime, got {type(logical).__name__}")
        return encode_time(logical)
    return encode_string(logical)


def decode(kind: KeyKind, raw: bytes) -> Logical:
    raw = bytes(raw)
    if kind is KeyKind.SEQUENCE:
        return decode_sequence(raw)
    if kind is KeyKind.TIME:
        return decode_time(raw)
    return decode_string(raw)


def encode_bound(kind: KeyKind, value: Logical) -> bytes:
    """Encode a scan prefix or range bound.

    Time buckets accept partial timestamp text (``"2024-05"``) as a bound, and
    sequence buckets accept decimal strings as they arrive from URLs.
    """
    if kind is KeyKind.TIME and isinstance(value, str):
        if not value.isascii():
            raise MalformedKey(f"time key bound must be ASCII: {value!r}")
        return value.encode("ascii")
    if kind is KeyKind.SEQUENCE and isinstance(value, str):
        try:
            value = int(value, 10)
        except ValueError as exc:
            raise MalformedKey(f"sequence key must be an integer, got {value!r}") from exc
    return encode(kind, value)


def render(kind: KeyKind, logical: Logical) -> Union[str, int]:
    """Text form of a logical key as shown to clients (and accepted back)."""
    if kind is KeyKind.TIME:
        return encode_time(logical).decode("ascii")
    return logical


def prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """Smallest byte string greater than every key starting with ``prefix``.

    Returns None when no such bound exists (empty prefix or all 0xFF bytes).
    """
    for i in range(len(prefix) - 1, -1, -1):
        if prefix[i] != 0xFF:
            return prefix[:i] + bytes([prefix[i] + 1])
    return None
