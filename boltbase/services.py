import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Union
from urllib.parse import quote, unquote

from boltbase import registry
from boltbase.conf import get_setting
from boltbase.errors import (
    BucketAlreadyExists,
    InternalStoreError,
    InvalidArgument,
    KeyNotFound,
    MalformedKey,
)
from boltbase.keys import (
    KeyKind,
    Logical,
    decode,
    encode,
    encode_bound,
    prefix_upper_bound,
    render,
)
from boltbase.store import BucketHandle, Transaction, open_store

logger = logging.getLogger(__name__)


class Item(NamedTuple):
    key: Logical
    value: str


class PutResult(NamedTuple):
    key: Logical
    created: bool
    warning: Optional[str] = None


class BucketInfo(NamedTuple):
    name: str
    kind: KeyKind
    key_count: int
    sequence: int
    created_at: datetime


def storage_name(name: str) -> str:
    """Percent-encode a bucket name the way it is stored."""
    return quote(name, safe="")


def display_name(stored: str) -> str:
    return unquote(stored)


def _text(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InternalStoreError(f"stored value is not UTF-8 text: {value[:32]!r}") from exc


def open_bucket(txn: Transaction, bucket: str):
    """Resolve a bucket and its key kind once, for the rest of the operation."""
    stored = storage_name(bucket)
    handle = txn.bucket_or_raise(stored)
    return handle, registry.lookup_kind(txn, stored)


def to_items(kind: KeyKind, pairs) -> List[Item]:
    return [Item(decode(kind, k), _text(v)) for k, v in pairs]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_value(bucket: str, key: Union[str, int, datetime]) -> str:
    """Exact lookup. Raises BucketNotFound or KeyNotFound."""

    def _get(txn: Transaction) -> str:
        handle, kind = open_bucket(txn, bucket)
        raw = handle.get(encode_bound(kind, key))
        if raw is None:
            raise KeyNotFound(bucket, key)
        return _text(raw)

    return open_store().view(_get)


def prefix_scan(bucket: str, prefix: Union[str, int, datetime]) -> List[Item]:
    """All entries whose encoded key starts with the encoded prefix, in key order."""

    def _scan(txn: Transaction) -> List[Item]:
        handle, kind = open_bucket(txn, bucket)
        raw_prefix = encode_bound(kind, prefix)
        cursor = handle.cursor(upper=prefix_upper_bound(raw_prefix))
        pairs = []
        pair = cursor.seek(raw_prefix)
        while pair is not None and pair[0].startswith(raw_prefix):
            pairs.append(pair)
            pair = cursor.next()
        logger.debug(f"Prefix scan {bucket}/{prefix!r}: {len(pairs)} entries")
        return to_items(kind, pairs)

    return open_store().view(_scan)


def range_scan(
    bucket: str,
    start: Union[str, int, datetime],
    end: Union[str, int, datetime],
) -> List[Item]:
    """Entries with start <= key <= end. Empty when start > end."""

    def _scan(txn: Transaction) -> List[Item]:
        handle, kind = open_bucket(txn, bucket)
        raw_start, raw_end = encode_bound(kind, start), encode_bound(kind, end)
        if raw_start > raw_end:
            return []
        cursor = handle.cursor(upper=raw_end, inclusive=True)
        pairs = []
        pair = cursor.seek(raw_start)
        while pair is not None and pair[0] <= raw_end:
            pairs.append(pair)
            pair = cursor.next()
        logger.debug(f"Range scan {bucket}/[{start!r}, {end!r}]: {len(pairs)} entries")
        return to_items(kind, pairs)

    return open_store().view(_scan)


def scan_all(bucket: str) -> List[Item]:
    def _scan(txn: Transaction) -> List[Item]:
        handle, kind = open_bucket(txn, bucket)
        return to_items(kind, handle.for_each())

    return open_store().view(_scan)


def part_scan(bucket: str, offset: int, length: int) -> List[Item]:
    """
    Window of the full scan: up to ``length`` entries starting at ``offset``.

    The window is applied by the store over its ordered index, so only the
    requested page leaves the database. ``length`` is capped at
    MAX_SCAN_SIZE.
    """
    if offset < 0 or length < 0:
        raise InvalidArgument("offset and length must be non-negative")
    length = min(length, get_setting("MAX_SCAN_SIZE"))

    def _scan(txn: Transaction) -> List[Item]:
        handle, kind = open_bucket(txn, bucket)
        return to_items(kind, handle.window(offset, length))

    return open_store().view(_scan)


def count_entries(bucket: str) -> int:
    """Maintained key count of a bucket; no scan."""
    return open_store().view(lambda txn: txn.bucket_or_raise(storage_name(bucket)).key_count())


def bucket_info(bucket: str) -> BucketInfo:
    def _info(txn: Transaction) -> BucketInfo:
        handle, kind = open_bucket(txn, bucket)
        return BucketInfo(
            name=bucket,
            kind=kind,
            key_count=handle.key_count(),
            sequence=handle.sequence(),
            created_at=handle.created_at,
        )

    return open_store().view(_info)


def _visible(name: str, include_api_keys: bool) -> bool:
    if name in (get_setting("METADATA_BUCKET"), get_setting("ADMIN_BUCKET")):
        return False
    return include_api_keys or name != get_setting("API_KEY_BUCKET")


def list_buckets(include_api_keys: bool = False) -> List[str]:
    """Decoded names of every bucket a caller may see, in stored-name order."""
    names = open_store().view(lambda txn: txn.bucket_names())
    return [display_name(n) for n in names if _visible(n, include_api_keys)]


def bucket_kinds(include_api_keys: bool = False) -> Dict[str, str]:
    kinds = open_store().view(registry.all_kinds)
    return {
        display_name(name): kind
        for name, kind in kinds.items()
        if _visible(name, include_api_keys)
    }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def put_value(
    bucket: str,
    value: Union[str, bytes],
    key: Optional[str] = None,
    update: bool = True,
) -> PutResult:
    """
    Store a value.

    String buckets upsert ``key`` (or leave an existing key untouched when
    ``update`` is False). Sequence and time buckets generate the key; a
    supplied key is ignored and reported back as a warning.
    """
    data = value.encode("utf-8") if isinstance(value, str) else value

    def _put(txn: Transaction) -> PutResult:
        handle, kind = open_bucket(txn, bucket)
        if kind is KeyKind.STRING:
            if not key:
                raise MalformedKey("a key is required for string buckets")
            raw = encode(kind, key)
            if not update and handle.get(raw) is not None:
                return PutResult(key, False, "key already exists")
            return PutResult(key, handle.put(raw, data))

        if kind is KeyKind.SEQUENCE:
            logical = handle.next_sequence()
        else:
            logical = datetime.now(timezone.utc)
        created = handle.put(encode(kind, logical), data)
        warning = None
        if key:
            warning = (
                f"The bucket is in '{kind.value}' mode, the 'key' in the request body "
                f"is ignored and the key is generated automatically."
            )
            logger.warning(f"Ignoring supplied key {key!r} for {kind.value} bucket {bucket}")
        return PutResult(logical, created, warning)

    return open_store().update(_put)


def delete_value(bucket: str, key: Union[str, int, datetime]) -> None:
    def _delete(txn: Transaction) -> None:
        handle, kind = open_bucket(txn, bucket)
        if not handle.delete(encode_bound(kind, key)):
            raise KeyNotFound(bucket, key)

    open_store().update(_delete)


def create_bucket(name: str, kind_token: str) -> KeyKind:
    """Register the bucket's kind and create it, atomically."""
    kind = registry.parse_kind(kind_token)
    stored = storage_name(name)

    def _create(txn: Transaction) -> None:
        txn.create_bucket(stored)
        registry.register_kind(txn, stored, kind)

    open_store().update(_create)
    logger.info(f"Created {kind.value} bucket {name}")
    return kind


def drop_bucket(name: str) -> None:
    stored = storage_name(name)

    def _drop(txn: Transaction) -> None:
        txn.delete_bucket(stored)
        registry.forget_kind(txn, stored)

    open_store().update(_drop)
    logger.info(f"Dropped bucket {name}")


def rename_bucket(old: str, new: str) -> int:
    """
    Move every entry of ``old`` into a new bucket ``new`` and delete ``old``.

    Runs as one write transaction: the copy, the registry entry and the
    sequence counter move together or not at all. Returns the number of
    entries copied.
    """
    old_stored, new_stored = storage_name(old), storage_name(new)

    def _rename(txn: Transaction) -> int:
        source = txn.bucket_or_raise(old_stored)
        if txn.has_bucket(new_stored):
            raise BucketAlreadyExists(new)
        target = txn.create_bucket(new_stored)
        copied = target.put_many(source.for_each())
        target.set_sequence(source.sequence())
        registry.rename_kind(txn, old_stored, new_stored)
        txn.delete_bucket(old_stored)
        return copied

    copied = open_store().update(_rename)
    logger.info(f"Renamed bucket {old} to {new} ({copied} entries)")
    return copied


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _export_bucket(txn: Transaction, handle: BucketHandle) -> Dict[str, str]:
    kind = registry.lookup_kind(txn, handle.name)
    return {str(render(kind, decode(kind, k))): _text(v) for k, v in handle.for_each()}


def export_snapshot() -> Dict[str, Dict[str, str]]:
    """Every user-visible bucket with its entries, from one consistent snapshot."""

    def _export(txn: Transaction) -> Dict[str, Dict[str, str]]:
        snapshot = {}
        for name in txn.bucket_names():
            if not _visible(name, include_api_keys=False):
                continue
            snapshot[display_name(name)] = _export_bucket(txn, txn.bucket(name))
        return snapshot

    return open_store().view(_export)


def export_to_file(path: Optional[str] = None) -> int:
    """Write export_snapshot() as JSON. Returns the number of buckets written."""
    path = path or get_setting("EXPORT_PATH")
    snapshot = export_snapshot()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2, ensure_ascii=False)
    logger.info(f"Exported {len(snapshot)} buckets to {path}")
    return len(snapshot)
