"""
Ordered store adapter.

Wraps the Django ORM models (``Bucket`` / ``Entry``) into the small surface the
scan engine needs: read transactions (``Store.view``), serialized write
transactions (``Store.update``), named buckets with get/put/delete/for_each,
a per-bucket sequence counter, a maintained key count and forward cursors.

Keys and values are raw bytes here; the key schema lives in ``boltbase.keys``.
"""

import logging
import threading
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple, TypeVar

from django.db import DEFAULT_DB_ALIAS, DatabaseError, transaction
from django.db.models import F

from boltbase.conf import get_setting
from boltbase.errors import BucketAlreadyExists, BucketNotFound, InternalStoreError
from boltbase.models import Bucket, Entry

logger = logging.getLogger(__name__)

T = TypeVar("T")
Pair = Tuple[bytes, bytes]

# Rows fetched per query while iterating a bucket in key order.
ITER_CHUNK_SIZE = 500

# Single active writer per process. Reentrant so a write callable may call
# back into Store.update (the inner block becomes a savepoint).
_writer_lock = threading.RLock()


class Store:
    """Entry point for transactions against one database alias."""

    def __init__(self, using: str = DEFAULT_DB_ALIAS, lock_timeout: Optional[float] = None):
        self.using = using
        self.lock_timeout = lock_timeout

    def view(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(txn, *args, **kwargs)`` inside a read-only transaction."""
        return self._run(fn, args, kwargs, writable=False)

    def update(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(txn, *args, **kwargs)`` inside the single write transaction.

        Everything ``fn`` does commits together; any exception rolls it all back
        and propagates unchanged (store failures as InternalStoreError).
        """
        timeout = self.lock_timeout
        if timeout is None:
            timeout = get_setting("LOCK_TIMEOUT")
        if not _writer_lock.acquire(timeout=timeout):
            raise InternalStoreError(f"timed out after {timeout}s waiting for the write lock")
        try:
            return self._run(fn, args, kwargs, writable=True)
        finally:
            _writer_lock.release()

    def _run(self, fn, args, kwargs, writable: bool):
        try:
            with transaction.atomic(using=self.using):
                return fn(Transaction(self.using, writable), *args, **kwargs)
        except DatabaseError as exc:
            logger.error(f"Store transaction failed on '{self.using}': {exc}")
            raise InternalStoreError(str(exc)) from exc


_stores = {}


def open_store(using: str = DEFAULT_DB_ALIAS) -> Store:
    """Return the shared Store for a database alias."""
    return _stores.setdefault(using, Store(using))


class Transaction:
    """Handle passed to Store.view / Store.update callables."""

    def __init__(self, using: str, writable: bool):
        self.using = using
        self.writable = writable

    def _check_writable(self) -> None:
        if not self.writable:
            raise InternalStoreError("transaction is read-only")

    def _buckets(self):
        qs = Bucket.objects.using(self.using)
        if self.writable:
            qs = qs.select_for_update()
        return qs

    def bucket(self, name: str) -> Optional["BucketHandle"]:
        row = self._buckets().filter(name=name).first()
        return BucketHandle(self, row) if row is not None else None

    def bucket_or_raise(self, name: str) -> "BucketHandle":
        handle = self.bucket(name)
        if handle is None:
            raise BucketNotFound(name)
        return handle

    def has_bucket(self, name: str) -> bool:
        return Bucket.objects.using(self.using).filter(name=name).exists()

    def bucket_names(self) -> List[str]:
        return list(Bucket.objects.using(self.using).values_list("name", flat=True))

    def create_bucket(self, name: str) -> "BucketHandle":
        self._check_writable()
        if self.has_bucket(name):
            raise BucketAlreadyExists(name)
        row = Bucket.objects.using(self.using).create(name=name)
        return BucketHandle(self, row)

    def delete_bucket(self, name: str) -> None:
        self._check_writable()
        deleted, _ = Bucket.objects.using(self.using).filter(name=name).delete()
        if not deleted:
            raise BucketNotFound(name)


class BucketHandle:
    """One bucket as seen from inside a transaction."""

    def __init__(self, txn: Transaction, row: Bucket):
        self._txn = txn
        self._row = row

    @property
    def name(self) -> str:
        return self._row.name

    @property
    def created_at(self):
        return self._row.created_at

    def _entries(self):
        return Entry.objects.using(self._txn.using).filter(bucket_id=self._row.pk)

    def _bucket_row(self):
        return Bucket.objects.using(self._txn.using).filter(pk=self._row.pk)

    def get(self, key: bytes) -> Optional[bytes]:
        value = self._entries().filter(key=key).values_list("value", flat=True).first()
        return bytes(value) if value is not None else None

    def put(self, key: bytes, value: bytes) -> bool:
        """Upsert one pair. Returns True when the key was newly created."""
        self._txn._check_writable()
        if self._entries().filter(key=key).update(value=value):
            return False
        Entry.objects.using(self._txn.using).create(bucket_id=self._row.pk, key=key, value=value)
        self._bump_count(1)
        return True

    def put_many(self, pairs: Iterable[Pair]) -> int:
        """Insert pairs whose keys are known to be absent (e.g. a fresh bucket)."""
        self._txn._check_writable()
        total = 0
        batch = []
        for key, value in pairs:
            batch.append(Entry(bucket_id=self._row.pk, key=key, value=value))
            if len(batch) >= ITER_CHUNK_SIZE:
                total += self._flush(batch)
                batch = []
        if batch:
            total += self._flush(batch)
        return total

    def _flush(self, batch: List[Entry]) -> int:
        Entry.objects.using(self._txn.using).bulk_create(batch)
        self._bump_count(len(batch))
        return len(batch)

    def delete(self, key: bytes) -> bool:
        self._txn._check_writable()
        deleted, _ = self._entries().filter(key=key).delete()
        if deleted:
            self._bump_count(-deleted)
        return bool(deleted)

    def _bump_count(self, delta: int) -> None:
        self._bucket_row().update(key_count=F("key_count") + delta)

    def key_count(self) -> int:
        return self._bucket_row().values_list("key_count", flat=True).get()

    def sequence(self) -> int:
        return self._bucket_row().values_list("sequence", flat=True).get()

    def next_sequence(self) -> int:
        """Allocate the next sequence number (1, 2, ...). Never reused."""
        self._txn._check_writable()
        self._bucket_row().update(sequence=F("sequence") + 1)
        return self.sequence()

    def set_sequence(self, value: int) -> None:
        self._txn._check_writable()
        self._bucket_row().update(sequence=value)

    def for_each(self) -> Iterator[Pair]:
        """All pairs in forward key order."""
        return self.cursor()._iterate(None)

    def window(self, offset: int, limit: int) -> List[Pair]:
        """Up to ``limit`` pairs starting at position ``offset`` in key order."""
        rows = self._entries().order_by("key").values_list("key", "value")[offset:offset + limit]
        return [(bytes(k), bytes(v)) for k, v in rows]

    def cursor(self, upper: Optional[bytes] = None, inclusive: bool = False) -> "Cursor":
        """Forward cursor, optionally told where callers will stop reading."""
        return Cursor(self, upper, inclusive)


class Cursor:
    """Forward iterator over a bucket: ``seek`` to a key, then ``next``.

    Rows are fetched in key-ordered chunks, so a cursor never holds a database
    cursor open across writes made in the same transaction.
    """

    def __init__(self, handle: BucketHandle, upper: Optional[bytes], inclusive: bool):
        self._handle = handle
        self._upper = upper
        self._inclusive = inclusive
        self._rows: Iterator[Pair] = iter(())

    def first(self) -> Optional[Pair]:
        self._rows = self._iterate(None)
        return self.next()

    def seek(self, key: bytes) -> Optional[Pair]:
        """Position at the first key >= ``key`` and return that pair."""
        self._rows = self._iterate(key)
        return self.next()

    def next(self) -> Optional[Pair]:
        return next(self._rows, None)

    def _iterate(self, lower: Optional[bytes]) -> Iterator[Pair]:
        qs = self._handle._entries().order_by("key").values_list("key", "value")
        if self._upper is not None:
            qs = qs.filter(key__lte=self._upper) if self._inclusive else qs.filter(key__lt=self._upper)
        chunk = qs if lower is None else qs.filter(key__gte=lower)
        while True:
            rows = [(bytes(k), bytes(v)) for k, v in chunk[:ITER_CHUNK_SIZE]]
            yield from rows
            if len(rows) < ITER_CHUNK_SIZE:
                return
            chunk = qs.filter(key__gt=rows[-1][0])
