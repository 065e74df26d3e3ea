"""
Bucket registry: bucket name -> KeyKind, kept in the reserved metadata bucket.

The metadata bucket is itself a string-keyed bucket whose values are the kind
tokens ("string", "seq", "time"). All functions take the caller's transaction
so registry changes commit or roll back together with the bucket change they
describe.
"""

import logging
from typing import Dict

from boltbase.conf import get_setting
from boltbase.errors import BucketNotFound, InternalStoreError, InvalidKeyKind
from boltbase.keys import KeyKind
from boltbase.store import BucketHandle, Transaction

logger = logging.getLogger(__name__)


def parse_kind(token: str) -> KeyKind:
    """Validate a kind token; raises InvalidKeyKind for anything else."""
    return KeyKind.parse(token)


def _metadata(txn: Transaction, create: bool = False) -> BucketHandle:
    name = get_setting("METADATA_BUCKET")
    handle = txn.bucket(name)
    if handle is None:
        if not create:
            raise BucketNotFound(name, "kind not recorded")
        logger.info(f"Creating metadata bucket {name}")
        handle = txn.create_bucket(name)
    return handle


def register_kind(txn: Transaction, bucket: str, kind: KeyKind) -> None:
    if not isinstance(kind, KeyKind):
        raise InvalidKeyKind(kind)
    _metadata(txn, create=True).put(bucket.encode("utf-8"), kind.value.encode("ascii"))


def lookup_kind(txn: Transaction, bucket: str) -> KeyKind:
    """Kind recorded for ``bucket``; BucketNotFound when none is recorded."""
    try:
        raw = _metadata(txn).get(bucket.encode("utf-8"))
    except BucketNotFound:
        raise BucketNotFound(bucket, "kind not recorded") from None
    if raw is None:
        raise BucketNotFound(bucket, "kind not recorded")
    try:
        return KeyKind(raw.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InternalStoreError(f"corrupt kind record for {bucket}: {raw!r}") from exc


def forget_kind(txn: Transaction, bucket: str) -> bool:
    handle = txn.bucket(get_setting("METADATA_BUCKET"))
    if handle is None:
        return False
    return handle.delete(bucket.encode("utf-8"))


def rename_kind(txn: Transaction, old: str, new: str) -> None:
    try:
        kind = lookup_kind(txn, old)
    except BucketNotFound:
        logger.warning(f"Renaming {old} to {new}: no kind recorded for {old}")
        return
    forget_kind(txn, old)
    register_kind(txn, new, kind)


def all_kinds(txn: Transaction) -> Dict[str, str]:
    """Every registered bucket (stored name) with its kind token."""
    handle = txn.bucket(get_setting("METADATA_BUCKET"))
    if handle is None:
        return {}
    return {k.decode("utf-8"): v.decode("ascii") for k, v in handle.for_each()}
