from typing import Any

from django.conf import settings

DEFAULTS = {
    # Byte width of sequence keys. One width per deployment; changing it on an
    # existing database makes every stored sequence key undecodable.
    "SEQUENCE_WIDTH": 8,
    # Seconds to wait for the single-writer lock before giving up.
    "LOCK_TIMEOUT": 5.0,
    # Maximum number of entries returned by a single part scan.
    "MAX_SCAN_SIZE": 10000,
    "DEFAULT_PAGE_SIZE": 25,
    "EXPORT_PATH": "Boltbase.json",
    "METADATA_BUCKET": "BoltbaseMetaDataForBucketsKeyType",
    "ADMIN_BUCKET": "BoltbaseAdminBucketforUsernameAndPassword",
    "API_KEY_BUCKET": "BoltbaseApiKeyBucket",
}


def get_setting(name: str) -> Any:
    """Read a value from the ``BOLTBASE`` settings dict, falling back to DEFAULTS."""
    return getattr(settings, "BOLTBASE", {}).get(name, DEFAULTS[name])


def reserved_buckets() -> tuple:
    return (
        get_setting("METADATA_BUCKET"),
        get_setting("ADMIN_BUCKET"),
        get_setting("API_KEY_BUCKET"),
    )
