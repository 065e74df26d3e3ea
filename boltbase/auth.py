"""
Authorization resolution against credentials kept in the store itself.

Two reserved buckets drive the decision:

- the admin bucket holds a single ``authToken`` entry, the full
  ``Authorization`` header value ("Basic <base64 user:password>");
- the API-key bucket maps issued keys to their RFC 3339 expiry.

``resolve`` classifies a presented token:

1. no admin bucket        -> open mode, the caller is admin
2. token == admin token   -> admin
3. no API-key bucket      -> Unauthorized
4. unknown API key        -> Unauthorized
   unparsable expiry      -> InternalStoreError
   expiry <= now          -> ApiKeyExpired
   otherwise              -> API-key holder (not admin)

Nothing is cached: each call reads the current state in one read transaction.
"""

import base64
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Optional, Tuple

from django.utils import timezone
from django.utils.crypto import constant_time_compare
from django.utils.dateparse import parse_datetime

from boltbase import registry
from boltbase.conf import get_setting
from boltbase.errors import (
    ApiKeyExpired,
    BucketNotFound,
    CredentialConflict,
    InternalStoreError,
    InvalidArgument,
    ReservedBucket,
    Unauthorized,
)
from boltbase.keys import KeyKind
from boltbase.store import Transaction, open_store

logger = logging.getLogger(__name__)

ADMIN_TOKEN_KEY = b"authToken"


@dataclass(frozen=True)
class AuthResult:
    is_admin: bool = False
    is_api_key: bool = False
    admin_bucket_exists: bool = False
    api_key_bucket_exists: bool = False


def format_expiry(moment: datetime) -> str:
    return moment.astimezone(dt_timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_expiry(raw: bytes) -> datetime:
    """Parse a stored expiry. Corrupt values are store errors, not auth failures."""
    try:
        parsed = parse_datetime(raw.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InternalStoreError(f"unparsable api key expiry: {raw!r}") from exc
    if parsed is None:
        raise InternalStoreError(f"unparsable api key expiry: {raw!r}")
    if timezone.is_naive(parsed):
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed


def resolve(token: Optional[str]) -> AuthResult:
    """Classify a bearer token; see the module docstring for the rules."""
    return open_store().view(_resolve, token or "")


def _resolve(txn: Transaction, token: str) -> AuthResult:
    admin = txn.bucket(get_setting("ADMIN_BUCKET"))
    api_keys = txn.bucket(get_setting("API_KEY_BUCKET"))
    flags = {
        "admin_bucket_exists": admin is not None,
        "api_key_bucket_exists": api_keys is not None,
    }

    if admin is None:
        return AuthResult(is_admin=True, **flags)

    stored = admin.get(ADMIN_TOKEN_KEY)
    if stored is None:
        raise InternalStoreError("admin bucket exists but holds no credential")
    if constant_time_compare(stored, token.encode("utf-8")):
        return AuthResult(is_admin=True, **flags)

    denied = AuthResult(**flags)
    if api_keys is None:
        raise Unauthorized(denied)

    expiry = api_keys.get(token.encode("utf-8"))
    if expiry is None:
        raise Unauthorized(denied)
    if parse_expiry(expiry) <= timezone.now():
        raise ApiKeyExpired(denied)
    return AuthResult(is_api_key=True, **flags)


def guard_bucket(name: str, result: AuthResult) -> None:
    """Refuse public access to reserved buckets.

    The metadata and admin buckets are never reachable; the API-key bucket is
    reachable by admins only.
    """
    if name in (get_setting("METADATA_BUCKET"), get_setting("ADMIN_BUCKET")):
        raise ReservedBucket(name)
    if name == get_setting("API_KEY_BUCKET") and not result.is_admin:
        raise ReservedBucket(name)


# ---------------------------------------------------------------------------
# Credential administration
# ---------------------------------------------------------------------------


def basic_token(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def set_admin_credential(username: str, password: str) -> str:
    """Store (or replace) the admin credential. Returns the header value to send."""
    if not username or not password:
        raise InvalidArgument("username or password cannot be empty")
    token = basic_token(username, password)
    name = get_setting("ADMIN_BUCKET")

    def _set(txn: Transaction) -> None:
        admin = txn.bucket(name) or txn.create_bucket(name)
        admin.put(ADMIN_TOKEN_KEY, token.encode("utf-8"))

    open_store().update(_set)
    logger.info("Admin credential set")
    return token


def delete_admin_credential() -> None:
    """Return the store to open mode. Refused while API keys exist."""
    admin_name, api_name = get_setting("ADMIN_BUCKET"), get_setting("API_KEY_BUCKET")

    def _delete(txn: Transaction) -> None:
        if not txn.has_bucket(admin_name):
            raise BucketNotFound(admin_name, "admin credential not set")
        if txn.has_bucket(api_name):
            raise CredentialConflict(
                f"can't delete the admin credential while {api_name} exists; "
                f"delete {api_name} first"
            )
        txn.delete_bucket(admin_name)

    open_store().update(_delete)
    logger.info("Admin credential deleted, store is in open mode")


def issue_api_key(duration: timedelta) -> Tuple[str, str]:
    """Create a new API key valid for ``duration``. Returns (key, expiry)."""
    api_name = get_setting("API_KEY_BUCKET")
    key = str(uuid.uuid4())
    expiry = format_expiry(timezone.now() + duration)

    def _issue(txn: Transaction) -> None:
        api_keys = txn.bucket(api_name)
        if api_keys is None:
            api_keys = txn.create_bucket(api_name)
            registry.register_kind(txn, api_name, KeyKind.STRING)
        api_keys.put(key.encode("utf-8"), expiry.encode("ascii"))

    open_store().update(_issue)
    logger.info(f"Issued api key expiring at {expiry}")
    return key, expiry


def purge_expired_api_keys() -> int:
    """Delete every API key whose expiry is not after now. Returns how many."""
    api_name = get_setting("API_KEY_BUCKET")

    def _purge(txn: Transaction) -> int:
        api_keys = txn.bucket(api_name)
        if api_keys is None:
            return 0
        now = timezone.now()
        expired = [k for k, v in api_keys.for_each() if parse_expiry(v) <= now]
        for k in expired:
            api_keys.delete(k)
        return len(expired)

    purged = open_store().update(_purge)
    logger.info(f"Purged {purged} expired api keys")
    return purged
