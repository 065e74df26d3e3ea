"""Error taxonomy shared by the store adapter, scan engine and auth resolver."""


class BoltbaseError(Exception):
    """Base class for every error raised by the boltbase core."""


class BucketNotFound(BoltbaseError):
    def __init__(self, bucket: str, message: str = "bucket not found"):
        super().__init__(f"{message}: {bucket}")
        self.bucket = bucket


class BucketAlreadyExists(BoltbaseError):
    def __init__(self, bucket: str):
        super().__init__(f"bucket already exists: {bucket}")
        self.bucket = bucket


class KeyNotFound(BoltbaseError):
    def __init__(self, bucket: str, key):
        super().__init__(f"key not found: {key!r} in {bucket}")
        self.bucket = bucket
        self.key = key


class MalformedKey(BoltbaseError):
    """An encoded key has the wrong width or cannot be parsed for its kind."""


class InvalidKeyKind(BoltbaseError):
    def __init__(self, token):
        super().__init__(
            f"invalid key kind {token!r} (must be one of: string, seq, time)"
        )
        self.token = token


class Unauthorized(BoltbaseError):
    """The presented token matches neither the admin credential nor an API key.

    ``result`` carries the bucket-presence flags computed before the failure.
    """

    def __init__(self, result=None, message: str = "unauthorized"):
        super().__init__(message)
        self.result = result


class ApiKeyExpired(Unauthorized):
    def __init__(self, result=None):
        super().__init__(result, "api key expired")


class ReservedBucket(BoltbaseError):
    def __init__(self, bucket: str):
        super().__init__(f"can't access boltbase internal bucket: {bucket}")
        self.bucket = bucket


class CredentialConflict(BoltbaseError):
    """A credential change would leave the store in an inconsistent auth state."""


class InternalStoreError(BoltbaseError):
    """Wraps failures of the underlying store (I/O, lock timeout, corruption)."""


class InvalidArgument(BoltbaseError):
    """A request parameter is outside the range an operation accepts."""
