import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.views import exception_handler as drf_exception_handler

from boltbase import auth, paging, services
from boltbase.conf import get_setting, reserved_buckets
from boltbase.errors import (
    BoltbaseError,
    BucketAlreadyExists,
    BucketNotFound,
    CredentialConflict,
    InternalStoreError,
    InvalidArgument,
    InvalidKeyKind,
    KeyNotFound,
    MalformedKey,
    ReservedBucket,
    Unauthorized,
)
from boltbase.permissions import IsStoreAdmin
from boltbase.serializers import (
    ApiKeyRequestSerializer,
    ApiKeyResponseSerializer,
    BucketInfoSerializer,
    BucketKindsSerializer,
    BucketListSerializer,
    CountResponseSerializer,
    CredentialSerializer,
    PageQuerySerializer,
    PageResponseSerializer,
    PurgeResponseSerializer,
    PutResponseSerializer,
    PutSerializer,
    ScanResponseSerializer,
    ValueResponseSerializer,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    BucketNotFound: status.HTTP_404_NOT_FOUND,
    KeyNotFound: status.HTTP_404_NOT_FOUND,
    BucketAlreadyExists: status.HTTP_409_CONFLICT,
    MalformedKey: status.HTTP_400_BAD_REQUEST,
    InvalidKeyKind: status.HTTP_400_BAD_REQUEST,
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    ReservedBucket: status.HTTP_403_FORBIDDEN,
    CredentialConflict: status.HTTP_403_FORBIDDEN,
    InternalStoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def api_exception_handler(exc, context):
    """DRF exception handler that also answers the boltbase error taxonomy."""
    response = drf_exception_handler(exc, context)
    if response is not None or not isinstance(exc, BoltbaseError):
        return response

    code = next(
        (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error(f"{type(exc).__name__} while handling {context['request'].path}: {exc}")
    return Response({"detail": str(exc)}, status=code)


BUCKET_PARAM = OpenApiParameter(
    name="bucket",
    type=str,
    location=OpenApiParameter.PATH,
    description="Bucket name",
)


def _scan_response(items):
    return Response(ScanResponseSerializer({"total": len(items), "kv": items}).data)


# Django resolves routes by path alone, so a literal segment such as
# "/bucket/type/" also receives requests meant for a bucket of that name.
# The views owning those literals forward the other methods through these.


def _create_bucket(request, bucket: str, kind: str):
    if bucket in reserved_buckets():
        raise ReservedBucket(bucket)
    created = services.create_bucket(bucket, kind)
    return Response({"bucket": bucket, "kind": created.value}, status=status.HTTP_201_CREATED)


def _rename_bucket(request, old: str, new: str):
    auth.guard_bucket(old, request.auth)
    auth.guard_bucket(new, request.auth)
    services.rename_bucket(old, new)
    return Response(status=status.HTTP_204_NO_CONTENT)


def _drop_bucket(request, bucket: str):
    auth.guard_bucket(bucket, request.auth)
    services.drop_bucket(bucket)
    return Response(status=status.HTTP_204_NO_CONTENT)


def _delete_key(request, bucket: str, key: str):
    auth.guard_bucket(bucket, request.auth)
    services.delete_value(bucket, key)
    return Response(status=status.HTTP_204_NO_CONTENT)


class KeyDeleteForLiteralBucket:
    """``DELETE /kv/<literal>/<key>/`` deletes ``key`` from the bucket named
    ``literal_bucket``."""

    literal_bucket = None

    @extend_schema(exclude=True)
    def delete(self, request, bucket: str):
        return _delete_key(request, self.literal_bucket, bucket)


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------


class BucketListView(APIView):
    """List the buckets visible to the caller."""

    @extend_schema(
        operation_id="list_buckets",
        summary="List buckets",
        description="Names of all user buckets. Admins also see the API-key bucket.",
        responses={200: BucketListSerializer},
        tags=["Buckets"],
    )
    def get(self, request):
        buckets = services.list_buckets(include_api_keys=request.auth.is_admin)
        return Response(BucketListSerializer({"buckets": buckets, "total": len(buckets)}).data)


class BucketKindsView(APIView):
    """Key kind of every registered bucket."""

    @extend_schema(
        operation_id="list_bucket_kinds",
        summary="List bucket key kinds",
        responses={200: BucketKindsSerializer},
        tags=["Buckets"],
    )
    def get(self, request):
        kinds = services.bucket_kinds(include_api_keys=request.auth.is_admin)
        return Response(BucketKindsSerializer({"kinds": kinds}).data)

    @extend_schema(exclude=True)
    def delete(self, request):
        return _drop_bucket(request, "type")


class BucketInfoView(APIView):
    @extend_schema(
        operation_id="bucket_info",
        summary="Describe a bucket",
        parameters=[BUCKET_PARAM],
        responses={
            200: BucketInfoSerializer,
            404: OpenApiResponse(description="Bucket not found"),
        },
        tags=["Buckets"],
    )
    def get(self, request, bucket: str):
        auth.guard_bucket(bucket, request.auth)
        return Response(BucketInfoSerializer(services.bucket_info(bucket)).data)

    @extend_schema(exclude=True)
    def post(self, request, bucket: str):
        # POST /bucket/info/<kind>/ creates the bucket named "info".
        return _create_bucket(request, "info", bucket)

    @extend_schema(exclude=True)
    def put(self, request, bucket: str):
        return _rename_bucket(request, "info", bucket)


class BucketPairView(APIView):
    """Create a bucket (``POST /bucket/<name>/<kind>/``) or rename one
    (``PUT /bucket/<old>/<new>/``)."""

    @extend_schema(
        operation_id="create_bucket",
        summary="Create a bucket",
        description="Create a bucket whose keys are of the given kind: string, seq or time. "
        "The kind is fixed for the bucket's lifetime.",
        responses={
            201: OpenApiResponse(description="Bucket created"),
            400: OpenApiResponse(description="Invalid key kind"),
            403: OpenApiResponse(description="Reserved bucket name"),
            409: OpenApiResponse(description="Bucket already exists"),
        },
        tags=["Buckets"],
    )
    def post(self, request, bucket: str, target: str):
        return _create_bucket(request, bucket, target)

    @extend_schema(
        operation_id="rename_bucket",
        summary="Rename a bucket",
        description="Copy every entry into a new bucket and drop the old one, atomically.",
        responses={
            204: OpenApiResponse(description="Bucket renamed"),
            404: OpenApiResponse(description="Source bucket not found"),
            409: OpenApiResponse(description="Destination bucket already exists"),
        },
        tags=["Buckets"],
    )
    def put(self, request, bucket: str, target: str):
        return _rename_bucket(request, bucket, target)


class BucketDetailView(APIView):
    @extend_schema(
        operation_id="drop_bucket",
        summary="Drop a bucket",
        parameters=[BUCKET_PARAM],
        responses={
            204: OpenApiResponse(description="Bucket dropped"),
            404: OpenApiResponse(description="Bucket not found"),
        },
        tags=["Buckets"],
    )
    def delete(self, request, bucket: str):
        return _drop_bucket(request, bucket)


# ---------------------------------------------------------------------------
# Key/value operations
# ---------------------------------------------------------------------------


class PutView(APIView):
    @extend_schema(
        operation_id="put_value",
        summary="Store a value",
        description="Upsert a key in a string bucket, or append a value under a generated "
        "key in a seq or time bucket.",
        request=PutSerializer,
        responses={
            201: PutResponseSerializer,
            404: OpenApiResponse(description="Bucket not found"),
        },
        tags=["Key-Value Operations"],
    )
    def post(self, request):
        serializer = PutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        auth.guard_bucket(data["bucket"], request.auth)

        result = services.put_value(
            data["bucket"],
            data["value"],
            key=data["key"] or None,
            update=data["update"],
        )
        return Response(PutResponseSerializer(result._asdict()).data, status=status.HTTP_201_CREATED)


class KeyValueView(APIView):
    """Exact lookup of one key."""

    @extend_schema(
        operation_id="get_value",
        summary="Read a value",
        parameters=[BUCKET_PARAM],
        responses={
            200: ValueResponseSerializer,
            404: OpenApiResponse(description="Bucket or key not found"),
        },
        tags=["Key-Value Operations"],
    )
    def get(self, request, bucket: str, key: str):
        auth.guard_bucket(bucket, request.auth)
        return Response({"value": services.get_value(bucket, key)})


class KeyDeleteView(APIView):
    @extend_schema(
        operation_id="delete_value",
        summary="Delete a key",
        parameters=[BUCKET_PARAM],
        responses={
            204: OpenApiResponse(description="Key deleted"),
            404: OpenApiResponse(description="Bucket or key not found"),
        },
        tags=["Key-Value Operations"],
    )
    def delete(self, request, bucket: str, key: str):
        return _delete_key(request, bucket, key)


class PrefixScanView(APIView):
    @extend_schema(
        operation_id="prefix_scan",
        summary="Scan keys by prefix",
        parameters=[BUCKET_PARAM],
        responses={200: ScanResponseSerializer},
        tags=["Scans"],
    )
    def get(self, request, bucket: str, prefix: str):
        auth.guard_bucket(bucket, request.auth)
        return _scan_response(services.prefix_scan(bucket, prefix))


class RangeScanView(APIView):
    @extend_schema(
        operation_id="range_scan",
        summary="Scan an inclusive key range",
        description="Entries whose keys fall within [start, end]. Empty when start > end.",
        parameters=[BUCKET_PARAM],
        responses={200: ScanResponseSerializer},
        tags=["Scans"],
    )
    def get(self, request, bucket: str, start: str, end: str):
        auth.guard_bucket(bucket, request.auth)
        return _scan_response(services.range_scan(bucket, start, end))


class ScanAllView(KeyDeleteForLiteralBucket, APIView):
    literal_bucket = "all"

    @extend_schema(
        operation_id="scan_all",
        summary="Scan a whole bucket",
        parameters=[BUCKET_PARAM],
        responses={200: ScanResponseSerializer},
        tags=["Scans"],
    )
    def get(self, request, bucket: str):
        auth.guard_bucket(bucket, request.auth)
        return _scan_response(services.scan_all(bucket))


class PartScanView(APIView):
    @extend_schema(
        operation_id="part_scan",
        summary="Scan a window of a bucket",
        description="Up to `length` entries starting at position `offset` in key order.",
        parameters=[BUCKET_PARAM],
        responses={200: ScanResponseSerializer},
        tags=["Scans"],
    )
    def get(self, request, bucket: str, offset: int, length: int):
        auth.guard_bucket(bucket, request.auth)
        return _scan_response(services.part_scan(bucket, offset, length))


class PageView(KeyDeleteForLiteralBucket, APIView):
    literal_bucket = "page"

    @extend_schema(
        operation_id="browse_page",
        summary="Browse a bucket page by page",
        parameters=[BUCKET_PARAM, PageQuerySerializer],
        responses={200: PageResponseSerializer},
        tags=["Scans"],
    )
    def get(self, request, bucket: str):
        auth.guard_bucket(bucket, request.auth)
        query = PageQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        context = paging.BrowseContext(
            bucket=bucket,
            page=params["page"] - 1,
            step=params.get("step", get_setting("DEFAULT_PAGE_SIZE")),
        )
        page = paging.browse(context, direction=params.get("direction"))
        return Response(PageResponseSerializer(page).data)


class CountView(KeyDeleteForLiteralBucket, APIView):
    literal_bucket = "count"

    @extend_schema(
        operation_id="count_keys",
        summary="Count keys in a bucket",
        parameters=[BUCKET_PARAM],
        responses={200: CountResponseSerializer},
        tags=["Scans"],
    )
    def get(self, request, bucket: str):
        auth.guard_bucket(bucket, request.auth)
        return Response({"total": services.count_entries(bucket)})


# ---------------------------------------------------------------------------
# Credentials & administration
# ---------------------------------------------------------------------------


class PasswordView(APIView):
    permission_classes = [IsStoreAdmin]

    @extend_schema(
        operation_id="set_password",
        summary="Set the admin credential",
        description="Store the admin user name and password. Until one is set every request is "
        "treated as admin.",
        request=CredentialSerializer,
        responses={201: OpenApiResponse(description="Credential stored")},
        tags=["Auth"],
    )
    def post(self, request):
        serializer = CredentialSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        auth.set_admin_credential(
            serializer.validated_data["username"],
            serializer.validated_data["password"],
        )
        return Response(status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="delete_password",
        summary="Delete the admin credential",
        description="Return to open mode. Refused while the API-key bucket exists.",
        responses={
            204: OpenApiResponse(description="Credential deleted"),
            403: OpenApiResponse(description="API keys still exist"),
            404: OpenApiResponse(description="No credential set"),
        },
        tags=["Auth"],
    )
    def delete(self, request):
        auth.delete_admin_credential()
        return Response(status=status.HTTP_204_NO_CONTENT)


class ApiKeyView(APIView):
    permission_classes = [IsStoreAdmin]

    @extend_schema(
        operation_id="create_api_key",
        summary="Issue an API key",
        request=ApiKeyRequestSerializer,
        responses={201: ApiKeyResponseSerializer},
        tags=["Auth"],
    )
    def post(self, request):
        serializer = ApiKeyRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        key, expiry = auth.issue_api_key(serializer.validated_data["duration"])
        return Response(
            ApiKeyResponseSerializer({"api_key": key, "expiry_time": expiry}).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="purge_api_keys",
        summary="Delete expired API keys",
        responses={200: PurgeResponseSerializer},
        tags=["Auth"],
    )
    def delete(self, request):
        return Response({"purged": auth.purge_expired_api_keys()})


class ExportView(APIView):
    permission_classes = [IsStoreAdmin]

    @extend_schema(
        operation_id="export_store",
        summary="Export every bucket to a JSON file",
        responses={201: OpenApiResponse(description="Export written")},
        tags=["Admin"],
    )
    def post(self, request):
        path = get_setting("EXPORT_PATH")
        written = services.export_to_file(path)
        return Response({"path": str(path), "buckets": written}, status=status.HTTP_201_CREATED)


class HealthCheckView(APIView):
    """Liveness endpoint; needs no credentials."""

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="health_check",
        summary="Health check",
        responses={200: OpenApiResponse(description="Node is alive")},
        tags=["Health & Monitoring"],
    )
    def get(self, request):
        return Response({"status": "healthy"}, status=status.HTTP_200_OK)
