from datetime import datetime

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from boltbase.keys import encode_time


@extend_schema_field(OpenApiTypes.STR)
class KeyField(serializers.Field):
    """Logical key as clients see it: text, integer, or sortable timestamp text."""

    def to_representation(self, value):
        if isinstance(value, datetime):
            return encode_time(value).decode("ascii")
        return value


class ItemSerializer(serializers.Serializer):
    """Serializer for one key/value entry of a scan."""

    key = KeyField(help_text="Logical key (string, sequence number or UTC timestamp)")
    value = serializers.CharField()


class ScanResponseSerializer(serializers.Serializer):
    """Serializer for scan responses, entries in key order."""

    total = serializers.IntegerField(help_text="Number of entries returned")
    kv = ItemSerializer(many=True, help_text="Entries in ascending key order")


class ValueResponseSerializer(serializers.Serializer):
    value = serializers.CharField()


class CountResponseSerializer(serializers.Serializer):
    total = serializers.IntegerField(help_text="Number of keys in the bucket")


class PutSerializer(serializers.Serializer):
    """Serializer for writing a value into a bucket."""

    bucket = serializers.CharField(max_length=255, help_text="Target bucket name")
    key = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        help_text="Key for string buckets. Ignored (with a warning) for seq and time buckets.",
    )
    value = serializers.CharField(
        allow_blank=True,
        help_text="The value to store. Can be empty string.",
    )
    update = serializers.BooleanField(
        default=True,
        help_text="For string buckets: overwrite an existing key (default) or leave it untouched.",
    )


class PutResponseSerializer(serializers.Serializer):
    key = KeyField(help_text="The key the value was stored under")
    created = serializers.BooleanField()
    warning = serializers.CharField(required=False, allow_null=True)


class BucketListSerializer(serializers.Serializer):
    buckets = serializers.ListField(child=serializers.CharField())
    total = serializers.IntegerField()


class BucketKindsSerializer(serializers.Serializer):
    kinds = serializers.DictField(child=serializers.CharField())


class BucketInfoSerializer(serializers.Serializer):
    name = serializers.CharField()
    kind = serializers.CharField(source="kind.value")
    key_count = serializers.IntegerField()
    sequence = serializers.IntegerField()
    created_at = serializers.DateTimeField()


class PageQuerySerializer(serializers.Serializer):
    """Query parameters of a page-browse request."""

    page = serializers.IntegerField(min_value=1, default=1, help_text="One-based page number")
    step = serializers.IntegerField(min_value=1, required=False, help_text="Entries per page")
    direction = serializers.ChoiceField(
        choices=["left", "right"],
        required=False,
        help_text="Turn one page left or right from `page`",
    )


class PageResponseSerializer(serializers.Serializer):
    total_entries = serializers.IntegerField(help_text="Number of keys in the bucket")
    total_pages = serializers.IntegerField()
    current_page = serializers.IntegerField(help_text="One-based page number")
    step = serializers.IntegerField(source="context.step", help_text="Entries per page")
    kv = ItemSerializer(source="items", many=True)


class CredentialSerializer(serializers.Serializer):
    username = serializers.CharField(help_text="Admin user name")
    password = serializers.CharField(help_text="Admin password", style={"input_type": "password"})

    def validate_username(self, value):
        if ":" in value:
            raise serializers.ValidationError("username cannot contain ':'")
        return value


class ApiKeyRequestSerializer(serializers.Serializer):
    duration = serializers.DurationField(
        help_text="Lifetime of the key, e.g. '7 00:00:00' or ISO 8601 'P7D'",
    )


class ApiKeyResponseSerializer(serializers.Serializer):
    api_key = serializers.CharField()
    expiry_time = serializers.CharField(help_text="RFC 3339 UTC expiry")


class PurgeResponseSerializer(serializers.Serializer):
    purged = serializers.IntegerField(help_text="Number of expired keys deleted")
