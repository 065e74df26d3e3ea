from django.contrib import admin

from boltbase.models import Bucket


@admin.register(Bucket)
class BucketAdmin(admin.ModelAdmin):
    """Read-only view of buckets.

    Bucket rows are only changed through ``boltbase.services`` so the kind
    registry and the reserved credential buckets stay consistent with them.
    """

    list_display = ("name", "key_count", "sequence", "created_at")
    search_fields = ("name",)
    readonly_fields = ("name", "key_count", "sequence", "created_at")
    ordering = ("name",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
