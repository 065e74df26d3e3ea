from django.db import models


class Bucket(models.Model):
    """A named, independently ordered map of byte keys to byte values."""

    # Percent-encoded, so arbitrary characters survive URLs and listings.
    name = models.CharField(max_length=255, unique=True)
    sequence = models.PositiveBigIntegerField(default=0)
    key_count = models.PositiveBigIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.key_count} keys)"


class Entry(models.Model):
    """One key/value pair of a bucket. Keys order byte-lexicographically."""

    bucket = models.ForeignKey(Bucket, on_delete=models.CASCADE, related_name="entries")
    key = models.BinaryField()
    value = models.BinaryField()

    class Meta:
        ordering = ["key"]
        constraints = [
            models.UniqueConstraint(fields=["bucket", "key"], name="boltbase_entry_bucket_key"),
        ]
        verbose_name_plural = "entries"

    def __str__(self) -> str:
        return f"{self.bucket_id}:{bytes(self.key)!r}"
