from django.apps import AppConfig
from django.db.backends.signals import connection_created


def _enable_wal(sender, connection, **kwargs):
    # WAL lets readers keep their snapshot while the single writer commits.
    if connection.vendor == "sqlite":
        with connection.cursor() as cursor:
            cursor.execute("PRAGMA journal_mode=WAL")


class BoltbaseConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "boltbase"
    verbose_name = "Boltbase"

    def ready(self):
        connection_created.connect(_enable_wal, dispatch_uid="boltbase_enable_wal")
