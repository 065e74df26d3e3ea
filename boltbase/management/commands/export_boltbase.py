from django.core.management.base import BaseCommand

from boltbase.conf import get_setting
from boltbase.services import export_to_file


class Command(BaseCommand):
    help = "Write every user bucket and its entries to a JSON file."

    def add_arguments(self, parser):
        parser.add_argument(
            "--path",
            default=None,
            help="Output file (defaults to BOLTBASE['EXPORT_PATH'])",
        )

    def handle(self, *args, **options):
        path = options["path"] or get_setting("EXPORT_PATH")
        written = export_to_file(path)
        self.stdout.write(self.style.SUCCESS(f"Exported {written} buckets to {path}"))
