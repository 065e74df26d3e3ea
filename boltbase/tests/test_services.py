import json
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from io import StringIO

from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase

from boltbase import auth, services
from boltbase.conf import get_setting
from boltbase.errors import (
    BucketAlreadyExists,
    BucketNotFound,
    InvalidArgument,
    InvalidKeyKind,
    KeyNotFound,
    MalformedKey,
)
from boltbase.keys import KeyKind
from boltbase.store import open_store


def _keys(items):
    return [item.key for item in items]


class BucketLifecycleTests(TestCase):
    def test_create_records_kind(self):
        self.assertIs(services.create_bucket("users", "string"), KeyKind.STRING)
        services.create_bucket("events", "time")
        self.assertEqual(services.bucket_kinds(), {"events": "time", "users": "string"})
        self.assertEqual(services.list_buckets(), ["events", "users"])

    def test_create_with_invalid_kind_creates_nothing(self):
        with self.assertRaises(InvalidKeyKind):
            services.create_bucket("users", "integer")
        self.assertEqual(services.list_buckets(), [])

    def test_create_existing_bucket(self):
        services.create_bucket("users", "string")
        with self.assertRaises(BucketAlreadyExists):
            services.create_bucket("users", "seq")
        self.assertEqual(services.bucket_kinds(), {"users": "string"})

    def test_names_are_stored_percent_encoded(self):
        services.create_bucket("my bucket/1", "string")
        self.assertEqual(services.list_buckets(), ["my bucket/1"])
        services.put_value("my bucket/1", "v", key="k")
        self.assertEqual(services.get_value("my bucket/1", "k"), "v")

    def test_drop_forgets_kind(self):
        services.create_bucket("users", "string")
        services.drop_bucket("users")
        self.assertEqual(services.list_buckets(), [])
        self.assertEqual(services.bucket_kinds(), {})
        with self.assertRaises(BucketNotFound):
            services.drop_bucket("users")

    def test_bucket_info(self):
        services.create_bucket("nums", "seq")
        services.put_value("nums", "a")
        info = services.bucket_info("nums")
        self.assertEqual(info.name, "nums")
        self.assertIs(info.kind, KeyKind.SEQUENCE)
        self.assertEqual(info.key_count, 1)
        self.assertEqual(info.sequence, 1)
        self.assertIsNotNone(info.created_at)

    def test_reserved_buckets_are_hidden(self):
        services.create_bucket("users", "string")
        auth.set_admin_credential("admin", "secret")
        auth.issue_api_key(timedelta(days=1))
        self.assertEqual(services.list_buckets(), ["users"])
        self.assertEqual(
            services.list_buckets(include_api_keys=True),
            sorted(["users", get_setting("API_KEY_BUCKET")]),
        )
        self.assertNotIn(get_setting("API_KEY_BUCKET"), services.bucket_kinds())


class RenameTests(TestCase):
    def setUp(self):
        services.create_bucket("old", "seq")
        for value in ("a", "b", "c"):
            services.put_value("old", value)
        services.delete_value("old", 3)

    def test_rename_moves_entries_kind_and_sequence(self):
        self.assertEqual(services.rename_bucket("old", "new"), 2)
        self.assertEqual(services.list_buckets(), ["new"])
        self.assertEqual(services.bucket_kinds(), {"new": "seq"})
        self.assertEqual(_keys(services.scan_all("new")), [1, 2])
        self.assertEqual(services.count_entries("new"), 2)
        self.assertEqual(services.put_value("new", "d").key, 4)

    def test_rename_onto_existing_bucket_changes_nothing(self):
        services.create_bucket("taken", "string")
        with self.assertRaises(BucketAlreadyExists):
            services.rename_bucket("old", "taken")
        self.assertEqual(_keys(services.scan_all("old")), [1, 2])
        self.assertEqual(services.count_entries("taken"), 0)
        self.assertEqual(services.bucket_kinds(), {"old": "seq", "taken": "string"})

    def test_rename_missing_bucket(self):
        with self.assertRaises(BucketNotFound):
            services.rename_bucket("missing", "new")
        self.assertEqual(services.list_buckets(), ["old"])


class PutAndGetTests(TestCase):
    def test_string_upsert(self):
        services.create_bucket("users", "string")
        first = services.put_value("users", "alice", key="u1")
        self.assertEqual(first, services.PutResult("u1", True))
        second = services.put_value("users", "bob", key="u1")
        self.assertFalse(second.created)
        self.assertEqual(services.get_value("users", "u1"), "bob")
        self.assertEqual(services.count_entries("users"), 1)

    def test_string_put_without_update_keeps_existing_value(self):
        services.create_bucket("users", "string")
        services.put_value("users", "alice", key="u1")
        result = services.put_value("users", "bob", key="u1", update=False)
        self.assertEqual(result.warning, "key already exists")
        self.assertEqual(services.get_value("users", "u1"), "alice")

    def test_string_put_requires_key(self):
        services.create_bucket("users", "string")
        with self.assertRaises(MalformedKey):
            services.put_value("users", "alice")

    def test_empty_value(self):
        services.create_bucket("users", "string")
        services.put_value("users", "", key="blank")
        self.assertEqual(services.get_value("users", "blank"), "")

    def test_sequence_keys_are_generated(self):
        services.create_bucket("nums", "seq")
        results = [services.put_value("nums", v) for v in ("a", "b")]
        self.assertEqual([r.key for r in results], [1, 2])
        self.assertTrue(all(r.created and r.warning is None for r in results))
        self.assertEqual(services.get_value("nums", 2), "b")
        self.assertEqual(services.get_value("nums", "1"), "a")

    def test_supplied_key_is_ignored_for_generated_kinds(self):
        services.create_bucket("nums", "seq")
        result = services.put_value("nums", "a", key="custom")
        self.assertEqual(result.key, 1)
        self.assertIn("'seq' mode", result.warning)
        with self.assertRaises(MalformedKey):
            services.get_value("nums", "custom")

    def test_time_keys_are_utc_now(self):
        services.create_bucket("events", "time")
        before = datetime.now(timezone.utc)
        result = services.put_value("events", "boot")
        self.assertGreaterEqual(result.key, before.replace(microsecond=0))
        self.assertEqual(result.key.tzinfo, timezone.utc)
        items = services.prefix_scan("events", str(result.key.year))
        self.assertEqual(items, [services.Item(result.key, "boot")])

    def test_missing_bucket_and_key(self):
        with self.assertRaises(BucketNotFound):
            services.get_value("missing", "k")
        services.create_bucket("users", "string")
        with self.assertRaises(KeyNotFound):
            services.get_value("users", "k")
        with self.assertRaises(KeyNotFound):
            services.delete_value("users", "k")

    def test_delete(self):
        services.create_bucket("users", "string")
        services.put_value("users", "alice", key="u1")
        services.delete_value("users", "u1")
        self.assertEqual(services.count_entries("users"), 0)
        with self.assertRaises(KeyNotFound):
            services.get_value("users", "u1")


class ScanTests(TestCase):
    def setUp(self):
        services.create_bucket("words", "string")
        for key in ("b", "abc", "ab", "a"):
            services.put_value("words", key.upper(), key=key)
        services.create_bucket("nums", "seq")
        for value in ("one", "two", "three", "four", "five"):
            services.put_value("nums", value)

    def test_prefix_scan(self):
        self.assertEqual(_keys(services.prefix_scan("words", "ab")), ["ab", "abc"])
        self.assertEqual(_keys(services.prefix_scan("words", "z")), [])
        self.assertEqual(_keys(services.prefix_scan("words", "")), ["a", "ab", "abc", "b"])

    def test_range_scan_is_inclusive(self):
        items = services.range_scan("nums", 2, 4)
        self.assertEqual(items, [
            services.Item(2, "two"),
            services.Item(3, "three"),
            services.Item(4, "four"),
        ])
        self.assertEqual(_keys(services.range_scan("words", "ab", "b")), ["ab", "abc", "b"])

    def test_range_scan_with_start_after_end(self):
        self.assertEqual(services.range_scan("nums", 4, 2), [])

    def test_range_scan_accepts_text_bounds(self):
        self.assertEqual(_keys(services.range_scan("nums", "4", "9")), [4, 5])

    def test_scan_all_in_key_order(self):
        self.assertEqual(_keys(services.scan_all("words")), ["a", "ab", "abc", "b"])
        self.assertEqual(_keys(services.scan_all("nums")), [1, 2, 3, 4, 5])

    def test_part_scan(self):
        self.assertEqual(_keys(services.part_scan("nums", 1, 2)), [2, 3])
        self.assertEqual(_keys(services.part_scan("nums", 4, 10)), [5])
        self.assertEqual(services.part_scan("nums", 5, 1), [])
        with self.assertRaises(InvalidArgument):
            services.part_scan("nums", -1, 1)

    def test_part_scan_is_capped(self):
        with self.settings(BOLTBASE={"MAX_SCAN_SIZE": 2}):
            self.assertEqual(_keys(services.part_scan("nums", 0, 100)), [1, 2])

    def test_scan_missing_bucket(self):
        for scan in (
            lambda: services.scan_all("missing"),
            lambda: services.prefix_scan("missing", "a"),
            lambda: services.range_scan("missing", "a", "b"),
            lambda: services.part_scan("missing", 0, 1),
            lambda: services.count_entries("missing"),
        ):
            with self.assertRaises(BucketNotFound):
                scan()

    def test_count(self):
        self.assertEqual(services.count_entries("words"), 4)
        self.assertEqual(services.count_entries("nums"), 5)


class ExportTests(TestCase):
    def test_export_to_file(self):
        services.create_bucket("words", "string")
        services.put_value("words", "A", key="a")
        services.create_bucket("nums", "seq")
        services.put_value("nums", "one")
        auth.set_admin_credential("admin", "secret")

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "export.json")
            self.assertEqual(services.export_to_file(path), 2)
            with open(path, encoding="utf-8") as fh:
                exported = json.load(fh)

        self.assertEqual(exported, {"nums": {"1": "one"}, "words": {"a": "A"}})

    def test_export_of_unregistered_bucket_fails(self):
        open_store().update(lambda txn: txn.create_bucket("orphan").put(b"k", b"v"))

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "export.json")
            with self.assertRaises(BucketNotFound):
                services.export_to_file(path)
            self.assertFalse(os.path.exists(path))

    def test_export_command(self):
        services.create_bucket("words", "string")
        services.put_value("words", "A", key="a")
        out = StringIO()

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "export.json")
            call_command("export_boltbase", "--path", path, stdout=out)
            with open(path, encoding="utf-8") as fh:
                self.assertEqual(json.load(fh), {"words": {"a": "A"}})

        self.assertIn("Exported 1 buckets", out.getvalue())


class ConcurrentSequenceTests(TransactionTestCase):
    def test_parallel_appends_get_distinct_keys(self):
        services.create_bucket("nums", "seq")
        keys, errors = [], []
        lock = threading.Lock()

        def _append(worker):
            try:
                for i in range(10):
                    result = services.put_value("nums", f"{worker}-{i}")
                    with lock:
                        keys.append(result.key)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=_append, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(keys), list(range(1, 41)))
        self.assertEqual(services.count_entries("nums"), 40)
