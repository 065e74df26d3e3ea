from django.test import SimpleTestCase, TestCase

from boltbase import services
from boltbase.errors import BucketNotFound
from boltbase.paging import BrowseContext, browse


class BrowseContextTests(SimpleTestCase):
    def test_defaults(self):
        context = BrowseContext("b", page=-3, step=0)
        self.assertEqual(context.page, 0)
        self.assertEqual(context.step, 25)

    def test_total_pages(self):
        context = BrowseContext("b", step=10)
        self.assertEqual(context.total_pages(0), 0)
        self.assertEqual(context.total_pages(10), 1)
        self.assertEqual(context.total_pages(11), 2)

    def test_clamp(self):
        self.assertEqual(BrowseContext("b", page=9, step=10).clamp(25).page, 2)
        self.assertEqual(BrowseContext("b", page=9, step=10).clamp(0).page, 0)

    def test_move_stays_within_bounds(self):
        first = BrowseContext("b", page=0, step=10)
        self.assertEqual(first.move("left", 25).page, 0)
        self.assertEqual(first.move("right", 25).page, 1)
        last = BrowseContext("b", page=2, step=10)
        self.assertEqual(last.move("right", 25).page, 2)
        self.assertEqual(last.move("left", 25).page, 1)
        self.assertIs(first.move("up", 25), first)


class BrowseTests(TestCase):
    def setUp(self):
        services.create_bucket("words", "string")
        for i in range(25):
            services.put_value("words", str(i), key=f"{i:02d}")

    def _keys(self, page):
        return [item.key for item in page.items]

    def test_first_page(self):
        page = browse(BrowseContext("words", step=10))
        self.assertEqual(page.total_entries, 25)
        self.assertEqual(page.total_pages, 3)
        self.assertEqual(page.current_page, 1)
        self.assertEqual(self._keys(page), [f"{i:02d}" for i in range(10)])

    def test_turn_right_then_left(self):
        page = browse(BrowseContext("words", step=10), direction="right")
        self.assertEqual(page.current_page, 2)
        self.assertEqual(self._keys(page)[0], "10")
        page = browse(page.context, direction="left")
        self.assertEqual(page.current_page, 1)

    def test_page_past_the_end_is_clamped(self):
        page = browse(BrowseContext("words", page=7, step=10))
        self.assertEqual(page.current_page, 3)
        self.assertEqual(self._keys(page), [f"{i:02d}" for i in range(20, 25)])

    def test_empty_bucket(self):
        services.create_bucket("empty", "seq")
        page = browse(BrowseContext("empty"))
        self.assertEqual(page.total_pages, 0)
        self.assertEqual(page.items, [])

    def test_missing_bucket(self):
        with self.assertRaises(BucketNotFound):
            browse(BrowseContext("missing"))
