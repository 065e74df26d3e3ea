import math
from dataclasses import dataclass, replace
from typing import List, Optional

from boltbase import services
from boltbase.conf import get_setting
from boltbase.store import Transaction, open_store


@dataclass(frozen=True)
class BrowseContext:
    """Page-based browsing position for one caller.

    Built from each request's parameters and never shared between callers.
    ``page`` is zero-based internally; clients see one-based page numbers.
    """

    bucket: str
    page: int = 0
    step: int = 0

    def __post_init__(self):
        if self.step <= 0:
            object.__setattr__(self, "step", get_setting("DEFAULT_PAGE_SIZE"))
        if self.page < 0:
            object.__setattr__(self, "page", 0)

    @property
    def offset(self) -> int:
        return self.page * self.step

    def total_pages(self, count: int) -> int:
        return math.ceil(count / self.step)

    def clamp(self, count: int) -> "BrowseContext":
        last = max(self.total_pages(count) - 1, 0)
        return replace(self, page=min(self.page, last))

    def move(self, direction: str, count: int) -> "BrowseContext":
        if direction == "left" and self.page > 0:
            return replace(self, page=self.page - 1)
        if direction == "right" and self.page < self.total_pages(count) - 1:
            return replace(self, page=self.page + 1)
        return self


@dataclass(frozen=True)
class Page:
    context: BrowseContext
    total_entries: int
    items: List[services.Item]

    @property
    def total_pages(self) -> int:
        return self.context.total_pages(self.total_entries)

    @property
    def current_page(self) -> int:
        return self.context.page + 1


def browse(context: BrowseContext, direction: Optional[str] = None) -> Page:
    """Count and window of ``context.bucket`` read from the same snapshot.

    ``direction`` ("left" or "right") turns the page before reading it.
    """

    def _browse(txn: Transaction) -> Page:
        handle, kind = services.open_bucket(txn, context.bucket)
        count = handle.key_count()
        clamped = context.clamp(count)
        if direction:
            clamped = clamped.move(direction, count)
        window = handle.window(clamped.offset, min(clamped.step, get_setting("MAX_SCAN_SIZE")))
        return Page(clamped, count, services.to_items(kind, window))

    return open_store().view(_browse)
