from collections import Counter
from typing import Iterable

from memoryhaven.memory.records import EntryRecord

PAGE_SIZE = 500


def count_by_date(entries: Iterable[EntryRecord]) -> dict[str, int]:
    """Number of entries recorded on each calendar day, oldest day first."""
    counts = Counter(entry.date for entry in entries)
    return dict(sorted(counts.items()))


def iter_all_entries(store, page_size: int = PAGE_SIZE) -> Iterable[EntryRecord]:
    """Every entry in the store, fetched one page at a time."""
    offset = 0
    while True:
        page = store.list_entries(page_size, offset)
        yield from page
        if len(page) < page_size:
            return
        offset += page_size


def activity_counts(store, page_size: int = PAGE_SIZE) -> dict[str, int]:
    return count_by_date(iter_all_entries(store, page_size))
