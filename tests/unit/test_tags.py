"""
test_tags.py
------------
Unit tests for hashtag extraction and the per-day activity projection.
"""
from memoryhaven.journal.activity import activity_counts, count_by_date, iter_all_entries
from memoryhaven.journal.tags import extract_tags
from memoryhaven.memory.records import EntryRecord


class TestExtractTags:
    """Test extract_tags()."""

    def test_extracts_hashtag_bodies(self):
        """Test hashtags are returned without the leading #."""
        assert extract_tags("Today I felt #grateful and #calm") == {"grateful", "calm"}

    def test_no_hashtags_yields_empty_set(self):
        assert extract_tags("Nothing to see here") == set()

    def test_repeated_tags_are_deduplicated(self):
        assert extract_tags("#ok #ok") == {"ok"}

    def test_empty_and_none_yield_empty_set(self):
        assert extract_tags("") == set()
        assert extract_tags(None) == set()

    def test_case_is_preserved(self):
        """Test differently cased tags stay distinct."""
        assert extract_tags("#Work and #work") == {"Work", "work"}

    def test_bare_hash_is_ignored(self):
        assert extract_tags("# heading and #") == set()

    def test_word_characters_only(self):
        """Test punctuation ends a tag."""
        assert extract_tags("#self_care, #day2! #run-club") == {"self_care", "day2", "run"}


def _record(entry_id, date):
    return EntryRecord(
        id=entry_id, title=None, date=date, time="10:00:00", original_path=f"/r/{entry_id}.webm",
        compressed_path=None, transcription=None, duration=None, file_size=None,
        compressed_size=None, created_at=None,
    )


class TestCountByDate:
    """Test count_by_date()."""

    def test_groups_entries_per_day(self):
        entries = [_record(1, "2024-01-02"), _record(2, "2024-01-01"), _record(3, "2024-01-02")]
        assert count_by_date(entries) == {"2024-01-01": 1, "2024-01-02": 2}

    def test_days_are_ordered_oldest_first(self):
        entries = [_record(1, "2024-05-01"), _record(2, "2023-12-31")]
        assert list(count_by_date(entries)) == ["2023-12-31", "2024-05-01"]

    def test_empty_input(self):
        assert count_by_date([]) == {}


class TestActivityCounts:
    """Test activity_counts() over a real store."""

    def test_pages_through_every_entry(self, store, make_draft):
        for day in range(1, 6):
            store.create_entry(make_draft(date=f"2024-02-0{day}"))
        store.create_entry(make_draft(date="2024-02-01", time="20:00:00"))

        counts = activity_counts(store, page_size=2)

        assert counts == {
            "2024-02-01": 2, "2024-02-02": 1, "2024-02-03": 1, "2024-02-04": 1, "2024-02-05": 1,
        }

    def test_exact_multiple_of_page_size(self, store, make_draft):
        for day in range(1, 5):
            store.create_entry(make_draft(date=f"2024-02-0{day}"))
        assert len(list(iter_all_entries(store, page_size=2))) == 4

    def test_empty_store(self, store):
        assert activity_counts(store) == {}
