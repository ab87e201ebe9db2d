"""
Relational store for journal entries and their tags.

All writes go through one lock so that the multi-row tag transaction of
one pipeline never interleaves with another writer. Each operation runs in
its own session/transaction; readers only ever observe committed state.
The store never touches the filesystem.
"""
import threading
from functools import wraps
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from memoryhaven.core.exceptions import DatabaseError, EntryNotFoundError, NoFieldsToUpdateError
from memoryhaven.core.logger import logger
from memoryhaven.memory.database import Database
from memoryhaven.memory.models import Entry, Tag, entry_tags
from memoryhaven.memory.records import (
    DeletedEntry,
    EntryDraft,
    EntryPatch,
    EntryRecord,
    TagRecord,
    normalize_tag_names,
    validate_columns,
)


def handle_db_errors(function: Callable) -> Callable:
    """Translate SQLAlchemy failures into DatabaseError."""

    @wraps(function)
    def wrapper(*args, **kwargs):
        try:
            return function(*args, **kwargs)
        except IntegrityError as e:
            logger.error("{} violated an integrity constraint: {}", function.__name__, e)
            raise DatabaseError(f"Data integrity violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error("{} failed: {}", function.__name__, e)
            raise DatabaseError(f"Database operation failed: {e}") from e

    return wrapper


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_record(entry: Entry) -> EntryRecord:
    return EntryRecord(
        id=entry.id,
        title=entry.title,
        date=entry.date,
        time=entry.time,
        original_path=entry.original_path,
        compressed_path=entry.compressed_path,
        transcription=entry.transcription,
        duration=entry.duration,
        file_size=entry.file_size,
        compressed_size=entry.compressed_size,
        created_at=str(entry.created_at) if entry.created_at is not None else None,
        tags=tuple(sorted(tag.name for tag in entry.tags)),
    )


class EntryStore:
    def __init__(self, db: Database):
        self.db = db
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @handle_db_errors
    def create_entry(self, draft: EntryDraft, tags: Optional[Iterable[str]] = None) -> int:
        """Insert an entry and link its tags in a single transaction."""
        values = draft.column_values()
        validate_columns(values)
        names = normalize_tag_names(tags)

        with self._write_lock, self.db.session_scope() as session:
            entry = Entry(**values)
            session.add(entry)
            session.flush()
            entry_id = entry.id
            self._link_tags(session, entry_id, names)

        logger.info("Added entry with ID: {} ({} tags)", entry_id, len(names))
        return entry_id

    @handle_db_errors
    def update_entry(self, entry_id: int, patch: EntryPatch) -> int:
        """
        Apply the present slots of ``patch`` to one entry.

        A present ``tags`` slot drops every existing link for the entry and
        re-links the new names in the same transaction as the column update.

        Returns:
            Number of entries changed (1).

        Raises:
            NoFieldsToUpdateError: patch has no present slot
            EntryNotFoundError: no entry with this id
        """
        if patch.is_empty():
            raise NoFieldsToUpdateError("No valid fields to update")

        values = patch.column_values()
        validate_columns(values)
        names = normalize_tag_names(patch.tags) if patch.has_tags else None

        with self._write_lock, self.db.session_scope() as session:
            entry = session.get(Entry, entry_id)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            for name, value in values.items():
                setattr(entry, name, value)
            if names is not None:
                session.execute(delete(entry_tags).where(entry_tags.c.entry_id == entry_id))
                self._link_tags(session, entry_id, names)

        logger.info("Updated entry {}: fields={} tags={}", entry_id, sorted(values), names)
        return 1

    @handle_db_errors
    def delete_entry(self, entry_id: int) -> DeletedEntry:
        """Remove an entry (links cascade) and return its file paths for cleanup."""
        with self._write_lock, self.db.session_scope() as session:
            entry = session.get(Entry, entry_id)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            deleted = DeletedEntry(
                changed=1,
                original_path=entry.original_path,
                compressed_path=entry.compressed_path,
            )
            session.delete(entry)

        logger.info("Deleted entry {}", entry_id)
        return deleted

    def _link_tags(self, session, entry_id: int, names: list[str]):
        if not names:
            return
        tag_ids = self._resolve_tag_ids(session, names)
        linked = set(
            session.scalars(
                select(entry_tags.c.tag_id).where(entry_tags.c.entry_id == entry_id)
            )
        )
        rows = [{"entry_id": entry_id, "tag_id": tag_id} for tag_id in tag_ids if tag_id not in linked]
        if rows:
            session.execute(insert(entry_tags), rows)

    def _resolve_tag_ids(self, session, names: list[str]) -> list[int]:
        """Insert-if-absent every tag name and return ids in the same order."""
        existing = {
            tag.name: tag.id
            for tag in session.scalars(select(Tag).where(Tag.name.in_(names)))
        }
        for name in names:
            if name not in existing:
                tag = Tag(name=name)
                session.add(tag)
                session.flush()
                existing[name] = tag.id
                logger.debug("Created tag: {}", name)
        return [existing[name] for name in names]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @handle_db_errors
    def get_entry(self, entry_id: int) -> EntryRecord:
        with self.db.session_scope() as session:
            entry = session.get(Entry, entry_id, options=[selectinload(Entry.tags)])
            if entry is None:
                raise EntryNotFoundError(entry_id)
            return _to_record(entry)

    @handle_db_errors
    def list_entries(self, limit: int = 100, offset: int = 0) -> list[EntryRecord]:
        """Most recent capture first."""
        stmt = self._ordered(select(Entry)).limit(limit).offset(offset)
        with self.db.session_scope() as session:
            return [_to_record(entry) for entry in session.scalars(stmt)]

    @handle_db_errors
    def search_entries(self, term: str) -> list[EntryRecord]:
        """Case-insensitive substring match on title, transcription or any tag name."""
        pattern = f"%{_escape_like(term or '')}%"
        stmt = self._ordered(
            select(Entry).where(
                or_(
                    Entry.title.ilike(pattern, escape="\\"),
                    Entry.transcription.ilike(pattern, escape="\\"),
                    Entry.tags.any(Tag.name.ilike(pattern, escape="\\")),
                )
            )
        )
        with self.db.session_scope() as session:
            results = [_to_record(entry) for entry in session.scalars(stmt)]
        logger.debug("Search {!r} matched {} entries", term, len(results))
        return results

    @handle_db_errors
    def list_tags(self) -> list[TagRecord]:
        with self.db.session_scope() as session:
            return [
                TagRecord(id=tag.id, name=tag.name)
                for tag in session.scalars(select(Tag).order_by(Tag.name))
            ]

    @staticmethod
    def _ordered(stmt):
        return stmt.options(selectinload(Entry.tags)).order_by(
            Entry.date.desc(), Entry.time.desc(), Entry.id.desc()
        )

    def close(self):
        self.db.dispose()
