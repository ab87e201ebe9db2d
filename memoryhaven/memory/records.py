"""
Value types exchanged with the entry store.

``EntryDraft`` is what the pipeline builds before commit, ``EntryPatch``
carries a partial update, and ``EntryRecord``/``TagRecord`` are the
immutable snapshots the store hands back. Live ORM rows never leave the
store.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Iterable, Optional, Tuple

from memoryhaven.core.exceptions import ValidationError


class _Unset:
    """Marks a patch slot that was not supplied."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNSET"


UNSET: Any = _Unset()

# Columns that may never be cleared.
REQUIRED_FIELDS = ("date", "time", "original_path")
SIZE_FIELDS = ("duration", "file_size", "compressed_size")


@dataclass
class EntryDraft:
    date: str
    time: str
    original_path: str
    title: Optional[str] = None
    compressed_path: Optional[str] = None
    transcription: Optional[str] = None
    duration: Optional[int] = None
    file_size: Optional[int] = None
    compressed_size: Optional[int] = None

    def column_values(self) -> dict:
        return asdict(self)


@dataclass
class EntryPatch:
    """
    Partial update for one entry.

    Every slot defaults to ``UNSET``; only slots holding something else are
    applied. Setting an optional slot to ``None`` clears the column.
    A ``tags`` slot replaces the whole tag set.
    """

    title: Any = UNSET
    date: Any = UNSET
    time: Any = UNSET
    original_path: Any = UNSET
    compressed_path: Any = UNSET
    transcription: Any = UNSET
    duration: Any = UNSET
    file_size: Any = UNSET
    compressed_size: Any = UNSET
    tags: Any = UNSET

    def column_values(self) -> dict:
        """Present slots that map to entry columns (tags excluded)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "tags" and getattr(self, f.name) is not UNSET
        }

    @property
    def has_tags(self) -> bool:
        return self.tags is not UNSET

    def is_empty(self) -> bool:
        return not self.column_values() and not self.has_tags


@dataclass(frozen=True)
class TagRecord:
    id: int
    name: str


@dataclass(frozen=True)
class EntryRecord:
    id: int
    title: Optional[str]
    date: str
    time: str
    original_path: str
    compressed_path: Optional[str]
    transcription: Optional[str]
    duration: Optional[int]
    file_size: Optional[int]
    compressed_size: Optional[int]
    created_at: Optional[str]
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class DeletedEntry:
    changed: int
    original_path: str
    compressed_path: Optional[str]


def validate_columns(values: dict):
    """Raise ValidationError if any supplied column value is unacceptable."""
    for name in REQUIRED_FIELDS:
        if name in values and (values[name] is None or not str(values[name]).strip()):
            raise ValidationError(f"{name} is required and cannot be empty")

    if values.get("date") is not None:
        _check_format(values["date"], "%Y-%m-%d", "date", "YYYY-MM-DD")
    if values.get("time") is not None:
        _check_format(values["time"], "%H:%M:%S", "time", "HH:MM:SS")

    for name in SIZE_FIELDS:
        value = values.get(name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")


def _check_format(value, fmt: str, name: str, human: str):
    try:
        parsed = datetime.strptime(value, fmt)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be {human}, got {value!r}")
    # strptime accepts unpadded fields
    if parsed.strftime(fmt) != value:
        raise ValidationError(f"{name} must be {human}, got {value!r}")


def normalize_tag_names(tags: Optional[Iterable[str]]) -> list[str]:
    """Deduplicate tag names keeping first-seen order. Case is preserved."""
    if tags is None:
        return []
    if isinstance(tags, str):
        raise ValidationError("tags must be a collection of names, not a string")

    names = []
    seen = set()
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError(f"Tag names cannot be empty: {tag!r}")
        name = tag.strip()
        if name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names
