from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

entry_tags = Table(
    "entry_tags",
    Base.metadata,
    Column("entry_id", Integer, ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

class Entry(Base):
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text)
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time = Column(String(8), nullable=False)  # HH:MM:SS
    original_path = Column(Text, nullable=False)
    compressed_path = Column(Text)
    transcription = Column(Text)
    duration = Column(Integer)
    file_size = Column(Integer)
    compressed_size = Column(Integer)
    created_at = Column(String(19), nullable=False, server_default=func.current_timestamp())

    tags = relationship("Tag", secondary=entry_tags, back_populates="entries", passive_deletes=True)

class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)

    entries = relationship("Entry", secondary=entry_tags, back_populates="tags", passive_deletes=True)
