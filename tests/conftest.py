"""
conftest.py
-----------
Shared pytest fixtures for MemoryHaven tests.

Provides fixtures for:
- A throwaway SQLite database and entry store
- Artifact directories under tmp_path
- Fake transcription/compression adapters and fake ffmpeg binaries
"""
import stat
import sys
from datetime import datetime
from pathlib import Path

import pytest

from memoryhaven.core.exceptions import CompressionError, TranscriptionError
from memoryhaven.media.artifacts import ArtifactStore
from memoryhaven.media.compression import CompressedArtifact
from memoryhaven.memory.database import Database
from memoryhaven.memory.records import EntryDraft
from memoryhaven.memory.store import EntryStore


# ----- Database Fixtures -----

@pytest.fixture
def database(tmp_path):
    """Initialized database in a temporary file, disposed after the test."""
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.init()
    yield db
    db.dispose()


@pytest.fixture
def store(database):
    return EntryStore(database)


@pytest.fixture
def make_draft():
    """Factory for valid entry drafts."""

    def _make(**overrides):
        values = dict(
            title="Morning thoughts",
            date="2024-01-15",
            time="08:30:00",
            original_path="/recordings/recording-2024-01-15_08-30-00.webm",
        )
        values.update(overrides)
        return EntryDraft(**values)

    return _make


# ----- Artifact Fixtures -----

@pytest.fixture
def artifacts(tmp_path):
    return ArtifactStore(tmp_path / "recordings", tmp_path / "compressed", tmp_path / "temp")


@pytest.fixture
def captured_at():
    return datetime(2024, 3, 9, 21, 15, 42)


# ----- Fake Adapters -----

class FakeTranscriber:
    """Returns fixed text, or raises the configured TranscriptionError."""

    def __init__(self, text="Today I felt #grateful and #calm", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def transcribe(self, artifact_path):
        self.calls.append(Path(artifact_path))
        if self.error is not None:
            raise self.error
        return self.text


class FakeCompressor:
    """Writes a small file into ``output_dir``, or raises the configured error."""

    def __init__(self, output_dir, error=None):
        self.output_dir = Path(output_dir)
        self.error = error
        self.calls = []

    async def compress(self, artifact_path, profile):
        self.calls.append((Path(artifact_path), profile))
        if self.error is not None:
            raise self.error
        output = self.output_dir / f"{Path(artifact_path).stem}_compressed.{profile.format}"
        output.write_bytes(b"compressed-bytes")
        return CompressedArtifact(path=output, size=output.stat().st_size)


async def no_probe(path):
    return None


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def failing_transcriber():
    return FakeTranscriber(error=TranscriptionError(TranscriptionError.ENGINE, "model file missing"))


@pytest.fixture
def compressor(artifacts):
    return FakeCompressor(artifacts.compressed_dir)


@pytest.fixture
def failing_compressor(artifacts):
    return FakeCompressor(artifacts.compressed_dir, error=CompressionError(CompressionError.ENGINE, "bad codec"))


# ----- Fake Binaries -----

@pytest.fixture
def fake_tool(tmp_path):
    """
    Factory for executable shell scripts standing in for ffmpeg and friends.

    The script body sees the output path (the last argument) as ``$last``.
    """
    if sys.platform == "win32":
        pytest.skip("shell script tools need a POSIX shell")

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _make(name, body):
        script = bin_dir / name
        script.write_text("#!/bin/sh\nfor last; do :; done\n" + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make
