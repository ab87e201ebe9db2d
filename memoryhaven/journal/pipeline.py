"""
Entry processing pipeline.

One captured recording goes through:

    persist raw -> transcribe -> compress -> extract tags -> commit

Persisting the raw bytes and committing the entry are the only stages that
can fail the capture. Transcription and compression degrade to a documented
fallback (placeholder transcript, original file only) and the entry is still
committed. Nothing is retried and no file is ever deleted here.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

from memoryhaven.config import settings
from memoryhaven.core.exceptions import (
    ArtifactError,
    CompressionError,
    MemoryHavenError,
    StoreError,
    TranscriptionError,
)
from memoryhaven.core.logger import logger
from memoryhaven.journal.states import PipelineState, PipelineStateMachine, StageEvent
from memoryhaven.journal.tags import extract_tags
from memoryhaven.media.artifacts import ArtifactStore
from memoryhaven.media.compression import CompressionAdapter, EncodingProfile
from memoryhaven.media.probe import probe_duration
from memoryhaven.media.transcription import TranscriptionAdapter
from memoryhaven.memory.records import EntryDraft
from memoryhaven.memory.store import EntryStore

STAGE_PERSIST = "persist"
STAGE_TRANSCRIBE = "transcribe"
STAGE_COMPRESS = "compress"
STAGE_TAG = "tag"
STAGE_COMMIT = "commit"

FALLBACK_PLACEHOLDER = "placeholder_transcript"
FALLBACK_ORIGINAL_ONLY = "original_only"


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class StageOutcome:
    stage: str
    status: StageStatus
    fallback: Optional[str] = None
    error_kind: Optional[str] = None
    diagnostic: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "status": self.status.value,
            "fallback": self.fallback,
            "error_kind": self.error_kind,
            "diagnostic": self.diagnostic,
        }


@dataclass
class PipelineResult:
    captured_at: datetime
    state: PipelineState = PipelineState.CAPTURED
    stages: list[StageOutcome] = field(default_factory=list)
    entry_id: Optional[int] = None
    original_path: Optional[str] = None
    compressed_path: Optional[str] = None
    transcription: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    fatal_stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.state is PipelineState.TAGGED_AND_COMMITTED

    @property
    def fatal(self) -> bool:
        return self.state is PipelineState.ABORTED

    def stage(self, name: str) -> Optional[StageOutcome]:
        for outcome in self.stages:
            if outcome.stage == name:
                return outcome
        return None

    @property
    def has_transcript(self) -> bool:
        outcome = self.stage(STAGE_TRANSCRIBE)
        return outcome is not None and outcome.status is StageStatus.SUCCEEDED

    @property
    def has_compressed_copy(self) -> bool:
        outcome = self.stage(STAGE_COMPRESS)
        return outcome is not None and outcome.status is StageStatus.SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "captured_at": self.captured_at.isoformat(),
            "state": self.state.name,
            "committed": self.committed,
            "fatal": self.fatal,
            "entry_id": self.entry_id,
            "original_path": self.original_path,
            "compressed_path": self.compressed_path,
            "has_transcript": self.has_transcript,
            "has_compressed_copy": self.has_compressed_copy,
            "tags": list(self.tags),
            "fatal_stage": self.fatal_stage,
            "error": self.error,
            "stages": [outcome.to_dict() for outcome in self.stages],
        }


def default_profile(config=settings) -> EncodingProfile:
    return EncodingProfile(
        video_bitrate=config.VIDEO_BITRATE,
        audio_bitrate=config.AUDIO_BITRATE,
        width=config.VIDEO_WIDTH,
        height=config.VIDEO_HEIGHT,
        fps=config.VIDEO_FPS,
        format=config.VIDEO_FORMAT,
    )


def default_title(date: str) -> str:
    return f"Entry: {date}"


class EntryPipeline:
    def __init__(
        self,
        artifacts: ArtifactStore,
        transcriber: TranscriptionAdapter,
        compressor: CompressionAdapter,
        store: EntryStore,
        profile: Optional[EncodingProfile] = None,
        fallback_transcription: str = settings.FALLBACK_TRANSCRIPTION,
        probe: Optional[Callable[[Path], Awaitable[Optional[int]]]] = probe_duration,
    ):
        self.artifacts = artifacts
        self.transcriber = transcriber
        self.compressor = compressor
        self.store = store
        self.profile = profile or default_profile()
        self.fallback_transcription = fallback_transcription
        self.probe = probe

    async def process(self, raw_bytes: bytes, captured_at: datetime, title: Optional[str] = None) -> PipelineResult:
        """
        Run every stage for one capture and report how each one went.

        Once started the run is shielded from cancellation of the caller, so a
        capture always ends committed or with a reported fatal failure.
        """
        return await asyncio.shield(self._run(raw_bytes, captured_at, title))

    async def _probe(self, path: Path) -> Optional[int]:
        """Duration is optional metadata: a failing probe leaves it unset."""
        if self.probe is None:
            return None
        try:
            return await self.probe(path)
        except (MemoryHavenError, OSError) as e:
            logger.warning("Duration probe failed for {}: {}", path, e)
            return None

    async def _run(self, raw_bytes: bytes, captured_at: datetime, title: Optional[str]) -> PipelineResult:
        loop = asyncio.get_running_loop()
        result = PipelineResult(captured_at=captured_at)
        machine = PipelineStateMachine(captured_at.isoformat(timespec="seconds"))

        # 1. Persist raw bytes
        try:
            raw = await loop.run_in_executor(None, self.artifacts.write_raw, raw_bytes, captured_at)
        except ArtifactError as e:
            logger.error("Failed to save recording: {}", e)
            result.stages.append(StageOutcome(STAGE_PERSIST, StageStatus.FAILED, diagnostic=str(e)))
            result.state = machine.apply(StageEvent.FATAL)
            result.fatal_stage = STAGE_PERSIST
            result.error = str(e)
            return result
        result.stages.append(StageOutcome(STAGE_PERSIST, StageStatus.SUCCEEDED))
        result.original_path = str(raw.path)

        # 2. Transcribe
        try:
            transcription = await self.transcriber.transcribe(raw.path)
            machine.apply(StageEvent.AUDIO_EXTRACTED)
            machine.apply(StageEvent.TRANSCRIBED)
            result.stages.append(StageOutcome(STAGE_TRANSCRIBE, StageStatus.SUCCEEDED))
        except TranscriptionError as e:
            logger.warning("Transcription failed ({}), using placeholder: {}", e.kind, e.diagnostic)
            if e.kind == TranscriptionError.AUDIO_EXTRACTION:
                machine.apply(StageEvent.AUDIO_EXTRACT_FAILED)
            else:
                machine.apply(StageEvent.AUDIO_EXTRACTED)
            machine.apply(StageEvent.TRANSCRIPTION_FAILED)
            transcription = self.fallback_transcription
            result.stages.append(StageOutcome(
                STAGE_TRANSCRIBE, StageStatus.DEGRADED,
                fallback=FALLBACK_PLACEHOLDER, error_kind=e.kind, diagnostic=e.diagnostic,
            ))
        result.transcription = transcription

        duration = await self._probe(raw.path)

        # 3. Compress
        compressed = None
        try:
            compressed = await self.compressor.compress(raw.path, self.profile)
            machine.apply(StageEvent.COMPRESSED)
            result.stages.append(StageOutcome(STAGE_COMPRESS, StageStatus.SUCCEEDED))
            result.compressed_path = str(compressed.path)
        except CompressionError as e:
            logger.warning("Compression failed ({}), keeping original only: {}", e.kind, e.diagnostic)
            machine.apply(StageEvent.COMPRESSION_FAILED)
            result.stages.append(StageOutcome(
                STAGE_COMPRESS, StageStatus.DEGRADED,
                fallback=FALLBACK_ORIGINAL_ONLY, error_kind=e.kind, diagnostic=e.diagnostic,
            ))

        # 4. Tag
        tags = sorted(extract_tags(transcription))
        result.tags = tags
        result.stages.append(StageOutcome(STAGE_TAG, StageStatus.SUCCEEDED))

        # 5. Commit
        date = captured_at.strftime("%Y-%m-%d")
        draft = EntryDraft(
            title=title or default_title(date),
            date=date,
            time=captured_at.strftime("%H:%M:%S"),
            original_path=str(raw.path),
            compressed_path=str(compressed.path) if compressed else None,
            transcription=transcription,
            duration=duration,
            file_size=raw.size,
            compressed_size=compressed.size if compressed else None,
        )
        try:
            entry_id = await loop.run_in_executor(None, self.store.create_entry, draft, tags)
        except StoreError as e:
            logger.error("Could not index recording {}: {}", raw.path, e)
            result.stages.append(StageOutcome(
                STAGE_COMMIT, StageStatus.FAILED, error_kind=type(e).__name__, diagnostic=str(e),
            ))
            result.state = machine.apply(StageEvent.FATAL)
            result.fatal_stage = STAGE_COMMIT
            result.error = str(e)
            return result

        result.stages.append(StageOutcome(STAGE_COMMIT, StageStatus.SUCCEEDED))
        result.entry_id = entry_id
        result.state = machine.apply(StageEvent.COMMITTED)
        logger.info("Entry {} committed from {}", entry_id, raw.path)
        return result
