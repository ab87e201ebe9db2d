from contextlib import asynccontextmanager
from functools import partial
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from memoryhaven.config import Settings, settings as default_settings
from memoryhaven.core.logger import logger
from memoryhaven.journal.pipeline import EntryPipeline, default_profile
from memoryhaven.media.artifacts import ArtifactStore
from memoryhaven.media.compression import CompressionAdapter
from memoryhaven.media.probe import probe_duration
from memoryhaven.media.transcription import TranscriptionAdapter, build_engine
from memoryhaven.memory.database import Database
from memoryhaven.memory.store import EntryStore


@dataclass
class Services:
    """Everything the HTTP layer needs, built once at startup."""
    db: Database
    store: EntryStore
    artifacts: ArtifactStore
    pipeline: EntryPipeline

    def close(self):
        self.store.close()


def build_services(config: Settings = default_settings) -> Services:
    db = Database(config.DATABASE_URL, echo=config.DATABASE_ECHO)
    db.init()
    store = EntryStore(db)
    artifacts = ArtifactStore(
        config.RECORDINGS_DIR, config.COMPRESSED_DIR, config.TEMP_DIR, raw_extension=config.RAW_EXTENSION
    )
    transcriber = TranscriptionAdapter(
        build_engine(config), artifacts.temp_dir,
        timeout=config.TRANSCRIPTION_TIMEOUT, sample_rate=config.SAMPLE_RATE, channels=config.CHANNELS,
        ffmpeg=config.FFMPEG_PATH,
    )
    compressor = CompressionAdapter(artifacts.compressed_dir, ffmpeg=config.FFMPEG_PATH, timeout=config.COMPRESSION_TIMEOUT)
    pipeline = EntryPipeline(
        artifacts, transcriber, compressor, store,
        profile=default_profile(config),
        fallback_transcription=config.FALLBACK_TRANSCRIPTION,
        probe=partial(probe_duration, ffprobe=config.FFPROBE_PATH, timeout=config.PROBE_TIMEOUT),
    )
    return Services(db=db, store=store, artifacts=artifacts, pipeline=pipeline)


def make_lifespan(services: Optional[Services] = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Initializing MemoryHaven...")
        app.state.services = services or build_services()
        logger.info("MemoryHaven is ready.")
        yield

        # Shutdown
        logger.info("Shutting down MemoryHaven...")
        app.state.services.close()

    return lifespan
