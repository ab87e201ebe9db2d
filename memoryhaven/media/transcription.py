import asyncio
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from faster_whisper import WhisperModel

from memoryhaven.config import settings
from memoryhaven.core.exceptions import ToolError, ToolTimeoutError, TranscriptionError
from memoryhaven.core.logger import logger
from memoryhaven.media.audio import extract_audio
from memoryhaven.media.process import run_tool


class TranscriptionEngine(ABC):
    """Turns a 16kHz mono WAV into text. Raises on any failure."""

    @abstractmethod
    async def transcribe(self, audio_path: Path) -> str:
        raise NotImplementedError


class FasterWhisperEngine(TranscriptionEngine):
    def __init__(self, model_name: str = settings.WHISPER_MODEL, device: str = settings.WHISPER_DEVICE,
                 compute_type: str = settings.WHISPER_COMPUTE_TYPE):
        self.model_name = model_name
        self.device = device
        self.compute_type = compute_type
        self.model = None
        self._load_lock = threading.Lock()

    def _load(self):
        logger.info("Initializing Whisper model: {} on {}", self.model_name, self.device)
        try:
            return WhisperModel(self.model_name, device=self.device, compute_type=self.compute_type)
        except Exception as e:
            if self.device == "cpu":
                raise
            logger.warning("Failed to load Whisper on {}: {}. Falling back to CPU.", self.device, e)
            return WhisperModel(self.model_name, device="cpu", compute_type="int8")

    def _run(self, audio_path: Path) -> str:
        # Concurrent first calls must share one model
        with self._load_lock:
            if self.model is None:
                self.model = self._load()
        segments, info = self.model.transcribe(str(audio_path), beam_size=5)
        return " ".join(segment.text.strip() for segment in segments).strip()

    async def transcribe(self, audio_path: Path) -> str:
        # faster-whisper is blocking, run in executor
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self._run(audio_path))


class WhisperCppEngine(TranscriptionEngine):
    """Runs the whisper.cpp command-line binary against a model file."""

    def __init__(self, binary: str = settings.WHISPER_CPP_PATH, model_path: Path = settings.WHISPER_CPP_MODEL):
        self.binary = binary
        self.model_path = Path(model_path)

    async def transcribe(self, audio_path: Path) -> str:
        if not self.model_path.exists():
            raise FileNotFoundError(f"Whisper model not found at: {self.model_path}")

        output_base = audio_path.with_suffix("")
        output_txt = output_base.with_suffix(".txt")
        cmd = [self.binary, "-m", self.model_path, "-f", audio_path, "-otxt", "-of", output_base, "-np"]
        try:
            await run_tool(cmd)
            if not output_txt.exists():
                raise ToolError(f"Output file not created: {output_txt}")
            return output_txt.read_text(encoding="utf-8").strip()
        finally:
            output_txt.unlink(missing_ok=True)


def build_engine(config=settings) -> TranscriptionEngine:
    backend = config.WHISPER_BACKEND
    if backend == "faster-whisper":
        return FasterWhisperEngine(config.WHISPER_MODEL, config.WHISPER_DEVICE, config.WHISPER_COMPUTE_TYPE)
    if backend == "whisper-cpp":
        return WhisperCppEngine(config.WHISPER_CPP_PATH, config.WHISPER_CPP_MODEL)
    raise ValueError(f"Unknown transcription backend: {backend}")


class TranscriptionAdapter:
    """
    Extracts audio from a recording and hands it to the transcription engine.

    Every failure surfaces as TranscriptionError; there are no retries and
    no caching. The intermediate WAV is always removed.
    """

    def __init__(self, engine: TranscriptionEngine, scratch_dir: Path,
                 timeout: Optional[float] = settings.TRANSCRIPTION_TIMEOUT,
                 sample_rate: int = settings.SAMPLE_RATE, channels: int = settings.CHANNELS,
                 ffmpeg: str = settings.FFMPEG_PATH):
        self.engine = engine
        self.ffmpeg = ffmpeg
        self.scratch_dir = Path(scratch_dir)
        self.timeout = timeout
        self.sample_rate = sample_rate
        self.channels = channels

    async def transcribe(self, artifact_path: Path) -> str:
        artifact_path = Path(artifact_path)
        audio_path = self.scratch_dir / f"{artifact_path.stem}.wav"
        try:
            try:
                await extract_audio(
                    artifact_path, audio_path, self.sample_rate, self.channels,
                    timeout=self.timeout, ffmpeg=self.ffmpeg,
                )
            except (ToolError, OSError) as e:
                raise TranscriptionError(TranscriptionError.AUDIO_EXTRACTION, str(e)) from e

            logger.info("Starting transcription of {}", audio_path.name)
            try:
                text = await asyncio.wait_for(self.engine.transcribe(audio_path), timeout=self.timeout)
            except (asyncio.TimeoutError, ToolTimeoutError) as e:
                raise TranscriptionError(
                    TranscriptionError.TIMEOUT, f"transcription exceeded {self.timeout}s"
                ) from e
            except TranscriptionError:
                raise
            except Exception as e:
                # Missing model files, crashed binaries and CUDA errors all land here
                raise TranscriptionError(TranscriptionError.ENGINE, str(e) or type(e).__name__) from e

            if not text:
                raise TranscriptionError(TranscriptionError.ENGINE, "engine returned no text")
            logger.info("Transcription finished ({} chars)", len(text))
            return text
        finally:
            audio_path.unlink(missing_ok=True)

