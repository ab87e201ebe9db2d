import asyncio
from asyncio.subprocess import PIPE
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from memoryhaven.config import settings
from memoryhaven.core.exceptions import CompressionError
from memoryhaven.core.logger import logger
from memoryhaven.media.process import kill_process


@dataclass(frozen=True)
class EncodingProfile:
    video_bitrate: str
    audio_bitrate: str
    width: int
    height: int
    fps: int
    format: str


@dataclass(frozen=True)
class CompressedArtifact:
    path: Path
    size: int


def parse_progress_line(line: str) -> Optional[float]:
    """Seconds of output encoded so far, from an ffmpeg ``-progress`` line."""
    key, _, value = line.strip().partition("=")
    if key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        # ffmpeg reports both keys in microseconds
        return int(value) / 1_000_000
    except ValueError:
        return None


class CompressionAdapter:
    """Re-encodes a recording with ffmpeg into the compressed directory."""

    def __init__(self, output_dir: Path, ffmpeg: str = settings.FFMPEG_PATH,
                 timeout: Optional[float] = settings.COMPRESSION_TIMEOUT):
        self.output_dir = Path(output_dir)
        self.ffmpeg = ffmpeg
        self.timeout = timeout

    def output_path(self, artifact_path: Path, profile: EncodingProfile) -> Path:
        return self.output_dir / f"{Path(artifact_path).stem}_compressed.{profile.format}"

    def build_command(self, artifact_path: Path, output_path: Path, profile: EncodingProfile) -> list[str]:
        return [
            self.ffmpeg,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-nostdin",
            "-i", str(artifact_path),
            "-c:v", "libx264",
            "-s", f"{profile.width}x{profile.height}",
            "-b:v", profile.video_bitrate,
            "-r", str(profile.fps),
            "-c:a", "aac",
            "-b:a", profile.audio_bitrate,
            "-f", profile.format,
            "-progress", "pipe:1",
            str(output_path),
        ]

    async def compress(self, artifact_path: Path, profile: EncodingProfile) -> CompressedArtifact:
        artifact_path = Path(artifact_path)
        output_path = self.output_path(artifact_path, profile)
        if output_path.resolve() == artifact_path.resolve():
            raise CompressionError(CompressionError.OUTPUT, f"output would overwrite input: {artifact_path}")

        logger.info("Compressing video: {} -> {} ({})", artifact_path, output_path, asdict(profile))

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            await self._encode(artifact_path, output_path, profile)
            size = output_path.stat().st_size if output_path.exists() else 0
            if size == 0:
                raise CompressionError(CompressionError.OUTPUT, f"ffmpeg produced no output at {output_path}")
        except OSError as e:
            output_path.unlink(missing_ok=True)
            raise CompressionError(CompressionError.OUTPUT, str(e)) from e
        except BaseException:
            # Never leave a truncated file behind
            output_path.unlink(missing_ok=True)
            raise

        logger.info("Video compression completed: {} ({} bytes)", output_path, size)
        return CompressedArtifact(path=output_path, size=size)

    async def _encode(self, artifact_path: Path, output_path: Path, profile: EncodingProfile):
        cmd = self.build_command(artifact_path, output_path, profile)
        try:
            process = await asyncio.create_subprocess_exec(*cmd, stdout=PIPE, stderr=PIPE)
        except FileNotFoundError as e:
            raise CompressionError(CompressionError.ENGINE, f"{self.ffmpeg} not found") from e
        except OSError as e:
            raise CompressionError(CompressionError.ENGINE, f"{self.ffmpeg} could not be started: {e}") from e

        async def pump_progress():
            async for raw in process.stdout:
                seconds = parse_progress_line(raw.decode(errors="ignore"))
                if seconds is not None:
                    logger.debug("Processing {}: {:.1f}s encoded", artifact_path.name, seconds)

        try:
            _, stderr, _ = await asyncio.wait_for(
                asyncio.gather(pump_progress(), process.stderr.read(), process.wait()),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            await kill_process(process)
            raise CompressionError(CompressionError.TIMEOUT, f"ffmpeg timed out after {self.timeout}s")
        except asyncio.CancelledError:
            await kill_process(process)
            raise

        if process.returncode != 0:
            details = (stderr or b"").decode(errors="ignore").strip()[-2000:]
            raise CompressionError(
                CompressionError.ENGINE, f"ffmpeg exited with {process.returncode}: {details}"
            )
