from pathlib import Path
from typing import Optional

from memoryhaven.config import settings
from memoryhaven.core.exceptions import ToolError
from memoryhaven.core.logger import logger
from memoryhaven.media.process import run_tool


async def extract_audio(
    video_path: Path,
    output_wav: Path,
    sample_rate: int = settings.SAMPLE_RATE,
    channels: int = settings.CHANNELS,
    timeout: Optional[float] = None,
    ffmpeg: str = settings.FFMPEG_PATH,
) -> Path:
    """
    Extract the audio track of a video into a PCM WAV suitable for Whisper.

    Raises ToolError (or a subclass) when ffmpeg cannot produce the file.
    """
    output_wav.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg,
        "-y",
        "-hide_banner",
        "-loglevel", "error",
        "-nostdin",
        "-i", str(video_path),
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", str(channels),
        str(output_wav),
    ]
    await run_tool(cmd, timeout=timeout)

    if not output_wav.exists() or output_wav.stat().st_size == 0:
        raise ToolError(f"ffmpeg reported success, but output WAV is missing/empty: {output_wav}")

    logger.info("Audio extracted to {}", output_wav)
    return output_wav
