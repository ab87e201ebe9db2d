import json
from pathlib import Path
from typing import Optional

from memoryhaven.config import settings
from memoryhaven.core.exceptions import ToolError
from memoryhaven.core.logger import logger
from memoryhaven.media.process import run_tool


def _read_duration(stdout: str) -> float:
    payload = json.loads(stdout or "{}")
    if not isinstance(payload, dict):
        raise ValueError(f"unexpected ffprobe output: {type(payload).__name__}")
    fmt = payload.get("format")
    if not isinstance(fmt, dict):
        return 0.0
    return float(fmt.get("duration") or 0.0)


async def probe_duration(
    video_path: Path,
    ffprobe: str = settings.FFPROBE_PATH,
    timeout: float = settings.PROBE_TIMEOUT,
) -> Optional[int]:
    """
    Clip duration in whole seconds, or None if it cannot be read.

    Never raises for a bad tool or bad output; the duration is optional
    metadata.
    """
    cmd = [ffprobe, "-v", "quiet", "-print_format", "json", "-show_format", str(video_path)]
    try:
        result = await run_tool(cmd, timeout=timeout)
        duration = _read_duration(result.stdout)
        # WebM from MediaRecorder often reports no duration at all
        if not duration > 0:
            return None
        return int(round(duration))
    except (ToolError, ValueError, TypeError, OverflowError) as e:
        logger.warning("Could not probe duration of {}: {}", video_path, e)
        return None
