import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from memoryhaven.core.exceptions import ArtifactCleanupError, ArtifactError
from memoryhaven.core.logger import logger


@dataclass(frozen=True)
class StoredArtifact:
    path: Path
    size: int


def artifact_name(captured_at: datetime, extension: str) -> str:
    """File name for a capture. Identical timestamps map to the same name."""
    return f"recording-{captured_at.strftime('%Y-%m-%d_%H-%M-%S')}.{extension.lstrip('.')}"


def _is_within(path: Path, other: Path) -> bool:
    return path == other or other in path.parents


class ArtifactStore:
    """
    Raw captures, compressed copies and scratch audio on local disk.

    The three roots must be independent: none may contain another.
    """

    def __init__(self, recordings_dir: Path, compressed_dir: Path, temp_dir: Path, raw_extension: str = "webm"):
        roots = {
            "recordings": Path(recordings_dir).resolve(),
            "compressed": Path(compressed_dir).resolve(),
            "temp": Path(temp_dir).resolve(),
        }
        names = list(roots)
        for i, first in enumerate(names):
            for second in names[i + 1:]:
                a, b = roots[first], roots[second]
                if _is_within(a, b) or _is_within(b, a):
                    raise ValueError(f"Artifact roots must not overlap: {first}={a} {second}={b}")

        self.recordings_dir = roots["recordings"]
        self.compressed_dir = roots["compressed"]
        self.temp_dir = roots["temp"]
        self.raw_extension = raw_extension

        for directory in roots.values():
            directory.mkdir(parents=True, exist_ok=True)

    def write_raw(self, data: bytes, captured_at: datetime) -> StoredArtifact:
        """Persist a raw capture. Overwrites a capture with the same timestamp."""
        path = self.recordings_dir / artifact_name(captured_at, self.raw_extension)
        try:
            with open(path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise ArtifactError(f"Could not write recording {path}: {e}") from e

        logger.info("Recording saved to: {} ({} bytes)", path, len(data))
        return StoredArtifact(path=path, size=len(data))

    def remove(self, *paths: Optional[str]) -> list[str]:
        """
        Delete the given artifact files, skipping empty values and files
        that are already gone. Returns the paths actually removed.

        Every path is attempted; failures are raised together afterwards as
        ArtifactCleanupError.
        """
        removed = []
        failures = {}
        for path in paths:
            if not path:
                continue
            try:
                Path(path).unlink()
            except FileNotFoundError:
                logger.warning("Artifact already missing: {}", path)
                continue
            except OSError as e:
                logger.error("Could not delete artifact {}: {}", path, e)
                failures[str(path)] = str(e)
                continue
            removed.append(str(path))
            logger.info("Deleted artifact {}", path)
        if failures:
            raise ArtifactCleanupError(removed, failures)
        return removed
