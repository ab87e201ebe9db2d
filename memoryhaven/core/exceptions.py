"""
Exception hierarchy for MemoryHaven.

    MemoryHavenError
    ├── ArtifactError             raw capture could not be persisted (fatal)
    │   └── ArtifactCleanupError  some artifact files could not be deleted
    ├── ToolError                 an external binary failed to run
    │   ├── ToolNotFoundError
    │   └── ToolTimeoutError
    ├── MediaStageError           a degradable stage failed
    │   ├── TranscriptionError
    │   └── CompressionError
    ├── StoreError
    │   ├── EntryNotFoundError
    │   ├── ValidationError
    │   │   └── NoFieldsToUpdateError
    │   └── DatabaseError
    └── InvalidTransitionError

Callers branch on the class, never on the message.
"""


class MemoryHavenError(Exception):
    """Base class for every error raised by this package."""


class ArtifactError(MemoryHavenError):
    """Writing or reading a media artifact failed."""


class ArtifactCleanupError(ArtifactError):
    """
    Deleting artifact files failed for at least one path.

    Attributes:
        removed: paths that were deleted before and after the failures
        failures: mapping of path to the OS error message
    """

    def __init__(self, removed: list, failures: dict):
        details = "; ".join(f"{path}: {error}" for path, error in failures.items())
        super().__init__(f"Could not delete {len(failures)} artifact(s): {details}")
        self.removed = removed
        self.failures = failures


class ToolError(MemoryHavenError):
    """An external tool (ffmpeg, ffprobe, whisper-cli) exited unsuccessfully."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ToolNotFoundError(ToolError):
    pass


class ToolTimeoutError(ToolError):
    pass


class MediaStageError(MemoryHavenError):
    """
    A pipeline stage that is allowed to degrade failed.

    Attributes:
        kind: short machine-readable failure category
        diagnostic: human-readable detail suitable for display
    """

    def __init__(self, kind: str, diagnostic: str):
        super().__init__(f"{kind}: {diagnostic}")
        self.kind = kind
        self.diagnostic = diagnostic


class TranscriptionError(MediaStageError):
    AUDIO_EXTRACTION = "audio_extraction"
    ENGINE = "engine"
    TIMEOUT = "timeout"


class CompressionError(MediaStageError):
    ENGINE = "engine"
    TIMEOUT = "timeout"
    OUTPUT = "output"


class StoreError(MemoryHavenError):
    """Base for errors raised by the relational store."""


class EntryNotFoundError(StoreError):
    def __init__(self, entry_id: int):
        super().__init__(f"Entry not found: {entry_id}")
        self.entry_id = entry_id


class ValidationError(StoreError):
    """Supplied entry or tag data is not acceptable."""


class NoFieldsToUpdateError(ValidationError):
    """An update carried no fields to apply."""


class DatabaseError(StoreError):
    """The underlying database engine reported an error."""


class InvalidTransitionError(MemoryHavenError):
    def __init__(self, state, event):
        super().__init__(f"No transition from {state.name} on {event.name}")
        self.state = state
        self.event = event
