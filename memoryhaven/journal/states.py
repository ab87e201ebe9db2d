from enum import Enum, auto

from memoryhaven.core.exceptions import InvalidTransitionError
from memoryhaven.core.logger import logger

class PipelineState(Enum):
    CAPTURED = auto()
    AUDIO_EXTRACTED = auto()
    AUDIO_EXTRACT_FAILED = auto()
    TRANSCRIBED = auto()
    TRANSCRIPTION_FAILED = auto()
    COMPRESSED = auto()
    COMPRESSION_FAILED = auto()
    TAGGED_AND_COMMITTED = auto()
    ABORTED = auto()

class StageEvent(Enum):
    AUDIO_EXTRACTED = auto()
    AUDIO_EXTRACT_FAILED = auto()
    TRANSCRIBED = auto()
    TRANSCRIPTION_FAILED = auto()
    COMPRESSED = auto()
    COMPRESSION_FAILED = auto()
    COMMITTED = auto()
    FATAL = auto()

S = PipelineState
E = StageEvent

TRANSITIONS = {
    (S.CAPTURED, E.AUDIO_EXTRACTED): S.AUDIO_EXTRACTED,
    (S.CAPTURED, E.AUDIO_EXTRACT_FAILED): S.AUDIO_EXTRACT_FAILED,
    (S.CAPTURED, E.FATAL): S.ABORTED,
    (S.AUDIO_EXTRACTED, E.TRANSCRIBED): S.TRANSCRIBED,
    (S.AUDIO_EXTRACTED, E.TRANSCRIPTION_FAILED): S.TRANSCRIPTION_FAILED,
    (S.AUDIO_EXTRACT_FAILED, E.TRANSCRIPTION_FAILED): S.TRANSCRIPTION_FAILED,
    (S.TRANSCRIBED, E.COMPRESSED): S.COMPRESSED,
    (S.TRANSCRIBED, E.COMPRESSION_FAILED): S.COMPRESSION_FAILED,
    (S.TRANSCRIPTION_FAILED, E.COMPRESSED): S.COMPRESSED,
    (S.TRANSCRIPTION_FAILED, E.COMPRESSION_FAILED): S.COMPRESSION_FAILED,
    (S.COMPRESSED, E.COMMITTED): S.TAGGED_AND_COMMITTED,
    (S.COMPRESSED, E.FATAL): S.ABORTED,
    (S.COMPRESSION_FAILED, E.COMMITTED): S.TAGGED_AND_COMMITTED,
    (S.COMPRESSION_FAILED, E.FATAL): S.ABORTED,
}

TERMINAL_STATES = frozenset({S.TAGGED_AND_COMMITTED, S.ABORTED})

def advance(state: PipelineState, event: StageEvent) -> PipelineState:
    """Next state for ``event``; raises InvalidTransitionError if not allowed."""
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None

class PipelineStateMachine:
    """Tracks one entry's progress through the pipeline."""

    def __init__(self, label: str):
        self.label = label
        self._state = PipelineState.CAPTURED
        self.history = [self._state]

    @property
    def state(self) -> PipelineState:
        return self._state

    def apply(self, event: StageEvent) -> PipelineState:
        new_state = advance(self._state, event)
        logger.info("Pipeline {} state changed: {} -> {}", self.label, self._state.name, new_state.name)
        self._state = new_state
        self.history.append(new_state)
        return new_state

    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES
