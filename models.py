"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StateKind(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"
    ERROR = "ERROR"


class ProcessingStage(str, Enum):
    TRANSCRIBING = "TRANSCRIBING"
    ENHANCING = "ENHANCING"


@dataclass(frozen=True)
class RecordingState:
    """Tagged pipeline state: ``stage`` is set only for PROCESSING, ``code``
    and ``message`` only for ERROR."""

    kind: StateKind = StateKind.IDLE
    stage: Optional[ProcessingStage] = None
    code: str = ""
    message: str = ""

    @classmethod
    def idle(cls) -> "RecordingState":
        return cls(StateKind.IDLE)

    @classmethod
    def recording(cls) -> "RecordingState":
        return cls(StateKind.RECORDING)

    @classmethod
    def processing(cls, stage: ProcessingStage) -> "RecordingState":
        return cls(StateKind.PROCESSING, stage=stage)

    @classmethod
    def error(cls, code: str, message: str) -> "RecordingState":
        return cls(StateKind.ERROR, code=code, message=message)

    @property
    def is_recording(self) -> bool:
        return self.kind == StateKind.RECORDING

    @property
    def is_processing(self) -> bool:
        return self.kind == StateKind.PROCESSING

    @property
    def is_busy(self) -> bool:
        return self.kind in (StateKind.RECORDING, StateKind.PROCESSING)

    def __str__(self) -> str:
        if self.stage is not None:
            return f"{self.kind.value}({self.stage.value})"
        if self.code:
            return f"{self.kind.value}({self.code})"
        return self.kind.value


class ChordCommand(str, Enum):
    START = "start"
    STOP = "stop"
    IGNORE = "ignore"


class KeyRole(str, Enum):
    MODIFIER = "modifier"
    TRIGGER = "trigger"
    OTHER = "other"


@dataclass(frozen=True)
class KeyEvent:
    role: KeyRole
    pressed: bool
    timestamp_ms: int


@dataclass(frozen=True)
class ChordState:
    modifier_held: bool = False
    last_activation_ms: int = 0


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class SealedAudio:
    data: bytes
    mime_type: str = "audio/wav"
    sample_rate: int = 16000
    channels: int = 1

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class TranscriptionResult:
    text: str = ""
    error: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class EnhancementContext:
    text: str
    specialized_terms: tuple[str, ...] = ()
    language: str = "auto"
    custom_instructions: str = ""


@dataclass
class EnhancementResult:
    enhanced_text: str = ""
    error: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Selection:
    start: int
    end: int


@dataclass(frozen=True)
class InsertionResult:
    text: str
    cursor: int
    spacer_inserted: bool


@dataclass
class PipelineOutcome:
    delivered_text: str = ""
    error: Optional[str] = None
    warning: Optional[str] = None
    insertion: Optional[InsertionResult] = None


@dataclass
class CopyResult:
    success: bool
    reason: str

