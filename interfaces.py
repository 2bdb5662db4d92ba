"""Protocol interfaces used by PipelineOrchestrator and InsertionStrategy."""

from __future__ import annotations

from typing import Callable, Optional, Protocol, TypeVar

from models import EnhancementContext, EnhancementResult, SealedAudio, Selection, TranscriptionResult

T = TypeVar("T")


class RecordingSessionLike(Protocol):
    @property
    def is_recording(self) -> bool: ...

    async def start(self) -> None: ...

    async def stop(self) -> Optional[SealedAudio]: ...

    async def release(self) -> None: ...


class TranscriptionClient(Protocol):
    async def transcribe(self, audio: SealedAudio) -> TranscriptionResult: ...


class EnhancementClient(Protocol):
    async def enhance(self, context: EnhancementContext) -> EnhancementResult: ...


class SettingsStore(Protocol):
    def get(self, key: str, default: str = "") -> str: ...

    def set(self, key: str, value: str) -> None: ...

    def get_api_key(self) -> str: ...

    def get_specialized_terms(self) -> list[str]: ...

    def get_language(self) -> str: ...

    def get_custom_instructions(self) -> str: ...


class DocumentStore(Protocol):
    """Authoritative, persisted copy of the document text."""

    def read(self) -> str: ...

    def write(self, text: str) -> None: ...


class EditingSurface(Protocol):
    def run_exclusive(self, action: Callable[[], T]) -> T:
        """Run ``action`` where no user edit can interleave with it, and return its result."""
        ...

    def selection(self) -> Selection: ...

    def apply(self, text: str, cursor: int) -> None:
        """Replace the visible buffer, then collapse the cursor at ``cursor``."""
        ...
