"""State-machine based capture → transcribe → enhance → insert pipeline.

All public coroutines must run on one asyncio loop. Between two awaits the
orchestrator state is only touched by the running coroutine, so the
single-active-pipeline gate needs no lock.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from chord import ChordDetector
from errors import (
    EMPTY_AUDIO,
    ENHANCEMENT_DEGRADED,
    NO_API_KEY,
    NO_SPEECH_DETECTED,
    PROCESSING_ERROR,
    SETTINGS_REQUIRED,
    DictationError,
    message_for,
)
from insertion import InsertionStrategy
from interfaces import EnhancementClient, RecordingSessionLike, SettingsStore, TranscriptionClient
from models import (
    ChordCommand,
    EnhancementContext,
    KeyEvent,
    PipelineOutcome,
    ProcessingStage,
    RecordingState,
    StateKind,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[RecordingState, RecordingState], None]
ErrorCallback = Callable[[str, str], None]


class PipelineOrchestrator:
    def __init__(
        self,
        session: RecordingSessionLike,
        transcriber: TranscriptionClient,
        enhancer: EnhancementClient,
        settings: SettingsStore,
        insertion: InsertionStrategy,
        chord: Optional[ChordDetector] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_warning: Optional[ErrorCallback] = None,
    ) -> None:
        self._session = session
        self._transcriber = transcriber
        self._enhancer = enhancer
        self._settings = settings
        self._insertion = insertion
        self._chord = chord or ChordDetector()
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._on_warning = on_warning

        self._state = RecordingState.idle()
        self._starting = False
        self._stop_requested = False
        self._warning: Optional[tuple[str, str]] = None
        self._needs_settings = False

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def current_error(self) -> Optional[tuple[str, str]]:
        if self._state.kind != StateKind.ERROR:
            return None
        return self._state.code, self._state.message

    @property
    def warning(self) -> Optional[tuple[str, str]]:
        return self._warning

    @property
    def needs_settings(self) -> bool:
        return self._needs_settings

    def can_record(self) -> bool:
        return bool(self._settings.get_api_key().strip())

    async def handle_key_event(self, event: KeyEvent) -> ChordCommand:
        """Chord entry point."""
        # A device that is still opening counts as recording, so a modifier
        # release in that window turns into a pending stop.
        state = RecordingState.recording() if self._starting else self._state
        command = self._chord.feed(event, state, enabled=self.can_record())
        if command == ChordCommand.START:
            await self.start()
        elif command == ChordCommand.STOP:
            await self.stop()
        return command

    async def toggle(self) -> Optional[PipelineOutcome]:
        """Click entry point: start when idle, stop when recording."""
        if self._state.is_processing:
            return None
        if self._state.is_recording or self._starting:
            return await self.stop()
        await self.start()
        return None

    async def start(self) -> bool:
        if self._state.is_busy or self._starting:
            logger.debug("Start ignored while %s", self._state)
            return False

        self._warning = None
        if not self.can_record():
            self._fail(NO_API_KEY, message_for(NO_API_KEY))
            return False

        self._starting = True
        self._stop_requested = False
        try:
            await self._session.start()
        except DictationError as exc:
            self._fail(exc.code, message_for(exc.code, exc.message))
            return False
        finally:
            self._starting = False

        self._needs_settings = False
        self._transition(RecordingState.recording())
        if self._stop_requested:
            # released while the device was still opening
            self._stop_requested = False
            await self.stop()
        return True

    async def stop(self) -> Optional[PipelineOutcome]:
        if self._starting:
            self._stop_requested = True
            return None
        if not self._state.is_recording:
            return None
        self._transition(RecordingState.processing(ProcessingStage.TRANSCRIBING))
        try:
            return await self._run_pipeline()
        except Exception as exc:
            logger.exception("Pipeline failed unexpectedly")
            return self._fail(PROCESSING_ERROR, message_for(PROCESSING_ERROR, str(exc)))
        finally:
            await self._session.release()

    async def shutdown(self) -> None:
        await self._session.release()
        if self._state.is_recording:
            self._transition(RecordingState.idle())

    def dismiss_error(self) -> None:
        if self._state.kind == StateKind.ERROR:
            self._transition(RecordingState.idle())

    async def _run_pipeline(self) -> PipelineOutcome:
        audio = await self._session.stop()
        if audio is None or audio.size == 0:
            return self._fail(EMPTY_AUDIO, message_for(EMPTY_AUDIO))

        transcription = await self._transcriber.transcribe(audio)
        if not transcription.ok:
            return self._fail(transcription.error or "", transcription.message)

        text = transcription.text
        if not text.strip():
            return self._fail(NO_SPEECH_DETECTED, message_for(NO_SPEECH_DETECTED))

        context = self._build_context(text)
        self._transition(RecordingState.processing(ProcessingStage.ENHANCING))
        enhancement = await self._enhancer.enhance(context)

        warning = None
        if enhancement.ok:
            delivered = enhancement.enhanced_text
        else:
            delivered = text
            warning = ENHANCEMENT_DEGRADED
            detail = enhancement.message or message_for(enhancement.error or "")
            self._warn(ENHANCEMENT_DEGRADED, f"{message_for(ENHANCEMENT_DEGRADED)} {detail}".strip())

        insertion = self._insertion.insert(delivered)
        self._transition(RecordingState.idle())
        return PipelineOutcome(delivered_text=delivered, warning=warning, insertion=insertion)

    def _build_context(self, text: str) -> EnhancementContext:
        # Read now, not at recording start, so mid-recording edits apply.
        return EnhancementContext(
            text=text,
            specialized_terms=tuple(self._settings.get_specialized_terms()),
            language=self._settings.get_language() or "auto",
            custom_instructions=self._settings.get_custom_instructions(),
        )

    def _fail(self, code: str, message: str) -> PipelineOutcome:
        logger.warning("Pipeline error %s: %s", code, message)
        self._needs_settings = code in SETTINGS_REQUIRED
        self._transition(RecordingState.error(code, message))
        if self._on_error:
            self._on_error(code, message)
        return PipelineOutcome(error=code)

    def _warn(self, code: str, message: str) -> None:
        logger.warning("Pipeline warning %s: %s", code, message)
        self._warning = (code, message)
        if self._on_warning:
            self._on_warning(code, message)

    def _transition(self, to_state: RecordingState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("State %s -> %s", from_state, to_state)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
