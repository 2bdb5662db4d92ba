from __future__ import annotations

import asyncio
from typing import Optional

from errors import (
    DEVICE_UNAVAILABLE,
    EMPTY_AUDIO,
    ENHANCEMENT_DEGRADED,
    NETWORK_ERROR,
    NO_API_KEY,
    NO_SPEECH_DETECTED,
    PERMISSION_DENIED,
    PROCESSING_ERROR,
    RATE_LIMITED,
    UNAUTHORIZED,
    RecorderError,
)
from hotkey import GlobalChordListener
from insertion import InsertionStrategy
from models import (
    ChordCommand,
    EnhancementContext,
    EnhancementResult,
    KeyEvent,
    KeyRole,
    ProcessingStage,
    RecordingState,
    SealedAudio,
    Selection,
    StateKind,
    TranscriptionResult,
)
from pipeline import PipelineOrchestrator


class FakeSession:
    def __init__(self, audio: bytes = b"RIFF....", start_error: Optional[Exception] = None) -> None:
        self.audio = audio
        self.start_error = start_error
        self.recording = False
        self.device_held = False
        self.starts = 0
        self.stops = 0

    @property
    def is_recording(self) -> bool:
        return self.recording

    async def start(self) -> None:
        self.starts += 1
        if self.start_error is not None:
            raise self.start_error
        self.recording = True
        self.device_held = True

    async def stop(self) -> Optional[SealedAudio]:
        if not self.recording:
            return None
        self.stops += 1
        self.recording = False
        self.device_held = False
        return SealedAudio(self.audio)

    async def release(self) -> None:
        self.recording = False
        self.device_held = False


class FakeTranscriber:
    def __init__(self, result: TranscriptionResult) -> None:
        self.result = result
        self.calls: list[SealedAudio] = []
        self.hook = None

    async def transcribe(self, audio: SealedAudio) -> TranscriptionResult:
        self.calls.append(audio)
        if self.hook is not None:
            await self.hook()
        return self.result


class FakeEnhancer:
    def __init__(self, result: Optional[EnhancementResult] = None) -> None:
        self.result = result
        self.calls: list[EnhancementContext] = []

    async def enhance(self, context: EnhancementContext) -> EnhancementResult:
        self.calls.append(context)
        if self.result is None:
            return EnhancementResult(context.text.upper())
        return self.result


class FakeSettings:
    def __init__(self, api_key: str = "key") -> None:
        self.values = {
            "api_key": api_key,
            "language": "en",
            "custom_instructions": "",
        }
        self.terms: list[str] = []

    def get(self, key: str, default: str = "") -> str:
        return self.values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def get_api_key(self) -> str:
        return self.values["api_key"]

    def get_specialized_terms(self) -> list[str]:
        return list(self.terms)

    def get_language(self) -> str:
        return self.values["language"]

    def get_custom_instructions(self) -> str:
        return self.values["custom_instructions"]


class FakeDocument:
    def __init__(self, text: str = "") -> None:
        self.text = text

    def read(self) -> str:
        return self.text

    def write(self, text: str) -> None:
        self.text = text


class FakeSurface:
    def __init__(self, selection: Selection = Selection(0, 0)) -> None:
        self.current = selection
        self.applied: list[tuple[str, int]] = []

    def run_exclusive(self, action):  # noqa: ANN001, ANN201
        return action()

    def selection(self) -> Selection:
        return self.current

    def apply(self, text: str, cursor: int) -> None:
        self.applied.append((text, cursor))


class Harness:
    def __init__(
        self,
        session: Optional[FakeSession] = None,
        transcription: Optional[TranscriptionResult] = None,
        enhancement: Optional[EnhancementResult] = None,
        api_key: str = "key",
        document: str = "",
    ) -> None:
        self.session = session or FakeSession()
        self.transcriber = FakeTranscriber(transcription or TranscriptionResult(text="hello world"))
        self.enhancer = FakeEnhancer(enhancement)
        self.settings = FakeSettings(api_key)
        self.document = FakeDocument(document)
        self.surface = FakeSurface(Selection(len(document), len(document)))
        self.transitions: list[tuple[RecordingState, RecordingState]] = []
        self.errors: list[tuple[str, str]] = []
        self.warnings: list[tuple[str, str]] = []
        self.controller = PipelineOrchestrator(
            session=self.session,
            transcriber=self.transcriber,
            enhancer=self.enhancer,
            settings=self.settings,
            insertion=InsertionStrategy(self.document, self.surface),
            on_state_change=lambda f, t: self.transitions.append((f, t)),
            on_error=lambda c, m: self.errors.append((c, m)),
            on_warning=lambda c, m: self.warnings.append((c, m)),
        )

    async def record_and_stop(self):
        await self.controller.start()
        return await self.controller.stop()


def test_happy_path_inserts_enhanced_text() -> None:
    h = Harness(document="Note:")
    outcome = asyncio.run(h.record_and_stop())

    assert outcome.delivered_text == "HELLO WORLD"
    assert outcome.error is None
    assert h.document.text == "Note: HELLO WORLD"
    assert h.surface.applied == [("Note: HELLO WORLD", 17)]
    assert h.controller.state == RecordingState.idle()
    assert [t.kind for _, t in h.transitions] == [
        StateKind.RECORDING,
        StateKind.PROCESSING,
        StateKind.PROCESSING,
        StateKind.IDLE,
    ]
    assert [t.stage for _, t in h.transitions if t.is_processing] == [
        ProcessingStage.TRANSCRIBING,
        ProcessingStage.ENHANCING,
    ]
    assert h.session.device_held is False


def test_empty_audio_never_calls_transcription() -> None:
    h = Harness(session=FakeSession(audio=b""))
    outcome = asyncio.run(h.record_and_stop())

    assert outcome.error == EMPTY_AUDIO
    assert h.controller.state.kind == StateKind.ERROR
    assert h.controller.state.code == EMPTY_AUDIO
    assert h.transcriber.calls == []
    assert h.enhancer.calls == []
    assert h.session.device_held is False


def test_transcription_error_skips_enhancement() -> None:
    for code in (UNAUTHORIZED, RATE_LIMITED, NETWORK_ERROR):
        h = Harness(transcription=TranscriptionResult(error=code, message="boom"))
        outcome = asyncio.run(h.record_and_stop())

        assert outcome.error == code
        assert outcome.delivered_text == ""
        assert h.enhancer.calls == []
        assert h.surface.applied == []
        assert h.controller.current_error == (code, "boom")
        assert h.session.device_held is False


def test_unauthorized_flags_settings() -> None:
    h = Harness(transcription=TranscriptionResult(error=UNAUTHORIZED, message="bad key"))
    asyncio.run(h.record_and_stop())
    assert h.controller.needs_settings is True


def test_blank_transcription_is_no_speech() -> None:
    h = Harness(transcription=TranscriptionResult(text="  \n\t "))
    outcome = asyncio.run(h.record_and_stop())

    assert outcome.error == NO_SPEECH_DETECTED
    assert h.enhancer.calls == []
    assert h.document.text == ""
    assert h.session.device_held is False


def test_enhancement_failure_delivers_raw_transcription() -> None:
    raw = "  um, hello Wörld\n"
    h = Harness(
        transcription=TranscriptionResult(text=raw),
        enhancement=EnhancementResult(raw, NETWORK_ERROR, "offline"),
    )
    outcome = asyncio.run(h.record_and_stop())

    assert outcome.delivered_text == raw
    assert outcome.warning == ENHANCEMENT_DEGRADED
    assert h.document.text == raw
    assert h.controller.state == RecordingState.idle()
    assert h.controller.current_error is None
    assert h.warnings and h.warnings[0][0] == ENHANCEMENT_DEGRADED
    assert h.errors == []


def test_context_uses_settings_read_after_transcription() -> None:
    h = Harness()

    async def change_settings() -> None:
        h.settings.values["language"] = "de"
        h.settings.values["custom_instructions"] = "Use bullet points."
        h.settings.terms = ["Kubernetes", "PySide6"]

    h.transcriber.hook = change_settings
    asyncio.run(h.record_and_stop())

    context = h.enhancer.calls[0]
    assert context.text == "hello world"
    assert context.language == "de"
    assert context.custom_instructions == "Use bullet points."
    assert context.specialized_terms == ("Kubernetes", "PySide6")


def test_start_while_processing_is_noop() -> None:
    h = Harness()
    observed: list[bool] = []

    async def try_start_mid_flight() -> None:
        before = h.controller.state
        observed.append(await h.controller.start())
        assert h.controller.state == before

    h.transcriber.hook = try_start_mid_flight
    asyncio.run(h.record_and_stop())

    assert observed == [False]
    assert h.session.starts == 1
    assert h.document.text == "HELLO WORLD"


def test_toggle_while_processing_is_noop() -> None:
    h = Harness()
    results: list[object] = []

    async def toggle_mid_flight() -> None:
        results.append(await h.controller.toggle())

    h.transcriber.hook = toggle_mid_flight
    asyncio.run(h.record_and_stop())

    assert results == [None]
    assert h.session.starts == 1


def test_second_start_while_recording_is_noop() -> None:
    h = Harness()

    async def scenario() -> None:
        assert await h.controller.start() is True
        assert await h.controller.start() is False

    asyncio.run(scenario())
    assert h.session.starts == 1
    assert h.controller.state.is_recording


def test_missing_api_key_blocks_recording() -> None:
    h = Harness(api_key="")
    started = asyncio.run(h.controller.start())

    assert started is False
    assert h.session.starts == 0
    assert h.controller.current_error[0] == NO_API_KEY
    assert h.controller.needs_settings is True


def test_device_errors_are_preflight() -> None:
    for code in (PERMISSION_DENIED, DEVICE_UNAVAILABLE):
        h = Harness(session=FakeSession(start_error=RecorderError(code, "nope")))
        started = asyncio.run(h.controller.start())

        assert started is False
        assert h.controller.state.kind == StateKind.ERROR
        assert h.controller.state.code == code
        assert not any(t.is_recording for _, t in h.transitions)


def test_new_start_clears_previous_error() -> None:
    h = Harness(session=FakeSession(audio=b""))

    async def scenario() -> None:
        await h.controller.start()
        await h.controller.stop()
        assert h.controller.current_error is not None
        h.session.audio = b"RIFF"
        await h.controller.start()

    asyncio.run(scenario())
    assert h.controller.state.is_recording
    assert h.controller.current_error is None


def test_newer_error_overwrites_older_one() -> None:
    h = Harness(session=FakeSession(audio=b""))

    async def scenario() -> None:
        await h.record_and_stop()
        h.settings.values["api_key"] = ""
        await h.controller.start()

    asyncio.run(scenario())
    assert h.controller.current_error[0] == NO_API_KEY


def test_stop_while_idle_is_noop() -> None:
    h = Harness()
    assert asyncio.run(h.controller.stop()) is None
    assert h.transitions == []


def test_unexpected_exception_releases_device() -> None:
    h = Harness()

    async def explode() -> None:
        raise RuntimeError("kaboom")

    h.transcriber.hook = explode
    outcome = asyncio.run(h.record_and_stop())

    assert outcome.error == PROCESSING_ERROR
    assert h.controller.state.kind == StateKind.ERROR
    assert h.session.device_held is False


def test_chord_events_drive_pipeline() -> None:
    h = Harness()

    async def scenario() -> list[ChordCommand]:
        commands = [
            await h.controller.handle_key_event(KeyEvent(KeyRole.MODIFIER, True, 50_000)),
            await h.controller.handle_key_event(KeyEvent(KeyRole.TRIGGER, True, 50_100)),
            await h.controller.handle_key_event(KeyEvent(KeyRole.MODIFIER, False, 52_000)),
        ]
        return commands

    commands = asyncio.run(scenario())

    assert commands == [ChordCommand.IGNORE, ChordCommand.START, ChordCommand.STOP]
    assert h.document.text == "HELLO WORLD"
    assert h.controller.state == RecordingState.idle()


def test_chord_ignored_without_api_key() -> None:
    h = Harness(api_key="")

    async def scenario() -> ChordCommand:
        await h.controller.handle_key_event(KeyEvent(KeyRole.MODIFIER, True, 50_000))
        return await h.controller.handle_key_event(KeyEvent(KeyRole.TRIGGER, True, 50_100))

    assert asyncio.run(scenario()) == ChordCommand.IGNORE
    assert h.session.starts == 0


def test_shutdown_releases_device_while_recording() -> None:
    h = Harness()

    async def scenario() -> None:
        await h.controller.start()
        await h.controller.shutdown()

    asyncio.run(scenario())
    assert h.session.device_held is False
    assert h.controller.state == RecordingState.idle()


def test_dismiss_error_returns_to_idle() -> None:
    h = Harness(api_key="")
    asyncio.run(h.controller.start())
    h.controller.dismiss_error()
    assert h.controller.state == RecordingState.idle()


class _Key:
    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return self._name


def test_held_chord_with_auto_repeat_records_once() -> None:
    h = Harness()
    clock = iter([50_000, 50_100, 50_700, 51_000])
    listener = GlobalChordListener("Key.ctrl_l", "Key.space", clock=lambda: next(clock))
    ctrl, space = _Key("Key.ctrl_l"), _Key("Key.space")
    raw = [
        (ctrl, True),
        (space, True),
        (space, True),  # OS auto-repeat while the chord is held
        (space, True),
        (space, True),
        (space, False),
        (ctrl, False),
    ]

    async def scenario() -> list[ChordCommand]:
        commands = []
        for key, pressed in raw:
            event = listener._translate(key, pressed)
            if event is not None:
                commands.append(await h.controller.handle_key_event(event))
        return commands

    commands = asyncio.run(scenario())

    assert commands == [ChordCommand.IGNORE, ChordCommand.START, ChordCommand.IGNORE, ChordCommand.STOP]
    assert h.session.starts == 1
    assert h.session.stops == 1
    assert h.document.text == "HELLO WORLD"
    assert h.controller.state == RecordingState.idle()


class GatedSession(FakeSession):
    """Session whose device open waits until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate: Optional[asyncio.Event] = None

    async def start(self) -> None:
        assert self.gate is not None
        await self.gate.wait()
        await super().start()


def test_modifier_released_while_device_opens_stops_recording() -> None:
    session = GatedSession()
    h = Harness(session=session)

    async def scenario() -> list[ChordCommand]:
        session.gate = asyncio.Event()
        commands = [await h.controller.handle_key_event(KeyEvent(KeyRole.MODIFIER, True, 50_000))]
        pressed = asyncio.create_task(h.controller.handle_key_event(KeyEvent(KeyRole.TRIGGER, True, 50_100)))
        await asyncio.sleep(0)
        commands.append(await h.controller.handle_key_event(KeyEvent(KeyRole.MODIFIER, False, 50_300)))
        session.gate.set()
        commands.insert(1, await pressed)
        return commands

    commands = asyncio.run(scenario())

    assert commands == [ChordCommand.IGNORE, ChordCommand.START, ChordCommand.STOP]
    assert session.starts == 1
    assert session.stops == 1
    assert session.device_held is False
    assert h.document.text == "HELLO WORLD"
    assert h.controller.state == RecordingState.idle()
