"""Modifier + trigger chord detection.

``detect`` is a pure function of the current ``ChordState``, one ``KeyEvent``
and the pipeline state; it returns the new chord state and the command to
issue. ``ChordDetector`` just keeps the state between calls.

A trigger press that arrives between 500 and 1000 ms after the previous one
is ignored while anything before or after that window starts recording.
"""

from __future__ import annotations

from models import ChordCommand, ChordState, KeyEvent, KeyRole, RecordingState

REPRESS_WINDOW_MS = 500
DEAD_ZONE_END_MS = 1000


def detect(
    state: ChordState,
    event: KeyEvent,
    recording_state: RecordingState,
    *,
    enabled: bool = True,
) -> tuple[ChordState, ChordCommand]:
    if event.role == KeyRole.MODIFIER:
        if event.pressed:
            return ChordState(True, state.last_activation_ms), ChordCommand.IGNORE
        released = ChordState(False, state.last_activation_ms)
        if recording_state.is_recording:
            return released, ChordCommand.STOP
        return released, ChordCommand.IGNORE

    if event.role != KeyRole.TRIGGER or not event.pressed:
        return state, ChordCommand.IGNORE

    if not state.modifier_held or not enabled or recording_state.is_processing:
        return state, ChordCommand.IGNORE

    now = event.timestamp_ms
    fired = ChordState(True, now)
    if recording_state.is_recording:
        return fired, ChordCommand.STOP

    delta = now - state.last_activation_ms
    if delta < REPRESS_WINDOW_MS or delta >= DEAD_ZONE_END_MS:
        return fired, ChordCommand.START
    return fired, ChordCommand.IGNORE


class ChordDetector:
    def __init__(self, state: ChordState | None = None) -> None:
        self._state = state or ChordState()

    @property
    def state(self) -> ChordState:
        return self._state

    def feed(
        self,
        event: KeyEvent,
        recording_state: RecordingState,
        *,
        enabled: bool = True,
    ) -> ChordCommand:
        self._state, command = detect(self._state, event, recording_state, enabled=enabled)
        return command
