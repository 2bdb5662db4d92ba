"""Global chord key source based on pynput."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from models import KeyEvent, KeyRole

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)

_CTRL_NAMES = frozenset({"Key.ctrl", "Key.ctrl_l", "Key.ctrl_r"})


def now_ms() -> int:
    return int(time.monotonic() * 1000)


class GlobalChordListener:
    """Turns raw pynput key callbacks into modifier/trigger ``KeyEvent``s.

    OS auto-repeat of a held key is collapsed: only the pressed/released
    edges of the modifier and the trigger are reported.
    """

    def __init__(
        self,
        modifier_name: str = "Key.ctrl_l",
        trigger_name: str = "Key.space",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if modifier_name in _CTRL_NAMES:
            self._modifier_names = _CTRL_NAMES
        else:
            self._modifier_names = frozenset({modifier_name})
        self._trigger_name = trigger_name
        self._clock = clock
        self._listener: Optional[object] = None
        self._down = {KeyRole.MODIFIER: False, KeyRole.TRIGGER: False}
        self._lock = threading.Lock()

    def classify(self, key: object) -> KeyRole:
        name = str(key)
        if name in self._modifier_names:
            return KeyRole.MODIFIER
        if name == self._trigger_name or name == f"'{self._trigger_name}'":
            return KeyRole.TRIGGER
        return KeyRole.OTHER

    def start(self, on_event: Callable[[KeyEvent], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        def _on_press(key: object) -> None:
            event = self._translate(key, pressed=True)
            if event is not None:
                on_event(event)

        def _on_release(key: object) -> None:
            event = self._translate(key, pressed=False)
            if event is not None:
                on_event(event)

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()
        logger.info("Chord listener started (%s + %s)", sorted(self._modifier_names)[0], self._trigger_name)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def _translate(self, key: object, pressed: bool) -> Optional[KeyEvent]:
        role = self.classify(key)
        if role == KeyRole.OTHER:
            return None
        with self._lock:
            if self._down[role] == pressed:
                return None
            self._down[role] = pressed
        return KeyEvent(role=role, pressed=pressed, timestamp_ms=self._clock())
