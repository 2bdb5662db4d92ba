"""Application entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from concurrent.futures import Future
from typing import Coroutine

from clipboard import ClipboardService
from config import JsonConfigStore
from document import PersistedDocument
from enhancement import DashscopeEnhancementClient
from hotkey import GlobalChordListener
from insertion import InsertionStrategy
from logging_setup import setup_logging
from models import KeyEvent, RecordingState
from pipeline import PipelineOrchestrator
from recorder import RecordingSession
from transcription import DashscopeTranscriptionClient

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import QApplication
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

from editor import EditorWindow
from settings_dialog import SettingsDialog

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_S = 3.0


class UIBridge(QObject):
    state_signal = Signal(object)  # RecordingState
    warning_signal = Signal(str)


def _run_asyncio_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.document = PersistedDocument()
        self.clipboard = ClipboardService()

        self.window = EditorWindow()
        self.window.set_document(self.document.read())
        self.window.editor.textChanged.connect(self._on_text_changed)
        self.window.record_button.clicked.connect(self._on_record_clicked)
        self.window.copy_button.clicked.connect(self._on_copy_clicked)
        self.window.clear_button.clicked.connect(self._on_clear_clicked)
        self.window.settings_button.clicked.connect(self._open_settings)
        self.window.set_api_key_present(self.config_store.has_api_key())

        self.ui = UIBridge()
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.warning_signal.connect(self.window.show_warning)

        self.controller = PipelineOrchestrator(
            session=RecordingSession(),
            transcriber=DashscopeTranscriptionClient(self.config_store.get_api_key),
            enhancer=DashscopeEnhancementClient(self.config_store.get_api_key),
            settings=self.config_store,
            insertion=InsertionStrategy(self.document, self.window.surface),
            on_state_change=self._on_state_change,
            on_warning=self._on_warning,
        )
        self.hotkey = GlobalChordListener(
            modifier_name=self.config_store.get_hotkey_modifier(),
            trigger_name=self.config_store.get_hotkey_trigger(),
        )

        self.loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=_run_asyncio_loop, args=(self.loop,), daemon=True, name="PipelineLoop"
        )

    def _submit(self, coro: Coroutine) -> Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(_log_failure)
        return future

    # ------------------------------------------------------------------
    # Callbacks (called on the pipeline loop thread → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: RecordingState, to_state: RecordingState) -> None:
        self.ui.state_signal.emit(to_state)

    def _on_warning(self, code: str, message: str) -> None:
        self.ui.warning_signal.emit(message)

    def _on_key_event(self, event: KeyEvent) -> None:
        self._submit(self.controller.handle_key_event(event))

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, state: RecordingState) -> None:
        self.window.show_state(state)
        if self.controller.needs_settings:
            self.window.set_api_key_present(False)

    def _on_text_changed(self) -> None:
        self.document.write(self.window.editor.toPlainText())

    def _on_record_clicked(self) -> None:
        self._submit(self.controller.toggle())

    def _on_copy_clicked(self) -> None:
        result = self.clipboard.copy_text(self.document.read())
        self.window.flash_status("Copied to clipboard" if result.success else f"Copy failed: {result.reason}")

    def _on_clear_clicked(self) -> None:
        self.window.editor.clear()
        self.document.clear()
        self.window.editor.setFocus()

    def _open_settings(self) -> None:
        dialog = SettingsDialog(self.config_store)
        if dialog.exec():
            self.window.set_api_key_present(self.config_store.has_api_key())
            self._submit(_dismiss(self.controller))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self._loop_thread.start()
        try:
            self.hotkey.start(self._on_key_event)
        except Exception as exc:
            logger.warning("Chord listener disabled: %s", exc)
            self.window.show_warning(f"Hotkey disabled: {exc}")
        self.app.aboutToQuit.connect(self.quit)
        self.window.show()
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        try:
            self._submit(self.controller.shutdown()).result(timeout=SHUTDOWN_TIMEOUT_S)
        except Exception:
            logger.exception("Shutdown did not complete cleanly")
        self.loop.call_soon_threadsafe(self.loop.stop)


async def _dismiss(controller: PipelineOrchestrator) -> None:
    controller.dismiss_error()


def _log_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Pipeline task failed", exc_info=exc)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dictation pad with DashScope transcription.")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def main() -> int:
    args = _parse_args()
    setup_logging(verbose=args.verbose)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
