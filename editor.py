"""Editor window: the document surface plus record/copy/clear controls."""

from __future__ import annotations

from concurrent.futures import Future
from typing import Callable, TypeVar

from models import ProcessingStage, RecordingState, Selection, StateKind

try:
    from PySide6.QtCore import QObject, Qt, QThread, Signal
    from PySide6.QtGui import QTextCursor
    from PySide6.QtWidgets import (
        QHBoxLayout,
        QLabel,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception:  # pragma: no cover
    QObject = object  # type: ignore
    Qt = None  # type: ignore
    QThread = None  # type: ignore
    Signal = None  # type: ignore
    QTextCursor = None  # type: ignore
    QHBoxLayout = None  # type: ignore
    QLabel = None  # type: ignore
    QPlainTextEdit = None  # type: ignore
    QPushButton = None  # type: ignore
    QVBoxLayout = None  # type: ignore
    QWidget = object  # type: ignore

_ERROR_STYLE = "color: #FF6B6B; font-family: monospace;"
_WARNING_STYLE = "color: #E0A030; font-family: monospace;"
_STATUS_STYLE = "color: #888888; font-family: monospace;"

T = TypeVar("T")

_STAGE_TEXT = {
    ProcessingStage.TRANSCRIBING: "Transcribing...",
    ProcessingStage.ENHANCING: "Enhancing...",
}


def status_text(state: RecordingState) -> str:
    if state.kind == StateKind.RECORDING:
        return "Recording... release Ctrl+Space or click to stop"
    if state.kind == StateKind.PROCESSING and state.stage is not None:
        return _STAGE_TEXT[state.stage]
    return "Click Record or hold Ctrl+Space to dictate"


def utf16_to_index(text: str, position: int) -> int:
    """Qt cursor position (UTF-16 code units) -> index into the Python str."""
    units = 0
    for index, char in enumerate(text):
        if units >= position:
            return index
        units += 2 if ord(char) > 0xFFFF else 1
    return len(text)


def index_to_utf16(text: str, index: int) -> int:
    prefix = text[:index]
    return len(prefix) + sum(1 for char in prefix if ord(char) > 0xFFFF)


class EditorSurface(QObject):
    """Editing surface over a QPlainTextEdit for the insertion step.

    ``selection`` and ``apply`` touch the widget and must run on the UI
    thread. ``run_exclusive`` hands the whole insertion to the UI thread and
    blocks the caller until it has run, so no keystroke can land between
    reading the buffer and applying the merge. Offsets are Python string
    indices on this side and UTF-16 positions on the Qt side.
    """

    if Signal is not None:
        _run_requested = Signal(object, object)

    def __init__(self, editor: "QPlainTextEdit") -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self._editor = editor
        self._run_requested.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def run_exclusive(self, action: Callable[[], T]) -> T:
        if QThread.currentThread() == self.thread():
            return action()
        future: Future = Future()
        self._run_requested.emit(action, future)
        return future.result()

    def selection(self) -> Selection:
        text = self._editor.toPlainText()
        cursor = self._editor.textCursor()
        return Selection(
            utf16_to_index(text, cursor.selectionStart()),
            utf16_to_index(text, cursor.selectionEnd()),
        )

    def apply(self, text: str, cursor: int) -> None:
        if self._editor.toPlainText() != text:
            self._editor.setPlainText(text)
        position = index_to_utf16(text, min(cursor, len(text)))
        qt_cursor = self._editor.textCursor()
        qt_cursor.setPosition(position, QTextCursor.MoveMode.MoveAnchor)
        self._editor.setTextCursor(qt_cursor)
        self._editor.setFocus()

    def _run(self, action: Callable[[], object], future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(action())
        except Exception as exc:
            future.set_exception(exc)


class EditorWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowTitle("Dictapad")
        self.resize(760, 560)

        self.key_prompt = QLabel(
            "To enable voice-to-text transcription, add your DashScope API key in Settings."
        )
        self.key_prompt.setWordWrap(True)
        self.key_prompt.setStyleSheet(_WARNING_STYLE)
        self.key_prompt.hide()

        self.editor = QPlainTextEdit()
        self.editor.setPlaceholderText("Start typing or dictate...")
        self.surface = EditorSurface(self.editor)

        self.record_button = QPushButton("Record")
        self.copy_button = QPushButton("Copy")
        self.clear_button = QPushButton("Clear")
        self.settings_button = QPushButton("Settings")

        buttons = QHBoxLayout()
        buttons.addWidget(self.record_button)
        buttons.addStretch(1)
        buttons.addWidget(self.copy_button)
        buttons.addWidget(self.clear_button)
        buttons.addWidget(self.settings_button)

        self._status = QLabel(status_text(RecordingState.idle()))
        self._status.setStyleSheet(_STATUS_STYLE)
        self._error = QLabel("")
        self._error.setWordWrap(True)
        self._error.setStyleSheet(_ERROR_STYLE)
        self._warning = QLabel("")
        self._warning.setWordWrap(True)
        self._warning.setStyleSheet(_WARNING_STYLE)

        layout = QVBoxLayout()
        layout.addWidget(self.key_prompt)
        layout.addWidget(self.editor, 1)
        layout.addWidget(self._status)
        layout.addWidget(self._error)
        layout.addWidget(self._warning)
        layout.addLayout(buttons)
        self.setLayout(layout)

    def set_document(self, text: str) -> None:
        self.editor.setPlainText(text)
        cursor = self.editor.textCursor()
        cursor.movePosition(QTextCursor.MoveOperation.End)
        self.editor.setTextCursor(cursor)

    def set_api_key_present(self, present: bool) -> None:
        self.key_prompt.setVisible(not present)
        self.record_button.setEnabled(present)

    def show_state(self, state: RecordingState) -> None:
        self._status.setText(status_text(state))
        self.record_button.setText("Stop" if state.kind == StateKind.RECORDING else "Record")
        self.record_button.setEnabled(state.kind != StateKind.PROCESSING)
        if state.kind == StateKind.ERROR:
            self._error.setText(state.message)
        else:
            self._error.setText("")
        if state.kind == StateKind.RECORDING:
            self._warning.setText("")

    def show_warning(self, text: str) -> None:
        self._warning.setText(text)

    def flash_status(self, text: str) -> None:
        self._status.setText(text)
