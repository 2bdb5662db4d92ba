"""Settings dialog: API key, specialized terms, language, custom instructions."""

from __future__ import annotations

from config import API_KEY, SUPPORTED_LANGUAGES, JsonConfigStore

try:
    from PySide6.QtWidgets import (
        QComboBox,
        QDialog,
        QDialogButtonBox,
        QFormLayout,
        QHBoxLayout,
        QLineEdit,
        QListWidget,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
    )
except Exception:  # pragma: no cover
    QDialog = object  # type: ignore
    QComboBox = None  # type: ignore


class SettingsDialog(QDialog):
    def __init__(self, store: JsonConfigStore) -> None:
        if QComboBox is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowTitle("Settings")
        self._store = store

        # stored value only, not the environment fallback
        self._api_key = QLineEdit(store.get(API_KEY))
        self._api_key.setEchoMode(QLineEdit.EchoMode.Password)
        self._api_key.setPlaceholderText("sk-...")

        self._language = QComboBox()
        self._language.addItems(list(SUPPORTED_LANGUAGES))
        current = store.get_language()
        if current in SUPPORTED_LANGUAGES:
            self._language.setCurrentText(current)

        self._terms = QListWidget()
        self._terms.addItems(store.get_specialized_terms())
        self._new_term = QLineEdit()
        self._new_term.setPlaceholderText("Add a specialized term")
        self._new_term.returnPressed.connect(self._add_term)
        add_button = QPushButton("Add")
        add_button.clicked.connect(self._add_term)
        remove_button = QPushButton("Remove")
        remove_button.clicked.connect(self._remove_term)
        term_row = QHBoxLayout()
        term_row.addWidget(self._new_term, 1)
        term_row.addWidget(add_button)
        term_row.addWidget(remove_button)

        self._instructions = QPlainTextEdit(store.get_custom_instructions())
        self._instructions.setPlaceholderText("e.g. Use British spelling.")

        form = QFormLayout()
        form.addRow("DashScope API key", self._api_key)
        form.addRow("Language", self._language)
        form.addRow("Specialized terms", self._terms)
        form.addRow("", term_row)
        form.addRow("Custom instructions", self._instructions)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Save | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self._save)
        buttons.rejected.connect(self.reject)

        layout = QVBoxLayout()
        layout.addLayout(form)
        layout.addWidget(buttons)
        self.setLayout(layout)

    def _add_term(self) -> None:
        # terms are saved right away, like the terms list in the web settings
        term = self._new_term.text()
        if term.strip():
            self._show_terms(self._store.add_specialized_term(term))
        self._new_term.clear()

    def _remove_term(self) -> None:
        terms = self._store.get_specialized_terms()
        for item in self._terms.selectedItems():
            terms = self._store.remove_specialized_term(item.text())
        self._show_terms(terms)

    def _show_terms(self, terms: list[str]) -> None:
        self._terms.clear()
        self._terms.addItems(terms)

    def _save(self) -> None:
        self._store.set_api_key(self._api_key.text())
        self._store.set_language(self._language.currentText())
        self._store.set_custom_instructions(self._instructions.toPlainText())
        self.accept()
