"""Simple JSON-based settings store."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

API_KEY = "api_key"
SPECIALIZED_TERMS = "specialized_terms"
LANGUAGE = "language"
CUSTOM_INSTRUCTIONS = "custom_instructions"
HOTKEY_MODIFIER = "hotkey_modifier"
HOTKEY_TRIGGER = "hotkey_trigger"

AUTO_LANGUAGE = "auto"
SUPPORTED_LANGUAGES = ("auto", "en", "de", "fr", "es", "it", "pt", "nl", "zh", "ja", "ko", "ru")


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "dictapad" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: str = "") -> str:
        with self._lock:
            value = self._read_all().get(key)
        if value is None:
            return default
        return str(value)

    def set(self, key: str, value: str) -> None:
        # the editor (UI thread) and the pipeline (loop thread) both write
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def get_api_key(self) -> str:
        return self.get(API_KEY) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self.set(API_KEY, key.strip())

    def has_api_key(self) -> bool:
        return bool(self.get_api_key().strip())

    def get_specialized_terms(self) -> list[str]:
        raw = self.get(SPECIALIZED_TERMS)
        if not raw:
            return []
        try:
            terms = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed specialized terms in %s", self._path)
            return []
        if not isinstance(terms, list):
            return []
        return _dedupe(str(t) for t in terms)

    def set_specialized_terms(self, terms: list[str]) -> None:
        self.set(SPECIALIZED_TERMS, json.dumps(_dedupe(terms), ensure_ascii=False))

    def add_specialized_term(self, term: str) -> list[str]:
        terms = self.get_specialized_terms()
        term = term.strip()
        if term and term not in terms:
            terms.append(term)
            self.set_specialized_terms(terms)
        return terms

    def remove_specialized_term(self, term: str) -> list[str]:
        terms = [t for t in self.get_specialized_terms() if t != term]
        self.set_specialized_terms(terms)
        return terms

    def get_language(self) -> str:
        return self.get(LANGUAGE, AUTO_LANGUAGE) or AUTO_LANGUAGE

    def set_language(self, language: str) -> None:
        self.set(LANGUAGE, language or AUTO_LANGUAGE)

    def get_custom_instructions(self) -> str:
        return self.get(CUSTOM_INSTRUCTIONS)

    def set_custom_instructions(self, instructions: str) -> None:
        self.set(CUSTOM_INSTRUCTIONS, instructions)

    def get_hotkey_modifier(self) -> str:
        return self.get(HOTKEY_MODIFIER, "Key.ctrl_l")

    def get_hotkey_trigger(self) -> str:
        return self.get(HOTKEY_TRIGGER, "Key.space")

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _dedupe(terms) -> list[str]:  # noqa: ANN001
    seen: list[str] = []
    for term in terms:
        term = term.strip()
        if term and term not in seen:
            seen.append(term)
    return seen
