"""Cursor-aware insertion of delivered text into the document."""

from __future__ import annotations

import logging

from interfaces import DocumentStore, EditingSurface
from models import InsertionResult, Selection

logger = logging.getLogger(__name__)


def clamp_selection(selection: Selection, length: int) -> Selection:
    start = max(0, min(selection.start, length))
    end = max(start, min(selection.end, length))
    return Selection(start, end)


def merge_text(buffer: str, selection: Selection, text: str) -> InsertionResult:
    """Replace ``selection`` in ``buffer`` with ``text``.

    A single space is put in front of ``text`` when the character before the
    insertion point is not whitespace.
    """
    sel = clamp_selection(selection, len(buffer))
    spacer = ""
    if sel.start > 0 and not buffer[sel.start - 1].isspace():
        spacer = " "
    merged = buffer[: sel.start] + spacer + text + buffer[sel.end :]
    cursor = sel.start + len(spacer) + len(text)
    return InsertionResult(text=merged, cursor=cursor, spacer_inserted=bool(spacer))


class InsertionStrategy:
    def __init__(self, document: DocumentStore, surface: EditingSurface) -> None:
        self._document = document
        self._surface = surface

    def insert(self, text: str) -> InsertionResult:
        # Read, merge, persist and apply as one step on the surface's side so
        # keystrokes typed while the pipeline ran are neither merged stale nor
        # overwritten.
        return self._surface.run_exclusive(lambda: self._merge_and_apply(text))

    def _merge_and_apply(self, text: str) -> InsertionResult:
        buffer = self._document.read()
        selection = self._surface.selection()
        result = merge_text(buffer, selection, text)
        self._document.write(result.text)
        self._surface.apply(result.text, result.cursor)
        logger.debug(
            "Inserted %d chars at %d (spacer=%s), cursor -> %d",
            len(text),
            clamp_selection(selection, len(buffer)).start,
            result.spacer_inserted,
            result.cursor,
        )
        return result
