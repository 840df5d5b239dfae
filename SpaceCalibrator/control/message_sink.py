"""Append-only human readable progress log of a calibration run."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class MessageSink:
    """Collects progress text and forwards each completed line to logging.

    Messages are free-form fragments; a calibration emits one "." per
    collected sample, so only text up to a newline is logged.
    """

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger
        self._chunks: list[str] = []
        self._pending = ""

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def lines(self) -> list[str]:
        return [line for line in self.text.splitlines() if line]

    def message(self, text: str) -> None:
        self._chunks.append(text)
        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            if line:
                self._log.info("[CAL] %s", line)

    def clear(self) -> None:
        self._chunks.clear()
        self._pending = ""
