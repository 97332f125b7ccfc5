# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Console message records captured from page console and page errors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage as PlaywrightConsoleMessage
    from playwright.async_api import Error as PlaywrightError


@dataclass(frozen=True, slots=True)
class ConsoleMessage:
    """Immutable console entry.

    ``type`` is None for uncaught page errors. ``rendered`` is the form
    shown to callers (``str(message)``).
    """

    type: str | None
    text: str
    rendered: str

    def __str__(self) -> str:
        return self.rendered

    @classmethod
    def from_console(cls, message: PlaywrightConsoleMessage) -> ConsoleMessage:
        location = message.location or {}
        rendered = (
            f"[{message.type.upper()}] {message.text} @ {location.get('url', '')}:{location.get('lineNumber', 0)}"
        )
        return cls(type=message.type, text=message.text, rendered=rendered)

    @classmethod
    def from_page_error(cls, error: PlaywrightError) -> ConsoleMessage:
        text = error.message
        return cls(type=None, text=text, rendered=error.stack or text)
