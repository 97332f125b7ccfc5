# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Artifact buffer: console, network and download bookkeeping between snapshots.

Entries are appended in driver event order and never reordered. Navigation
clears console and request history; downloads survive navigation because a
download frequently *is* the navigation outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .console import ConsoleMessage

if TYPE_CHECKING:
    from playwright.async_api import Download, Request, Response


@dataclass(slots=True)
class DownloadEntry:
    """A download started by the page.

    ``finished`` flips to True only after ``save_as`` completes.
    """

    download: Download
    output_file: Path
    finished: bool = False


class ArtifactBuffer:
    """Accumulates console messages, requests and downloads for one tab."""

    __slots__ = ("_console", "_recent_console", "_requests", "_downloads")

    def __init__(self) -> None:
        self._console: list[ConsoleMessage] = []
        self._recent_console: list[ConsoleMessage] = []
        self._requests: dict[Request, Response | None] = {}
        self._downloads: list[DownloadEntry] = []

    # ── Console ──────────────────────────────────────────────────────

    def add_console_message(self, message: ConsoleMessage) -> None:
        self._console.append(message)
        self._recent_console.append(message)

    @property
    def console_messages(self) -> list[ConsoleMessage]:
        return list(self._console)

    @property
    def recent_console_count(self) -> int:
        return len(self._recent_console)

    def drain_recent_console(self) -> list[ConsoleMessage]:
        """Return and reset the messages seen since the previous drain."""
        recent = self._recent_console
        self._recent_console = []
        return recent

    # ── Network ──────────────────────────────────────────────────────

    def add_request(self, request: Request) -> None:
        self._requests[request] = None

    def add_response(self, response: Response) -> None:
        # Insertion order is kept when the request was seen first
        self._requests[response.request] = response

    @property
    def requests(self) -> dict[Request, Response | None]:
        return dict(self._requests)

    # ── Downloads ────────────────────────────────────────────────────

    def add_download(self, entry: DownloadEntry) -> None:
        self._downloads.append(entry)

    @property
    def downloads(self) -> list[DownloadEntry]:
        return list(self._downloads)

    def clear(self) -> None:
        """Drop console and request history (navigation, page close)."""
        self._console.clear()
        self._recent_console.clear()
        self._requests.clear()
