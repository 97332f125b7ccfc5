# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Accessibility snapshot capture, landmark scoping and truncation.

The driver serializes the accessibility tree as indented YAML-like lines::

    - banner [ref=e2]:
      - link "Home" [ref=e3]
    - main [ref=e4]:
      - heading "Title" [level=1] [ref=e5]

A partial snapshot keeps one landmark line plus its more-deeply-indented
subtree, re-indented so the landmark starts at column 0. An unknown
landmark yields the full tree unchanged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .artifacts import DownloadEntry
from .console import ConsoleMessage
from .modal import ModalState

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

# HTML landmark name -> ARIA role used in the serialized tree
LANDMARK_ROLES: dict[str, str] = {
    "main": "main",
    "header": "banner",
    "footer": "contentinfo",
    "nav": "navigation",
    "aside": "complementary",
    "section": "region",
    "article": "article",
}

# Maximum distance (chars) to walk back looking for a word boundary
WORD_BOUNDARY_LOOKBACK = 20

_BOUNDARY_CHARS = (" ", "\n")


@dataclass(slots=True)
class TabSnapshot:
    """What the tab looked like, plus artifacts produced since the last snapshot."""

    url: str
    title: str
    aria_snapshot: str
    modal_states: list[ModalState] = field(default_factory=list)
    console_messages: list[ConsoleMessage] = field(default_factory=list)
    downloads: list[DownloadEntry] = field(default_factory=list)

    @property
    def interrupted(self) -> bool:
        """True when a modal state prevented the capture."""
        return bool(self.modal_states)


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


def _role_pattern(role: str) -> re.Pattern[str]:
    # "- main [ref=e3]:", "- main [active] [ref=e1]:", '- navigation "Primary":'
    return re.compile(rf"^- {re.escape(role)}(?=$|[\s\[:\"])")


def extract_partial_snapshot(full_snapshot: str, landmark: str) -> str:
    """Return the subtree of the first line whose role matches ``landmark``.

    ``landmark`` may be an HTML landmark name (``header``) or a raw role
    (``banner``). Falls back to ``full_snapshot`` when nothing matches.
    """
    role = LANDMARK_ROLES.get(landmark, landmark)
    pattern = _role_pattern(role)

    captured: list[str] = []
    capture_indent = -1
    for line in full_snapshot.split("\n"):
        indent = _indent_of(line)
        if not captured:
            if pattern.match(line.strip()):
                captured.append(line)
                capture_indent = indent
            continue
        if indent > capture_indent:
            captured.append(line)
        else:
            break

    if not captured:
        logger.debug("Landmark %r not found in snapshot, returning full snapshot", landmark)
        return full_snapshot

    normalized = []
    for line in captured:
        if not line.strip():
            normalized.append(line)
            continue
        normalized.append(" " * max(0, _indent_of(line) - capture_indent) + line.lstrip())
    return "\n".join(normalized)


def truncate_at_word_boundary(text: str, max_length: int) -> str:
    """Cut ``text`` to at most ``max_length`` characters without splitting a word.

    The cut moves back to the last space or line break before
    ``max_length`` when one exists within :data:`WORD_BOUNDARY_LOOKBACK`
    characters; otherwise it happens exactly at ``max_length``. Trailing
    whitespace is removed.
    """
    if max_length <= 0:
        return ""
    if len(text) <= max_length:
        return text

    cut = max_length
    for i in range(max_length - 1, max(-1, max_length - 1 - WORD_BOUNDARY_LOOKBACK), -1):
        if text[i] in _BOUNDARY_CHARS:
            cut = i
            break

    result = text[:cut].rstrip()
    if not result:
        # Only whitespace before the boundary: keep the hard cut instead
        result = text[:max_length].rstrip()
    return result[:max_length]


class SnapshotEngine:
    """Captures accessibility snapshots from one page.

    Does not touch modal or console state; the owning tab runs
    :meth:`capture` inside its modal race and attaches console messages.
    """

    def __init__(self, page: Page) -> None:
        self._page = page
        self._ref_supported: bool | None = None

    async def full_tree(self) -> str:
        """Serialized accessibility tree of the whole page.

        Prefers the ref-annotated form (``[ref=eN]``) that ``aria-ref``
        selectors resolve against; older drivers lack the keyword.
        """
        root = self._page.locator(":root")
        if self._ref_supported is not False:
            try:
                tree = await root.aria_snapshot(ref=True)
            except TypeError:
                logger.debug("aria_snapshot(ref=True) unsupported, using plain snapshot")
                self._ref_supported = False
            else:
                self._ref_supported = True
                return tree
        return await root.aria_snapshot()

    async def capture(self, landmark: str | None = None, max_length: int | None = None) -> TabSnapshot:
        text = await self.full_tree()
        if landmark:
            text = extract_partial_snapshot(text, landmark)
        if max_length and len(text) > max_length:
            text = truncate_at_word_boundary(text, max_length)
        return TabSnapshot(
            url=self._page.url,
            title=await self._page.title(),
            aria_snapshot=text,
        )


def render_tab_snapshot(snapshot: TabSnapshot) -> str:
    """Markdown view of a snapshot for protocol responses."""
    lines: list[str] = []
    if snapshot.console_messages:
        lines.append("### New console messages")
        lines.extend(f"- {message}" for message in snapshot.console_messages)
        lines.append("")
    if snapshot.downloads:
        lines.append("### Downloads")
        for entry in snapshot.downloads:
            if entry.finished:
                lines.append(f"- Downloaded file {entry.download.suggested_filename} to {entry.output_file}")
            else:
                lines.append(f"- Downloading file {entry.download.suggested_filename} ...")
        lines.append("")
    lines.append("### Page state")
    lines.append(f"- Page URL: {snapshot.url}")
    lines.append(f"- Page Title: {snapshot.title}")
    lines.append("- Page Snapshot:")
    lines.append("```yaml")
    lines.append(snapshot.aria_snapshot)
    lines.append("```")
    return "\n".join(lines)
