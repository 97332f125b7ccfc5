# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""TabContext: owns the page -> Tab registry for one BrowserContext.

Tabs are looked up by page identity in an explicit mapping; nothing is
attached to the driver's page objects. The context also decides where
downloads are written.
"""

from __future__ import annotations

import logging
import re
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

from .config import TabConfig
from .errors import NoActiveTabError
from .modal import DEFAULT_MODAL_HANDLERS
from .tab import Tab

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]+")
_MAX_FILENAME_LENGTH = 200


def sanitize_filename(name: str) -> str:
    """Reduce a page-suggested filename to a safe basename."""
    base = Path(name.replace("\\", "/")).name
    base = _UNSAFE_FILENAME_CHARS.sub("_", base).strip("._")
    return base[:_MAX_FILENAME_LENGTH] or "download"


class TabContext:
    """Tracks every tab of a browser context and which one is current."""

    def __init__(
        self,
        browser_context: BrowserContext,
        config: TabConfig | None = None,
        *,
        modal_handlers: dict[str, str] | None = None,
    ) -> None:
        self.browser_context = browser_context
        self.config = config or TabConfig()
        self.modal_handlers = dict(DEFAULT_MODAL_HANDLERS if modal_handlers is None else modal_handlers)
        # Insertion order == tab order
        self._tabs: dict[Page, Tab] = {}
        self._current: Tab | None = None

        browser_context.on("page", self._on_page_created)
        for page in browser_context.pages:
            self._on_page_created(page)

    # ── Registry ─────────────────────────────────────────────────────

    def _on_page_created(self, page: Page) -> Tab:
        tab = self._tabs.get(page)
        if tab is not None:
            return tab
        tab = Tab(self, page, self._on_page_closed, self.config)
        self._tabs[page] = tab
        if self._current is None:
            self._current = tab
        logger.info("Tab opened (%d total)", len(self._tabs))
        return tab

    def _on_page_closed(self, tab: Tab) -> None:
        order = list(self._tabs.values())
        if tab not in order:
            return
        index = order.index(tab)
        del self._tabs[tab.page]
        if self._current is tab:
            remaining = list(self._tabs.values())
            self._current = remaining[min(index, len(remaining) - 1)] if remaining else None
        logger.info("Tab closed (%d remaining)", len(self._tabs))

    @property
    def tabs(self) -> list[Tab]:
        return list(self._tabs.values())

    @property
    def current_tab(self) -> Tab | None:
        return self._current

    def tab_for_page(self, page: Page) -> Tab | None:
        return self._tabs.get(page)

    def require_tab(self) -> Tab:
        if self._current is None:
            raise NoActiveTabError("No open tabs. Navigate to a URL to create one.")
        return self._current

    async def ensure_tab(self) -> Tab:
        if self._current is None:
            return await self.new_tab()
        return self._current

    async def new_tab(self) -> Tab:
        page = await self.browser_context.new_page()
        # The "page" event may not have been dispatched yet
        tab = self._on_page_created(page)
        self._current = tab
        return tab

    def select_tab(self, index: int) -> Tab:
        tabs = self.tabs
        if not 0 <= index < len(tabs):
            raise IndexError(f"Tab {index} not found ({len(tabs)} open)")
        self._current = tabs[index]
        return self._current

    async def close_tab(self, index: int | None = None) -> str:
        """Close a tab (current by default); returns its last URL."""
        if index is None:
            tab = self.require_tab()
        else:
            tabs = self.tabs
            if not 0 <= index < len(tabs):
                raise IndexError(f"Tab {index} not found ({len(tabs)} open)")
            tab = tabs[index]
        url = tab.page.url
        await tab.page.close()
        tab.dispose()
        return url

    # ── Downloads ────────────────────────────────────────────────────

    def output_file(self, name: str) -> Path:
        """Path under ``config.output_dir`` for a page-suggested filename."""
        directory = Path(self.config.output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        return directory / sanitize_filename(name)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close every tab and the browser context. Safe on a crashed browser."""
        for tab in self.tabs:
            with suppress(Exception):
                await tab.page.close()
            tab.dispose()
        with suppress(Exception):
            await self.browser_context.close()
        logger.info("Tab context closed")
