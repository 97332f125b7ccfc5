# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright launcher that hands out a ready :class:`TabContext`.

    async with BrowserSession(BrowserConfig(headless=True)) as session:
        tab = await session.tabs.ensure_tab()
        await tab.navigate("https://example.com")
        snapshot = await tab.capture_snapshot()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field

from playwright.async_api import Browser, Playwright, async_playwright

from .config import TabConfig
from .context import TabContext
from .errors import BrowserError

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"


@dataclass
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    locale: str = DEFAULT_LOCALE
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str | None = None  # None keeps the driver's own UA
    tab: TabConfig = field(default_factory=TabConfig.from_env)


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    return [
        "--disable-blink-features=AutomationControlled",
        f"--lang={config.locale}",
        "--disable-dev-shm-usage",
        "--no-first-run",
        "--disable-background-networking",
        "--disable-sync",
        "--disable-breakpad",
        "--noerrdialogs",
    ]


class BrowserSession:
    """Owns the Playwright driver, one Chromium process and its TabContext."""

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._tabs: TabContext | None = None

    @property
    def tabs(self) -> TabContext:
        if self._tabs is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._tabs

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=chromium_launch_args(self.config),
            )
        except Exception as exc:
            await self._playwright.stop()
            self._playwright = None
            if "executable doesn't exist" in str(exc).lower():
                raise BrowserError("Chromium is not installed. Please run: playwright install chromium") from exc
            raise BrowserError(f"Chromium launch failed: {exc}") from exc

        context_kwargs: dict = {
            "viewport": {"width": self.config.viewport_width, "height": self.config.viewport_height},
            "locale": self.config.locale,
            "accept_downloads": True,
        }
        if self.config.user_agent:
            context_kwargs["user_agent"] = self.config.user_agent
        browser_context = await self._browser.new_context(**context_kwargs)
        self._tabs = TabContext(browser_context, self.config.tab)
        logger.info("Browser session started (headless=%s)", self.config.headless)

    async def stop(self) -> None:
        """Close tabs, browser and driver. Safe to call on a crashed browser."""
        if self._tabs is not None:
            await self._tabs.close()
            self._tabs = None
        if self._browser is not None:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Browser session stopped")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()


@asynccontextmanager
async def create_session(config: BrowserConfig | None = None) -> AsyncGenerator[BrowserSession, None]:
    """Context manager to create and manage a browser session."""
    session = BrowserSession(config)
    await session.start()
    try:
        yield session
    finally:
        await session.stop()
