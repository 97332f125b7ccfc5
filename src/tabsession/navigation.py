# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Navigation tracker: is the tab's main frame navigating right now?

Fed by driver lifecycle events (``framenavigated`` on the main frame,
``domcontentloaded``, ``load``). The flag self-heals: a navigation whose
``load`` never arrives is reported as finished once it goes stale, and
waiters are always released by the watcher timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .config import TabConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NavigationState:
    """Point-in-time view of the tracker."""

    is_navigating: bool
    last_navigation_start: float
    pending: bool  # a completion watcher is still running


class NavigationTracker:
    """Small state machine over navigation start/complete events."""

    def __init__(self, config: TabConfig | None = None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._config = config or TabConfig()
        self._clock = clock
        self._is_navigating = False
        self._last_navigation_start = 0.0
        self._watcher: asyncio.Task | None = None

    def on_navigation_start(self) -> None:
        """Main frame started navigating: mark busy and start a fresh watcher."""
        self._is_navigating = True
        self._last_navigation_start = self._clock()
        self._watcher = asyncio.get_running_loop().create_task(self._watch())

    def on_navigation_progress(self) -> None:
        """DOMContentLoaded: the navigation is still under way."""
        self._is_navigating = True

    def on_navigation_complete(self) -> None:
        self._is_navigating = False

    def is_navigating(self) -> bool:
        if self._is_navigating and self._elapsed() > self._config.stale_navigation_s:
            logger.debug("Navigation flag stale after %.1fs, clearing", self._elapsed())
            self._is_navigating = False
        return self._is_navigating

    async def wait_for_navigation_complete(self) -> None:
        """Suspend until the current watcher resolves (immediately if none)."""
        watcher = self._watcher
        if watcher is None:
            return
        # Shielded: a cancelled waiter must not kill the watcher other waiters share
        await asyncio.shield(watcher)

    @property
    def state(self) -> NavigationState:
        watcher = self._watcher
        return NavigationState(
            is_navigating=self._is_navigating,
            last_navigation_start=self._last_navigation_start,
            pending=watcher is not None and not watcher.done(),
        )

    def close(self) -> None:
        """Tab closed: clear the flag so the watcher releases waiters on its next poll."""
        self._is_navigating = False

    def _elapsed(self) -> float:
        return self._clock() - self._last_navigation_start

    async def _watch(self) -> None:
        interval = self._config.check_interval_s
        ceiling = self._config.navigation_settle_s
        while True:
            await asyncio.sleep(interval)
            if not self._is_navigating:
                return
            if self._elapsed() > ceiling:
                logger.debug("Navigation did not report load within %.1fs, releasing waiters", ceiling)
                self._is_navigating = False
                return
