# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Selector resolution service: descriptors -> Playwright locators.

Resolution never raises for a missing element; it reports a
``SelectorResolutionResult`` with an error and, where a looser strategy
finds something, suggested alternatives. Batches keep caller order and
run with bounded concurrency.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError

from .config import TabConfig
from .selectors import (
    BatchResolutionOptions,
    CSSSelector,
    ElementSelector,
    RefSelector,
    RoleSelector,
    SelectorResolutionResult,
    TextSelector,
    parse_selector,
)

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)


def _first_line(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message.strip().splitlines()[0] if message.strip() else type(exc).__name__


class SelectorResolver:
    """Resolves element descriptors against one page."""

    def __init__(
        self,
        page: Page,
        *,
        custom_refs: Mapping[str, str] | None = None,
        config: TabConfig | None = None,
    ) -> None:
        self._page = page
        # Live view of the tab's alias table (ref -> CSS selector)
        self._custom_refs: Mapping[str, str] = custom_refs if custom_refs is not None else {}
        self._config = config or TabConfig()

    def _locator_for(self, selector: ElementSelector) -> Locator:
        page = self._page
        if isinstance(selector, RefSelector):
            mapped = self._custom_refs.get(selector.ref)
            if mapped is not None:
                return page.locator(mapped)
            return page.locator(f"aria-ref={selector.ref}")
        if isinstance(selector, RoleSelector):
            if selector.text:
                return page.get_by_role(selector.role, name=selector.text, exact=True)
            return page.get_by_role(selector.role)
        if isinstance(selector, CSSSelector):
            return page.locator(selector.css)
        if isinstance(selector, TextSelector):
            return page.get_by_text(selector.text, exact=selector.exact)
        raise TypeError(f"Unsupported selector type: {type(selector).__name__}")

    async def _count(self, selector: ElementSelector) -> tuple[Locator, int]:
        locator = self._locator_for(selector)
        return locator, await locator.count()

    async def resolve_single_selector(
        self,
        selector: ElementSelector | dict[str, Any],
        *,
        timeout_ms: int | None = None,
    ) -> SelectorResolutionResult:
        """Resolve one descriptor within ``timeout_ms`` (config default)."""
        selector = parse_selector(selector)
        timeout_ms = self._config.selector_timeout_ms if timeout_ms is None else timeout_ms
        described = selector.describe()
        t0 = time.monotonic()

        def _done(result: SelectorResolutionResult) -> SelectorResolutionResult:
            result.elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
            return result

        try:
            async with asyncio.timeout(timeout_ms / 1000):
                locator, count = await self._count(selector)
        except TimeoutError:
            return _done(
                SelectorResolutionResult(
                    selector=selector,
                    error=f"Timed out after {timeout_ms}ms resolving {described}",
                )
            )
        except PlaywrightError as exc:
            return _done(
                SelectorResolutionResult(
                    selector=selector,
                    error=f"Invalid selector {described}: {_first_line(exc)}",
                )
            )

        if count == 0:
            error = f"No elements found for {described}"
            if isinstance(selector, RefSelector):
                error += ". The ref may be stale; capture a new snapshot"
            return _done(
                SelectorResolutionResult(
                    selector=selector,
                    error=error,
                    alternatives=await self._suggest_alternatives(selector),
                )
            )

        if count > 1:
            logger.warning("Ambiguous: %d matches for %s, using first", count, described)
            locator = locator.first
        return _done(
            SelectorResolutionResult(
                selector=selector,
                locator=locator,
                match_count=count,
                description=described,
            )
        )

    async def resolve_selectors(
        self,
        selectors: Sequence[ElementSelector | dict[str, Any]],
        options: BatchResolutionOptions | None = None,
    ) -> list[SelectorResolutionResult]:
        """Resolve every descriptor independently; results keep input order."""
        parsed = [parse_selector(s) for s in selectors]
        if not parsed:
            return []
        options = options or BatchResolutionOptions()
        limit = options.max_concurrency or self._config.selector_concurrency
        semaphore = asyncio.Semaphore(limit)

        async def _one(selector: ElementSelector) -> SelectorResolutionResult:
            async with semaphore:
                return await self.resolve_single_selector(selector, timeout_ms=options.timeout_ms)

        results = await asyncio.gather(*(_one(s) for s in parsed))
        failed = sum(1 for r in results if not r.ok)
        logger.debug("Resolved %d selectors (%d failed)", len(results), failed)
        return list(results)

    async def _suggest_alternatives(self, selector: ElementSelector) -> list[dict]:
        """Looser descriptors that do match something on the page."""
        candidates: list[tuple[ElementSelector, str]] = []
        if isinstance(selector, RoleSelector) and selector.text:
            candidates.append((TextSelector(text=selector.text), f'text "{selector.text}" exists with another role'))
            candidates.append((RoleSelector(role=selector.role), f"role {selector.role} exists with another name"))
        elif isinstance(selector, TextSelector):
            if selector.exact:
                candidates.append((TextSelector(text=selector.text), "partial text match"))
            candidates.append((RoleSelector(role="button", text=selector.text), "button with this name"))
            candidates.append((RoleSelector(role="link", text=selector.text), "link with this name"))

        alternatives: list[dict] = []
        for candidate, reason in candidates:
            try:
                _locator, count = await self._count(candidate)
            except PlaywrightError:
                continue
            if count > 0:
                alternatives.append(
                    {
                        "selector": candidate.model_dump(exclude_none=True, exclude_defaults=True),
                        "reason": reason,
                        "match_count": count,
                    }
                )
        return alternatives
