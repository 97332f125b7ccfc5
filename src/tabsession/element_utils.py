# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Helpers shared by interaction tools: first-success resolution, drag pairs,
and snapshot-on-request.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from .errors import SelectorResolutionError

if TYPE_CHECKING:
    from playwright.async_api import Locator

    from .selectors import ElementSelector, SelectorResolutionResult
    from .snapshot import TabSnapshot
    from .tab import Tab


@dataclass(frozen=True, slots=True)
class ElementResolution:
    locator: Locator
    description: str | None = None


class SnapshotOptions(BaseModel):
    landmark: str | None = Field(default=None, description="Region to scope to: main, header, footer, nav, ...")
    max_length: int | None = Field(default=None, gt=0, description="Truncate the snapshot to this many characters")


class SnapshotExpectation(BaseModel):
    """Caller's request for a snapshot after an action."""

    include_snapshot: bool = False
    snapshot_options: SnapshotOptions | None = None


def first_successful(
    results: Sequence[SelectorResolutionResult],
    error_message: str = "Failed to resolve element selectors",
) -> ElementResolution:
    """Pick the first result (caller order) that resolved.

    Raises:
        SelectorResolutionError: every alternative failed; the message joins
            all of their errors.
    """
    for result in results:
        if result.ok:
            return ElementResolution(locator=result.locator, description=result.description)
    errors = [r.error or "Unknown error" for r in results]
    alternatives = [alt for r in results for alt in r.alternatives]
    raise SelectorResolutionError(f"{error_message}: {', '.join(errors)}", errors=errors, alternatives=alternatives)


async def resolve_first_element(
    tab: Tab,
    selectors: Sequence[ElementSelector | dict[str, Any]],
    error_message: str = "Failed to resolve element selectors",
) -> ElementResolution:
    """Resolve alternative descriptors of one element; first success wins."""
    results = await tab.resolve_element_locators(selectors)
    return first_successful(results, error_message)


async def resolve_drag_elements(
    tab: Tab,
    start_selectors: Sequence[ElementSelector | dict[str, Any]],
    end_selectors: Sequence[ElementSelector | dict[str, Any]],
) -> tuple[Locator, Locator]:
    """Resolve drag start and end groups concurrently."""
    start_results, end_results = await asyncio.gather(
        tab.resolve_element_locators(start_selectors),
        tab.resolve_element_locators(end_selectors),
    )
    start = first_successful(start_results, "Failed to resolve start element selectors")
    end = first_successful(end_results, "Failed to resolve end element selectors")
    return start.locator, end.locator


async def capture_for_expectation(
    tab: Tab,
    expectation: SnapshotExpectation | dict[str, Any] | None,
) -> TabSnapshot | None:
    """Capture the snapshot an action's caller asked for, if any."""
    if expectation is None:
        return None
    if not isinstance(expectation, SnapshotExpectation):
        expectation = SnapshotExpectation.model_validate(expectation)
    if not expectation.include_snapshot:
        return None
    options = expectation.snapshot_options or SnapshotOptions()
    if options.landmark or options.max_length:
        return await tab.capture_partial_snapshot(options.landmark, options.max_length)
    return await tab.capture_snapshot()
