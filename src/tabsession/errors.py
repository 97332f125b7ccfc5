# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tab session exception hierarchy.

All package errors inherit from TabSessionError. Genuine navigation
failures are not wrapped: the driver's own ``playwright.async_api.Error``
propagates unchanged so callers see the original message.
"""

from __future__ import annotations

import json
from collections.abc import Sequence


class TabSessionError(Exception):
    """Base exception for all tab session errors."""


class BrowserError(TabSessionError):
    """Browser launch or context creation failure."""


class NavigationError(TabSessionError):
    """Navigation request rejected before reaching the driver."""


class TabClosedError(NavigationError):
    """Operation issued on a tab whose page has been closed."""


class NoActiveTabError(TabSessionError):
    """No tab is open in the context."""


class SelectorResolutionError(TabSessionError):
    """One or more selector alternatives could not be located.

    The message names the element and carries every alternative's error
    plus any suggested replacement selectors so the caller can retry.
    """

    def __init__(
        self,
        message: str,
        *,
        element: str = "",
        errors: Sequence[str] = (),
        alternatives: Sequence[dict] = (),
    ) -> None:
        super().__init__(message)
        self.element = element
        self.errors = list(errors)
        self.alternatives = list(alternatives)

    @classmethod
    def for_element(cls, element: str, error: str | None, alternatives: Sequence[dict] | None) -> SelectorResolutionError:
        """Build the error raised when a single labelled element fails to resolve."""
        message = f'Failed to resolve selector for element "{element}": {error or "Unknown error"}'
        if alternatives:
            message += f". Alternatives: {json.dumps(list(alternatives))}"
        return cls(message, element=element, errors=[error or "Unknown error"], alternatives=alternatives or ())
