# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""tabsession: per-tab coordination layer over Playwright pages.

Tracks navigation, races actions against dialogs and file choosers,
buffers console/network/download artifacts between accessibility
snapshots, and resolves element descriptors into locators.
"""

from __future__ import annotations

from .config import TabConfig
from .console import ConsoleMessage
from .context import TabContext
from .errors import (
    BrowserError,
    NavigationError,
    NoActiveTabError,
    SelectorResolutionError,
    TabClosedError,
    TabSessionError,
)
from .modal import ModalState
from .snapshot import TabSnapshot
from .tab import NavigationResult, Tab, TabState

__all__ = [
    "BrowserError",
    "ConsoleMessage",
    "ModalState",
    "NavigationError",
    "NavigationResult",
    "NoActiveTabError",
    "SelectorResolutionError",
    "Tab",
    "TabClosedError",
    "TabConfig",
    "TabContext",
    "TabSessionError",
    "TabSnapshot",
    "TabState",
]
