# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import tabsession  # noqa: F401
except ImportError:
    raise ImportError("tabsession is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from tabsession.config import TabConfig
from tabsession.context import TabContext
from tests._fakes import FakeBrowserContext


@pytest.fixture
def fast_config(tmp_path) -> TabConfig:
    """Millisecond-scale timings so timeout paths run quickly."""
    return TabConfig(
        default_timeout_ms=200,
        navigation_check_interval_ms=10,
        stale_navigation_ms=400,
        load_state_timeout_ms=100,
        download_grace_ms=100,
        download_settle_ms=0,
        completion_timeout_ms=300,
        completion_settle_ms=0,
        selector_timeout_ms=200,
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def browser_context() -> FakeBrowserContext:
    return FakeBrowserContext()


@pytest.fixture
def tab_context(browser_context, fast_config) -> TabContext:
    return TabContext(browser_context, fast_config)


@pytest.fixture
async def tab(tab_context):
    return await tab_context.new_tab()


@pytest.fixture
def page(tab):
    return tab.page
