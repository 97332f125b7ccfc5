# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for Tab.wait_for_completion: request tracking, navigation, ceiling, modals."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from tests._fakes import FakeFrame, make_dialog

_TRACKED_EVENTS = ("request", "requestfinished", "requestfailed", "framenavigated")


def _listener_counts(page) -> dict[str, int]:
    return {event: page.listener_count(event) for event in _TRACKED_EVENTS}


class TestRequestTracking:
    @pytest.mark.asyncio
    async def test_no_activity_completes(self, tab, page):
        calls = []

        async def action():
            calls.append(1)

        assert await asyncio.wait_for(tab.wait_for_completion(action), timeout=1) == []
        assert calls == [1]
        # Settle wait runs page-side
        page.evaluate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_waits_for_request_to_finish(self, tab, page):
        request = MagicMock()

        async def action():
            page.emit("request", request)

        wait = asyncio.ensure_future(tab.wait_for_completion(action))
        await asyncio.sleep(0.05)
        assert not wait.done()
        page.emit("requestfinished", request)
        assert await asyncio.wait_for(wait, timeout=1) == []

    @pytest.mark.asyncio
    async def test_failed_request_also_releases(self, tab, page):
        request = MagicMock()

        async def action():
            page.emit("request", request)

        wait = asyncio.ensure_future(tab.wait_for_completion(action))
        await asyncio.sleep(0.02)
        page.emit("requestfailed", request)
        assert await asyncio.wait_for(wait, timeout=1) == []

    @pytest.mark.asyncio
    async def test_waits_for_all_requests(self, tab, page):
        first, second = MagicMock(), MagicMock()

        async def action():
            page.emit("request", first)
            page.emit("request", second)

        wait = asyncio.ensure_future(tab.wait_for_completion(action))
        await asyncio.sleep(0.02)
        page.emit("requestfinished", first)
        await asyncio.sleep(0.02)
        assert not wait.done()
        page.emit("requestfinished", second)
        await asyncio.wait_for(wait, timeout=1)

    @pytest.mark.asyncio
    async def test_ceiling_releases_hung_request(self, tab, page, fast_config):
        async def action():
            page.emit("request", MagicMock())

        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await asyncio.wait_for(tab.wait_for_completion(action), timeout=2) == []
        assert loop.time() - started >= fast_config.completion_timeout_ms / 1000 - 0.05

    @pytest.mark.asyncio
    async def test_listeners_removed_afterwards(self, tab, page):
        before = _listener_counts(page)

        async def action():
            page.emit("request", MagicMock())

        await tab.wait_for_completion(action)
        assert _listener_counts(page) == before

    @pytest.mark.asyncio
    async def test_callback_error_propagates_and_cleans_up(self, tab, page):
        before = _listener_counts(page)

        async def action():
            raise RuntimeError("click failed")

        with pytest.raises(RuntimeError, match="click failed"):
            await tab.wait_for_completion(action)
        assert _listener_counts(page) == before


class TestNavigation:
    @pytest.mark.asyncio
    async def test_main_frame_navigation_waits_for_load(self, tab, page):
        async def action():
            page.emit("request", MagicMock())
            page.emit("framenavigated", page.main_frame)

        assert await asyncio.wait_for(tab.wait_for_completion(action), timeout=1) == []
        page.wait_for_load_state.assert_awaited_with("load", timeout=None)

    @pytest.mark.asyncio
    async def test_subframe_navigation_ignored(self, tab, page):
        request = MagicMock()

        async def action():
            page.emit("request", request)
            page.emit("framenavigated", FakeFrame(parent_frame=page.main_frame))

        wait = asyncio.ensure_future(tab.wait_for_completion(action))
        await asyncio.sleep(0.05)
        assert not wait.done()
        page.wait_for_load_state.assert_not_awaited()
        page.emit("requestfinished", request)
        await asyncio.wait_for(wait, timeout=1)


class TestModalInterruption:
    @pytest.mark.asyncio
    async def test_dialog_returns_modal_state(self, tab, page):
        async def action():
            page.emit("dialog", make_dialog("confirm", "Leave page?"))
            await asyncio.sleep(0.05)

        states = await tab.wait_for_completion(action)
        assert [s.description for s in states] == ['"confirm" dialog with message "Leave page?"']
        await asyncio.sleep(0.1)

    @pytest.mark.asyncio
    async def test_existing_dialog_skips_callback(self, tab, page):
        page.emit("dialog", make_dialog())
        calls = []

        async def action():
            calls.append(1)

        assert len(await tab.wait_for_completion(action)) == 1
        assert calls == []
