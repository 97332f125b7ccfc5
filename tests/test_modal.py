# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for modal states and the action/modal race."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from tabsession.modal import ModalArbitrator, ModalState, render_modal_states
from tests._fakes import make_dialog


def _dialog_state(message: str = "Hi") -> ModalState:
    return ModalState.for_dialog(make_dialog("alert", message))


class TestModalState:
    def test_dialog_description(self):
        state = ModalState.for_dialog(make_dialog("confirm", "Are you sure?"))
        assert state.type == "dialog"
        assert state.description == '"confirm" dialog with message "Are you sure?"'
        assert state.dialog is not None

    def test_file_chooser_description(self):
        chooser = MagicMock()
        state = ModalState.for_file_chooser(chooser)
        assert state.type == "fileChooser"
        assert state.description == "File chooser"
        assert state.file_chooser is chooser

    def test_identity_equality(self):
        a = ModalState(type="dialog", description="x")
        b = ModalState(type="dialog", description="x")
        assert a != b


class TestSetAndClear:
    def test_set_appends_in_order(self):
        arb = ModalArbitrator()
        first, second = _dialog_state("1"), _dialog_state("2")
        arb.set_modal_state(first)
        arb.set_modal_state(second)
        assert arb.modal_states == [first, second]

    def test_clear_removes_only_that_state(self):
        arb = ModalArbitrator()
        first, second = _dialog_state("1"), _dialog_state("2")
        arb.set_modal_state(first)
        arb.set_modal_state(second)
        arb.clear_modal_state(first)
        assert arb.modal_states == [second]

    def test_clear_unknown_is_noop(self):
        arb = ModalArbitrator()
        kept = _dialog_state()
        arb.set_modal_state(kept)
        arb.clear_modal_state(_dialog_state())
        assert arb.modal_states == [kept]

    def test_has_modal_state_by_type(self):
        arb = ModalArbitrator()
        assert not arb.has_modal_state()
        arb.set_modal_state(ModalState.for_file_chooser(MagicMock()))
        assert arb.has_modal_state()
        assert arb.has_modal_state("fileChooser")
        assert not arb.has_modal_state("dialog")

    def test_set_logs_description(self, caplog):
        arb = ModalArbitrator()
        with caplog.at_level(logging.INFO, logger="tabsession.modal"):
            arb.set_modal_state(_dialog_state("hello"))
        assert "hello" in caplog.text


class TestRace:
    @pytest.mark.asyncio
    async def test_action_completes_returns_empty(self):
        arb = ModalArbitrator()
        calls = []

        async def action():
            calls.append(1)

        assert await arb.race(action) == []
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_existing_state_skips_action(self):
        arb = ModalArbitrator()
        state = _dialog_state()
        arb.set_modal_state(state)
        calls = []

        async def action():
            calls.append(1)

        assert await arb.race(action) == [state]
        await asyncio.sleep(0)
        assert calls == []

    @pytest.mark.asyncio
    async def test_modal_during_action_wins(self):
        arb = ModalArbitrator()
        state = _dialog_state("blocked")
        release = asyncio.Event()
        finished = []

        async def action():
            await release.wait()
            finished.append(True)

        race = asyncio.ensure_future(arb.race(action))
        await asyncio.sleep(0)
        arb.set_modal_state(state)
        assert await race == [state]

        # The losing action is not cancelled
        release.set()
        await asyncio.sleep(0.01)
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_modal_one_step_before_action_settles_wins(self):
        arb = ModalArbitrator()
        state = _dialog_state("late")

        async def action():
            await asyncio.sleep(0)
            arb.set_modal_state(state)
            await asyncio.sleep(0)

        assert await arb.race(action) == [state]

    @pytest.mark.asyncio
    async def test_modal_set_as_action_returns_wins(self):
        arb = ModalArbitrator()
        state = _dialog_state()

        async def action():
            await asyncio.sleep(0)
            arb.set_modal_state(state)

        assert await arb.race(action) == [state]

    @pytest.mark.asyncio
    async def test_modal_after_action_settled_does_not_win(self):
        arb = ModalArbitrator()

        async def action():
            # Modal arrives once the action is done but before race() wakes up
            asyncio.get_running_loop().call_soon(arb.set_modal_state, _dialog_state())

        assert await arb.race(action) == []

    @pytest.mark.asyncio
    async def test_action_error_propagates(self):
        arb = ModalArbitrator()

        async def action():
            raise ValueError("click failed")

        with pytest.raises(ValueError, match="click failed"):
            await arb.race(action)

    @pytest.mark.asyncio
    async def test_abandoned_action_error_is_not_raised(self):
        arb = ModalArbitrator()
        release = asyncio.Event()

        async def action():
            await release.wait()
            raise RuntimeError("late failure")

        race = asyncio.ensure_future(arb.race(action))
        await asyncio.sleep(0)
        arb.set_modal_state(_dialog_state())
        assert len(await race) == 1
        release.set()
        await asyncio.sleep(0.01)

    @pytest.mark.asyncio
    async def test_concurrent_races_all_interrupted(self):
        arb = ModalArbitrator()
        never = asyncio.Event()

        async def action():
            await never.wait()

        races = [asyncio.ensure_future(arb.race(action)) for _ in range(2)]
        await asyncio.sleep(0)
        state = _dialog_state()
        arb.set_modal_state(state)
        assert await asyncio.gather(*races) == [[state], [state]]
        never.set()

    @pytest.mark.asyncio
    async def test_waiter_removed_after_race(self):
        arb = ModalArbitrator()

        async def action():
            return None

        await arb.race(action)
        assert arb._waiters == []

    @pytest.mark.asyncio
    async def test_cancelled_race_leaves_no_waiter(self):
        arb = ModalArbitrator()
        never = asyncio.Event()

        async def action():
            await never.wait()

        race = asyncio.ensure_future(arb.race(action))
        await asyncio.sleep(0)
        race.cancel()
        with pytest.raises(asyncio.CancelledError):
            await race
        assert arb._waiters == []
        never.set()
        await asyncio.sleep(0)


class TestRender:
    def test_no_states(self):
        assert render_modal_states([]) == ["### Modal state", "- There is no modal state present"]

    def test_states_with_default_handlers(self):
        lines = render_modal_states([_dialog_state("Hi"), ModalState.for_file_chooser(MagicMock())])
        assert lines == [
            "### Modal state",
            '- ["alert" dialog with message "Hi"]: can be handled by the "browser_handle_dialog" tool',
            '- [File chooser]: can be handled by the "browser_file_upload" tool',
        ]

    def test_custom_handlers(self):
        lines = render_modal_states([_dialog_state("Hi")], {"dialog": "dismiss_dialog"})
        assert lines[1].endswith('"dismiss_dialog" tool')
