# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Modal states (dialogs, file choosers) and the action/modal race.

A page-initiated dialog can block the very action that triggered it, so
every interactive operation runs through :meth:`ModalArbitrator.race`:
whichever settles first, the action or a newly added modal state, wins.
The losing action is never cancelled; it keeps running in the background
and its eventual result is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from playwright.async_api import Dialog, FileChooser

logger = logging.getLogger(__name__)

ModalType = Literal["dialog", "fileChooser"]

# Default tool names that clear each modal kind (caller-facing hint text)
DEFAULT_MODAL_HANDLERS: dict[str, str] = {
    "dialog": "browser_handle_dialog",
    "fileChooser": "browser_file_upload",
}


@dataclass(eq=False, slots=True)
class ModalState:
    """A pending browser interruption.

    Compared by identity: each occurrence is added once and removed once.
    """

    type: ModalType
    description: str
    dialog: Dialog | None = None
    file_chooser: FileChooser | None = None

    @classmethod
    def for_dialog(cls, dialog: Dialog) -> ModalState:
        return cls(
            type="dialog",
            description=f'"{dialog.type}" dialog with message "{dialog.message}"',
            dialog=dialog,
        )

    @classmethod
    def for_file_chooser(cls, chooser: FileChooser) -> ModalState:
        return cls(type="fileChooser", description="File chooser", file_chooser=chooser)


class ModalArbitrator:
    """Owns the list of pending modal states for one tab."""

    __slots__ = ("_states", "_waiters")

    def __init__(self) -> None:
        self._states: list[ModalState] = []
        self._waiters: list[asyncio.Future[ModalState]] = []

    @property
    def modal_states(self) -> list[ModalState]:
        return list(self._states)

    def has_modal_state(self, modal_type: ModalType | None = None) -> bool:
        if modal_type is None:
            return bool(self._states)
        return any(state.type == modal_type for state in self._states)

    def set_modal_state(self, state: ModalState) -> None:
        """Record a new interruption and wake every in-flight race."""
        self._states.append(state)
        waiters = self._waiters
        self._waiters = []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(state)
        logger.info("Modal state added: %s", state.description)

    def clear_modal_state(self, state: ModalState) -> None:
        """Remove exactly this state; no-op when it was already cleared."""
        before = len(self._states)
        self._states = [s for s in self._states if s is not state]
        if len(self._states) != before:
            logger.debug("Modal state cleared: %s", state.description)

    async def race(self, action: Callable[[], Awaitable[object]]) -> list[ModalState]:
        """Run ``action`` unless a modal appears first.

        Returns:
            ``[]`` when the action completed; the pending states (action not
            started) when a modal already exists; ``[new_state]`` when a modal
            was added while the action was running.

        Raises:
            Whatever ``action`` raises, when it settles first.
        """
        if self._states:
            return list(self._states)

        waiter: asyncio.Future[ModalState] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        action_first = False

        async def _run() -> object:
            nonlocal action_first
            try:
                return await action()
            finally:
                # Decided the instant the action settles, not when race() wakes up
                action_first = not waiter.done()

        task = asyncio.ensure_future(_run())
        try:
            done, _pending = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.add_done_callback(_log_abandoned_action)
            raise
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

        if task in done and action_first:
            task.result()
            return []

        task.add_done_callback(_log_abandoned_action)
        return [waiter.result()]


def _log_abandoned_action(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned action finished with error: %s", exc)


def render_modal_states(
    states: list[ModalState],
    handlers: Mapping[str, str] | None = None,
) -> list[str]:
    """Render pending modal states as markdown lines for the caller."""
    handlers = DEFAULT_MODAL_HANDLERS if handlers is None else handlers
    lines = ["### Modal state"]
    if not states:
        lines.append("- There is no modal state present")
    for state in states:
        lines.append(f'- [{state.description}]: can be handled by the "{handlers.get(state.type)}" tool')
    return lines
