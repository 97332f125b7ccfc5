# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tab session: one coordinator per live Playwright page.

Reconciles three loosely ordered streams into one view of the tab:

- caller commands (navigate, snapshot, resolve, wait)
- driver lifecycle events (framenavigated, domcontentloaded, load, close)
- modal interruptions (dialog, filechooser)

Artifacts (console, requests, downloads) are buffered between snapshots.
A snapshot is the only place recent console messages are drained.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

from playwright.async_api import Error as PlaywrightError

from .artifacts import ArtifactBuffer, DownloadEntry
from .config import TabConfig
from .console import ConsoleMessage
from .errors import NavigationError, SelectorResolutionError, TabClosedError
from .modal import ModalArbitrator, ModalState, render_modal_states
from .navigation import NavigationState, NavigationTracker
from .selector_resolver import SelectorResolver
from .selectors import (
    BatchResolutionOptions,
    ElementSelector,
    ElementTarget,
    SelectorResolutionResult,
)
from .snapshot import SnapshotEngine, TabSnapshot

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage as PlaywrightConsoleMessage
    from playwright.async_api import (
        Dialog,
        Download,
        FileChooser,
        Frame,
        Locator,
        Page,
        Request,
        Response,
    )

    from .context import TabContext

logger = logging.getLogger(__name__)

# goto() rejects with these when the "navigation" turned into a download
_DOWNLOAD_ABORT_PATTERNS = (
    "net::err_aborted",  # chromium
    "download is starting",  # firefox, webkit
)

_PAGE_SLEEP_JS = "(timeout) => new Promise(resolve => setTimeout(resolve, timeout))"


def _might_be_download(exc: Exception) -> bool:
    msg = str(exc).lower()
    return any(p in msg for p in _DOWNLOAD_ABORT_PATTERNS)


class TabState(StrEnum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class NavigationResult:
    """Outcome of :meth:`Tab.navigate`."""

    url: str
    download: bool = False  # navigation turned into a download, page did not change
    http_status: int | None = None


class Tab:
    """Per-page session coordinator. Created by :class:`TabContext`."""

    def __init__(
        self,
        context: TabContext,
        page: Page,
        on_page_close: Callable[[Tab], None],
        config: TabConfig | None = None,
    ) -> None:
        self.context = context
        self.page = page
        self._config = config or TabConfig()
        self._on_page_close = on_page_close
        self._closed = False
        self._last_title = "about:blank"
        self._artifacts = ArtifactBuffer()
        self._modal = ModalArbitrator()
        self._navigation = NavigationTracker(self._config)
        self._snapshots = SnapshotEngine(page)
        self._custom_refs: dict[str, str] = {}
        self._custom_ref_counter = 0
        self._resolver = SelectorResolver(page, custom_refs=self._custom_refs, config=self._config)
        self._background: set[asyncio.Task] = set()

        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        page.on("close", self._on_close)
        page.on("filechooser", self._on_file_chooser)
        page.on("dialog", self._on_dialog)
        page.on("download", self._on_download)
        page.on("framenavigated", self._on_frame_navigated)
        page.on("load", self._on_load)
        page.on("domcontentloaded", self._on_dom_content_loaded)

        page.set_default_navigation_timeout(self._config.navigation_timeout_ms)
        page.set_default_timeout(self._config.default_timeout_ms)

    # ── Driver event handlers ────────────────────────────────────────

    def _on_console(self, message: PlaywrightConsoleMessage) -> None:
        self._artifacts.add_console_message(ConsoleMessage.from_console(message))

    def _on_page_error(self, error: PlaywrightError) -> None:
        self._artifacts.add_console_message(ConsoleMessage.from_page_error(error))

    def _on_request(self, request: Request) -> None:
        self._artifacts.add_request(request)

    def _on_response(self, response: Response) -> None:
        self._artifacts.add_response(response)

    def _on_file_chooser(self, chooser: FileChooser) -> None:
        self.set_modal_state(ModalState.for_file_chooser(chooser))

    def _on_dialog(self, dialog: Dialog) -> None:
        self.set_modal_state(ModalState.for_dialog(dialog))

    async def _on_download(self, download: Download) -> None:
        try:
            await self._download_started(download)
        except Exception:
            # Must not crash the session: a failed save only loses the file
            logger.warning("Download failed: %s", download.suggested_filename, exc_info=True)

    async def _download_started(self, download: Download) -> None:
        entry = DownloadEntry(
            download=download,
            output_file=self.context.output_file(download.suggested_filename),
        )
        self._artifacts.add_download(entry)
        await download.save_as(entry.output_file)
        entry.finished = True
        logger.info("Download saved: %s", entry.output_file)

    def _on_frame_navigated(self, frame: Frame) -> None:
        if frame == self.page.main_frame:
            self._navigation.on_navigation_start()

    def _on_load(self, _page: Page | None = None) -> None:
        self._navigation.on_navigation_complete()

    def _on_dom_content_loaded(self, _page: Page | None = None) -> None:
        self._navigation.on_navigation_progress()

    def _on_close(self, _page: Page | None = None) -> None:
        self.dispose()

    def dispose(self) -> None:
        """Tear the session down once: clear buffers and notify the owning context."""
        if self._closed:
            return
        self._closed = True
        self._artifacts.clear()
        self._navigation.close()
        logger.debug("Tab closed: %s", self.page.url)
        self._on_page_close(self)

    # ── State ────────────────────────────────────────────────────────

    @property
    def config(self) -> TabConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> TabState:
        if self._closed:
            return TabState.CLOSED
        if self._navigation.is_navigating():
            return TabState.NAVIGATING
        return TabState.IDLE

    def is_current_tab(self) -> bool:
        return self is self.context.current_tab

    def last_title(self) -> str:
        return self._last_title

    async def update_title(self) -> list[ModalState]:
        async def _read_title() -> None:
            self._last_title = await self.page.title()

        return await self.race_against_modal_state(_read_title)

    # ── Modal states ─────────────────────────────────────────────────

    @property
    def modal_states(self) -> list[ModalState]:
        return self._modal.modal_states

    def set_modal_state(self, state: ModalState) -> None:
        self._modal.set_modal_state(state)

    def clear_modal_state(self, state: ModalState) -> None:
        self._modal.clear_modal_state(state)

    def modal_states_markdown(self, handlers: Mapping[str, str] | None = None) -> list[str]:
        if handlers is None:
            handlers = self.context.modal_handlers
        return render_modal_states(self.modal_states, handlers)

    def _javascript_blocked(self) -> bool:
        return self._modal.has_modal_state("dialog")

    async def race_against_modal_state(self, action: Callable[[], Awaitable[object]]) -> list[ModalState]:
        """See :meth:`ModalArbitrator.race`."""
        return await self._modal.race(action)

    # ── Artifacts ────────────────────────────────────────────────────

    @property
    def console_messages(self) -> list[ConsoleMessage]:
        return self._artifacts.console_messages

    @property
    def requests(self) -> dict[Request, Response | None]:
        return self._artifacts.requests

    @property
    def downloads(self) -> list[DownloadEntry]:
        return self._artifacts.downloads

    # ── Navigation ───────────────────────────────────────────────────

    def is_navigating(self) -> bool:
        return self._navigation.is_navigating()

    @property
    def navigation_state(self) -> NavigationState:
        return self._navigation.state

    async def wait_for_navigation_complete(self) -> None:
        await self._navigation.wait_for_navigation_complete()

    async def wait_for_load_state(
        self,
        state: Literal["load", "domcontentloaded", "networkidle"] = "load",
        *,
        timeout_ms: int | None = None,
    ) -> None:
        """Wait for a load state; failures are logged, never raised."""
        logger.debug("Waiting for load state: %s", state)
        try:
            await self.page.wait_for_load_state(state, timeout=timeout_ms)
        except PlaywrightError as exc:
            logger.debug("Failed to wait for load state %s: %s", state, exc)

    async def navigate(self, url: str) -> NavigationResult:
        """Navigate the tab, treating a download-triggered abort as success.

        Raises:
            TabClosedError: the page is closed.
            NavigationError: empty URL.
            playwright.async_api.Error: genuine navigation failure.
        """
        if self._closed:
            raise TabClosedError(f"Cannot navigate closed tab to {url}")
        if not url or not url.strip():
            raise NavigationError("URL must not be empty")

        logger.debug("Navigating to: %s", url)
        self._artifacts.clear()
        download_event = asyncio.ensure_future(self.page.wait_for_event("download"))
        try:
            try:
                response = await self.page.goto(url, wait_until="domcontentloaded")
            except PlaywrightError as exc:
                if not (_might_be_download(exc) or download_event.done()):
                    raise
                # Chromium fires "download" only after goto() rejects
                done, _pending = await asyncio.wait({download_event}, timeout=self._config.download_grace_ms / 1000)
                if download_event not in done or download_event.exception() is not None:
                    raise
                self._navigation.on_navigation_complete()
                logger.info("Navigation to %s started a download", url)
                # Let other "download" listeners run first
                await asyncio.sleep(self._config.download_settle_ms / 1000)
                return NavigationResult(url=self.page.url, download=True)
        finally:
            if not download_event.done():
                download_event.cancel()
                await asyncio.gather(download_event, return_exceptions=True)
            elif not download_event.cancelled():
                download_event.exception()  # mark retrieved

        # The page is interactive after domcontentloaded; cap the load wait
        await self.wait_for_load_state("load", timeout_ms=self._config.load_state_timeout_ms)
        return NavigationResult(
            url=self.page.url,
            http_status=response.status if response is not None else None,
        )

    # ── Snapshots ────────────────────────────────────────────────────

    async def capture_snapshot(self) -> TabSnapshot:
        return await self._capture_snapshot(None, None)

    async def capture_partial_snapshot(
        self,
        landmark: str | None = None,
        max_length: int | None = None,
    ) -> TabSnapshot:
        return await self._capture_snapshot(landmark, max_length)

    async def _capture_snapshot(self, landmark: str | None, max_length: int | None) -> TabSnapshot:
        captured: TabSnapshot | None = None

        async def _capture() -> None:
            nonlocal captured
            snapshot = await self._snapshots.capture(landmark, max_length)
            snapshot.downloads = self._artifacts.downloads
            captured = snapshot

        modal_states = await self.race_against_modal_state(_capture)
        if captured is not None and not modal_states:
            # Drained after the race so a modal interruption loses nothing
            captured.console_messages = self._artifacts.drain_recent_console()
            return captured
        return TabSnapshot(url=self.page.url, title="", aria_snapshot="", modal_states=modal_states)

    # ── Waiting ──────────────────────────────────────────────────────

    async def wait(self, time_ms: int) -> list[ModalState]:
        """Timed wait guarded by the modal race; returns the interrupting states."""
        return await self.race_against_modal_state(lambda: self.wait_for_timeout(time_ms))

    async def wait_for_timeout(self, time_ms: int) -> None:
        """Sleep page-side, or host-side while a dialog blocks JavaScript.

        Not guarded against modal states: callers outside a race should use
        :meth:`wait` instead.
        """
        if self._javascript_blocked():
            await asyncio.sleep(time_ms / 1000)
            return
        try:
            await self.page.evaluate(_PAGE_SLEEP_JS, time_ms)
        except PlaywrightError as exc:
            # Execution context destroyed by a navigation mid-wait
            logger.debug("Page-side wait failed (%s), sleeping host-side", exc)
            await asyncio.sleep(time_ms / 1000)

    async def wait_for_completion(self, callback: Callable[[], Awaitable[object]]) -> list[ModalState]:
        """Run ``callback`` and wait for the network activity it caused to settle.

        Returns the modal states that interrupted it (``[]`` on completion).
        """
        return await self.race_against_modal_state(lambda: self._wait_for_completion(callback))

    async def _wait_for_completion(self, callback: Callable[[], Awaitable[object]]) -> None:
        loop = asyncio.get_running_loop()
        page = self.page
        requests: set[Request] = set()
        frame_navigated = False
        disposed = False
        barrier: asyncio.Future[None] = loop.create_future()

        def _release(*_args: Any) -> None:
            if not barrier.done():
                barrier.set_result(None)

        def _on_request(request: Request) -> None:
            requests.add(request)

        def _on_request_done(request: Request) -> None:
            requests.discard(request)
            if not requests:
                _release()

        def _on_frame_navigated(frame: Frame) -> None:
            nonlocal frame_navigated
            if frame.parent_frame is not None:
                return
            frame_navigated = True
            _dispose()
            timer.cancel()
            task = loop.create_task(self.wait_for_load_state("load"))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            task.add_done_callback(_release)

        def _on_timeout() -> None:
            logger.debug("Completion wait hit %dms ceiling", self._config.completion_timeout_ms)
            _dispose()
            _release()

        def _dispose() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            page.remove_listener("request", _on_request)
            page.remove_listener("requestfinished", _on_request_done)
            page.remove_listener("requestfailed", _on_request_done)
            page.remove_listener("framenavigated", _on_frame_navigated)

        page.on("request", _on_request)
        page.on("requestfinished", _on_request_done)
        page.on("requestfailed", _on_request_done)
        page.on("framenavigated", _on_frame_navigated)
        timer = loop.call_later(self._config.completion_timeout_ms / 1000, _on_timeout)
        try:
            await callback()
            if not requests and not frame_navigated:
                _release()
            await barrier
            await self.wait_for_timeout(self._config.completion_settle_ms)
        finally:
            _dispose()
            timer.cancel()

    # ── Custom element refs ──────────────────────────────────────────

    def register_custom_ref(self, ref: str, selector: str) -> None:
        """Alias ``ref`` to a CSS selector; ``{"ref": ref}`` then resolves through it."""
        self._custom_refs[ref] = selector

    def unregister_custom_ref(self, ref: str) -> None:
        self._custom_refs.pop(ref, None)

    def clear_custom_refs(self) -> None:
        self._custom_refs.clear()

    @property
    def custom_refs(self) -> dict[str, str]:
        return dict(self._custom_refs)

    def next_custom_ref_id(self, batch_id: str | None = None) -> str:
        """Mint a new alias id; never reused within this tab's lifetime."""
        self._custom_ref_counter += 1
        if batch_id:
            return f"batch_{batch_id}_element_{self._custom_ref_counter}"
        return f"element_{self._custom_ref_counter}"

    # ── Selector resolution ──────────────────────────────────────────

    async def resolve_element_locators(
        self,
        selectors: Sequence[ElementSelector | dict[str, Any]],
        options: BatchResolutionOptions | None = None,
    ) -> list[SelectorResolutionResult]:
        logger.debug("Resolving %d element locators", len(selectors))
        return await self._resolver.resolve_selectors(selectors, options)

    async def resolve_single_element_locator(
        self,
        selector: ElementSelector | dict[str, Any],
        *,
        timeout_ms: int | None = None,
    ) -> SelectorResolutionResult:
        logger.debug("Resolving single element locator: %s", selector)
        return await self._resolver.resolve_single_selector(selector, timeout_ms=timeout_ms)

    async def ref_locator(self, element: str, selector: ElementSelector | dict[str, Any]) -> Locator:
        """Resolve one labelled element or raise :class:`SelectorResolutionError`."""
        result = await self._resolver.resolve_single_selector(selector)
        if not result.ok:
            raise SelectorResolutionError.for_element(element, result.error, result.alternatives)
        return result.locator.describe(element)

    async def ref_locators(self, targets: Sequence[ElementTarget | dict[str, Any]]) -> list[Locator]:
        """Resolve a positional batch; the first failure aborts the batch."""
        parsed = [t if isinstance(t, ElementTarget) else ElementTarget.model_validate(t) for t in targets]
        for target in parsed:
            if target.selector is None:
                raise SelectorResolutionError(
                    f"Missing selector for element: {target.element}",
                    element=target.element,
                )

        results = await self._resolver.resolve_selectors([t.selector for t in parsed])
        locators: list[Locator] = []
        for target, result in zip(parsed, results, strict=True):
            if not result.ok:
                raise SelectorResolutionError.for_element(target.element, result.error, result.alternatives)
            locators.append(result.locator.describe(target.element))
        return locators
