# Copyright (c) Syntropy Systems
"""Playwright-backed target for the real benchmark apps.

The apps install ``window.__perf`` (collect/mark/debugState) and
``window.__appSettled``; this module reads them through ``page.evaluate``
and drives controls addressed by ``data-test`` ids.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from playwright.sync_api import sync_playwright

from settlebench.models.sample import DebugState, PerfSample

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from playwright.sync_api import ConsoleMessage, Error, Page

    from settlebench.config import BenchConfig

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--js-flags=--expose-gc",
]

_DEBUG_STATE_JS = """() => {
  const state = window.__perf?.debugState?.() ?? {
    settled: false, lastMutationAt: 0, pending: 0, mutationCount: 0,
  };
  return { ...state, now: performance.now() };
}"""
_COLLECT_JS = "() => window.__perf?.collect?.() ?? {}"
_HAS_PERF_JS = "() => typeof window.__perf?.collect === 'function'"
_NEXT_FRAME_JS = "() => new Promise((r) => requestAnimationFrame(() => r(null)))"


def _selector(control: str) -> str:
    return f'[data-test="{control}"]'


class BrowserInstrumentation:
    """Reads a page's ``window.__perf`` object."""

    page: Page

    def __init__(self, page: Page) -> None:
        self.page = page

    def debug_state(self) -> DebugState:
        """Return the page monitor's counters with the page clock."""
        return DebugState.model_validate(self.page.evaluate(_DEBUG_STATE_JS))

    def collect(self) -> PerfSample:
        """Return the page's perf snapshot."""
        return PerfSample.model_validate(self.page.evaluate(_COLLECT_JS))

    def mark(self, name: str) -> None:
        """Record a mark inside the page."""
        _ = self.page.evaluate("(name) => window.__perf.mark(name)", name)

    @property
    def settled(self) -> bool:
        """Return ``window.__appSettled``."""
        return bool(self.page.evaluate("() => window.__appSettled === true"))

    def force_settled(self) -> None:
        """Set ``window.__appSettled``."""
        _ = self.page.evaluate("() => { window.__appSettled = true; }")


class BrowserTarget:
    """A benchmark app served over HTTP and driven through a page."""

    name: str
    base_url: str
    page: Page

    def __init__(self, name: str, base_url: str, page: Page) -> None:
        self.name = name
        self.base_url = base_url
        self.page = page

    @property
    def instrumentation(self) -> BrowserInstrumentation | None:
        """Return the page instrumentation if the app installed it."""
        if not self.page.evaluate(_HAS_PERF_JS):
            return None
        return BrowserInstrumentation(self.page)

    def has_control(self, control: str) -> bool:
        """Return whether the page has an element for a control id."""
        return self.page.query_selector(_selector(control)) is not None

    def reload(self) -> None:
        """Navigate to the app's base URL."""
        _ = self.page.goto(self.base_url)

    def click(self, control: str) -> None:
        """Click a control."""
        self.page.click(_selector(control))

    def select(self, control: str, value: str) -> None:
        """Select an option of a select control."""
        _ = self.page.select_option(_selector(control), value)

    def pause(self, ms: float) -> None:
        """Idle for ``ms`` milliseconds."""
        self.page.wait_for_timeout(ms)

    def flush_frames(self, count: int = 2) -> None:
        """Wait for ``count`` animation frames inside the page."""
        for _ in range(count):
            _ = self.page.evaluate(_NEXT_FRAME_JS)

    def capture_screenshot(self, path: Path) -> Path:
        """Write a full-page PNG screenshot."""
        out = path.with_suffix(".png")
        _ = self.page.screenshot(path=str(out), full_page=True)
        return out

    def dump_markup(self) -> str:
        """Return the page's HTML."""
        return self.page.content()


@contextmanager
def open_browser_target(app: str, config: BenchConfig) -> Iterator[BrowserTarget]:
    """Launch Chromium and open a page on an app.

    The browser is closed when the context exits, whether or not the
    benchmark succeeded.
    """
    base_url = config.base_url(app)
    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(
            headless=config.headless,
            args=BROWSER_ARGS,
        )
        try:
            page = browser.new_page()
            page.set_default_timeout(config.navigation_timeout_ms)
            page.set_default_navigation_timeout(config.navigation_timeout_ms)

            def _on_console(msg: ConsoleMessage) -> None:
                logger.debug("[%s console] %s", app, msg.text)

            def _on_page_error(err: Error) -> None:
                logger.error("[%s pageerror] %s", app, err)

            page.on("console", _on_console)
            page.on("pageerror", _on_page_error)

            target = BrowserTarget(app, base_url, page)
            logger.info("Opening %s at %s", app, base_url)
            target.reload()
            yield target
        finally:
            browser.close()

