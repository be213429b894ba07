# --------------------------------------------------------------
# renderer.py – one Playwright Chromium page behind a small DOM API
# --------------------------------------------------------------
"""
Page renderer used by the crawler.

The crawler never touches Playwright objects directly: it talks to a
``PageRenderer`` (navigation, selector waits and a handful of DOM snapshot
helpers).  ``PlaywrightRenderer`` is the production implementation and
``BrowserSession`` owns the browser that backs it.
"""

import time
from typing import Any, List, Optional, Protocol

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from prometheus_client import Counter, Histogram
from pydantic import BaseModel

from core.config import Settings
from core.exceptions import BrowserLaunchError

# Resource types aborted while the listing page loads
BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

# Metrics
PAGE_LOAD_DURATION = Histogram('page_load_duration_seconds', 'Time taken for page loads')
NAVIGATION_TIMEOUTS = Counter('navigation_timeouts_total', 'Navigations that never reached network idle')
BLOCKED_REQUESTS = Counter('blocked_requests_total', 'Requests aborted by the resource filter')

# ----------------------------------------------------------------------
# In-page scripts.  Each returns plain JSON so no DOM handle crosses over.
# ----------------------------------------------------------------------
_SELECT_ALL_JS = """
([selector, within, scope]) => {
    let roots = [document];
    if (within) {
        roots = scope === 'first'
            ? [document.querySelector(within)].filter(Boolean)
            : Array.from(document.querySelectorAll(within));
    }
    const out = [];
    for (const root of roots) {
        for (const el of root.querySelectorAll(selector)) {
            out.push({
                html: el.innerHTML,
                text: el.textContent || '',
                href: el.getAttribute('href'),
            });
        }
    }
    return out;
}
"""

_COUNT_JS = "(selector) => document.querySelectorAll(selector).length"

_CLICK_BUTTON_JS = """
(source) => {
    const re = new RegExp(source, 'i');
    const btn = Array.from(document.querySelectorAll('button'))
        .find(b => re.test((b.textContent || '').trim()));
    if (!btn) return null;
    btn.click();
    return (btn.textContent || '').trim();
}
"""


class NodeSnapshot(BaseModel):
    """Serialisable copy of one element: inner HTML, text content and href."""
    html: str = ""
    text: str = ""
    href: Optional[str] = None


class PageRenderer(Protocol):
    """The DOM surface the link collector, the cascade and the crawler use."""

    @property
    def url(self) -> str: ...

    async def configure_session(self) -> None: ...

    async def release_resource_filter(self) -> None: ...

    async def navigate(self, url: str) -> None: ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool: ...

    async def select_all(
        self, selector: str, within: Optional[str] = None, scope: str = "all"
    ) -> List[NodeSnapshot]: ...

    async def count(self, selector: str) -> int: ...

    async def click_first_button(self, pattern: str) -> Optional[str]: ...


# ----------------------------------------------------------------------
# ResourceFilter – request interception with an explicit detach step
# ----------------------------------------------------------------------
class ResourceFilter:
    """
    Aborts image/stylesheet/font/media requests on ``page`` while attached.

    ``detach()`` removes the route handler; Playwright stops intercepting
    once no route is registered, and the loaded page is left untouched.
    """

    def __init__(self, page: Any, blocked: frozenset = BLOCKED_RESOURCE_TYPES):
        self._page = page
        self._blocked = blocked
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    async def _handle(self, route: Any) -> None:
        if route.request.resource_type in self._blocked:
            BLOCKED_REQUESTS.inc()
            await route.abort()
        else:
            await route.continue_()

    async def attach(self) -> None:
        if self._attached:
            return
        await self._page.route("**/*", self._handle)
        self._attached = True
        logger.debug("Resource filter attached")

    async def detach(self) -> None:
        if not self._attached:
            return
        await self._page.unroute("**/*", self._handle)
        self._attached = False
        logger.debug("Resource filter detached")


# ----------------------------------------------------------------------
# PlaywrightRenderer – the production PageRenderer
# ----------------------------------------------------------------------
class PlaywrightRenderer:
    """Wraps a Playwright ``Page``; every call mutates that one page."""

    def __init__(self, page: Any, settings: Settings):
        self.page = page
        self.settings = settings
        self.resource_filter = ResourceFilter(page)

    @property
    def url(self) -> str:
        return self.page.url

    async def configure_session(self) -> None:
        """Apply timeouts and start filtering heavy resources."""
        self.page.set_default_navigation_timeout(self.settings.NAVIGATION_TIMEOUT_MS)
        await self.resource_filter.attach()

    async def release_resource_filter(self) -> None:
        await self.resource_filter.detach()

    async def navigate(self, url: str) -> None:
        """
        Load ``url`` and wait until the network is idle.

        Readiness timeouts are not errors: the caller queries whatever DOM
        exists.  Any other navigation failure (DNS, TLS, aborted load)
        propagates.
        """
        logger.info(f"Navigating to {url}")
        timeout = self.settings.NAVIGATION_TIMEOUT_MS
        start = time.perf_counter()
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            await self.page.wait_for_load_state("networkidle", timeout=timeout)
        except PlaywrightTimeoutError:
            NAVIGATION_TIMEOUTS.inc()
            logger.warning(f"Page {url} did not settle within {timeout} ms – continuing")
        finally:
            PAGE_LOAD_DURATION.observe(time.perf_counter() - start)
        logger.debug(f"Navigation finished at {self.page.url} in {time.perf_counter() - start:.2f}s")

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self.page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.debug(f"Selector {selector!r} not found within {timeout_ms} ms")
            return False

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run ``script`` in the page and return its structured-clone result."""
        return await self.page.evaluate(script, arg)

    async def select_all(
        self, selector: str, within: Optional[str] = None, scope: str = "all"
    ) -> List[NodeSnapshot]:
        raw = await self.evaluate(_SELECT_ALL_JS, [selector, within, scope])
        return [NodeSnapshot(**item) for item in raw or []]

    async def count(self, selector: str) -> int:
        return int(await self.evaluate(_COUNT_JS, selector) or 0)

    async def click_first_button(self, pattern: str) -> Optional[str]:
        return await self.evaluate(_CLICK_BUTTON_JS, pattern)


# ----------------------------------------------------------------------
# BrowserSession – launch / teardown of the single Chromium instance
# ----------------------------------------------------------------------
class BrowserSession:
    """
    Async context manager yielding a ``PlaywrightRenderer``.

    The browser and the Playwright driver are closed on every exit path,
    including a launch that fails half way.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright = None
        self._browser = None

    async def __aenter__(self) -> PlaywrightRenderer:
        logger.info("Launching headless Chromium")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=self.settings.BROWSER_ARGS,
                executable_path=self.settings.BROWSER_EXECUTABLE_PATH or None,
            )
            context = await self._browser.new_context(
                user_agent=self.settings.DEFAULT_USER_AGENT,
                java_script_enabled=True,
            )
            page = await context.new_page()
        except Exception as exc:  # pylint: disable=broad-except
            await self.close()
            raise BrowserLaunchError(f"Unable to launch Chromium: {exc}") from exc
        return PlaywrightRenderer(page, self.settings)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
                logger.info("Browser closed")
            except PlaywrightError as exc:
                logger.warning(f"Issue while closing browser: {exc}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
