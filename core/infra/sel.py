"""
sel.py - Async Playwright session used for browser escalation.

One :class:`PlaywrightClient` is one isolated browser session: its own
Playwright driver, browser process and context. The HTTP layer launches one
per escalation and always stops it afterwards.

    client = PlaywrightClient(stealth=True)
    await client.start()          # raises on launch failure
    try:
        page = await client.render("https://example.com", timeout_ms=30_000)
    finally:
        await client.stop()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

try:
    from playwright.async_api import (
        async_playwright,
        Browser,
        BrowserContext,
        BrowserType,
        Error as PlaywrightError,
        Page,
    )
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Package 'playwright' is required.  Install with:  pip install playwright"
    ) from e

logger = logging.getLogger(__name__)

DEFAULT_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")

_STEALTH_SCRIPT = """
// Remove webdriver property
Object.defineProperty(navigator, 'webdriver', {
  get: () => undefined
});
Object.defineProperty(navigator, 'languages', {
  get: () => ['en-US', 'en'],
});
"""


@dataclass
class RenderedPage:
    """What a browser navigation produced. ``error`` is set when goto failed."""
    status: int
    url: str
    html: str = ""
    error: Optional[str] = None
    title: Optional[str] = None
    screenshot: Optional[bytes] = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status < 300


class PlaywrightClient:
    """
    Thin wrapper around Playwright for a single render-and-close session.

    ``start()`` is the launch: if it returns, a browser is running and
    ``stop()`` must be called. ``stop()`` is safe to call after a failed or
    partial ``start()``.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        browser_type: str = "chromium",
        stealth: bool = True,
        user_agent: Optional[str] = None,
        extra_launch_kwargs: Optional[Dict[str, Any]] = None,
        extra_context_kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.headless = headless
        self.browser_type = browser_type.lower()
        self.stealth = stealth
        self.user_agent = user_agent or DEFAULT_BROWSER_UA
        self._launch_kwargs = extra_launch_kwargs or {}
        self._context_kwargs = extra_context_kwargs or {}

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    # --------------------------------------------------------------------- #
    # Lifecycle
    async def start(self) -> None:
        """Launch driver, browser and context."""
        if self._browser:
            return

        if self.browser_type not in SUPPORTED_BROWSERS:
            raise ValueError(f"Unsupported browser type: {self.browser_type}")

        self._playwright = await async_playwright().start()
        launcher: BrowserType = getattr(self._playwright, self.browser_type)
        self._browser = await launcher.launch(headless=self.headless, **self._launch_kwargs)

        context_kwargs: Dict[str, Any] = {
            "ignore_https_errors": True,
            "user_agent": self.user_agent,
            **self._context_kwargs,
        }
        self._context = await self._browser.new_context(**context_kwargs)
        if self.stealth:
            await self._context.add_init_script(_STEALTH_SCRIPT)

        logger.info(
            "Playwright started: %s (headless=%s, stealth=%s)",
            self.browser_type,
            self.headless,
            self.stealth,
        )

    async def stop(self) -> None:
        """Close context, browser and driver. Each handle is released even if another fails."""
        for attr, closer in (
            ("_context", "close"),
            ("_browser", "close"),
            ("_playwright", "stop"),
        ):
            handle = getattr(self, attr)
            if handle is None:
                continue
            setattr(self, attr, None)
            try:
                await getattr(handle, closer)()
            except PlaywrightError as e:
                logger.warning("Playwright %s.%s failed: %s", attr.lstrip("_"), closer, e)
        logger.debug("Playwright stopped")

    # --------------------------------------------------------------------- #
    # Rendering
    async def render(
        self,
        url: str,
        *,
        timeout_ms: float = 30_000,
        settle_s: float = 2.0,
        max_html_chars: Optional[int] = None,
    ) -> RenderedPage:
        """Navigate with ``wait_until="load"``, let client-side code settle, snapshot the page.

        Navigation errors are returned on the page object, together with
        whatever diagnostics could still be collected.
        """
        if not self._context:
            raise RuntimeError("PlaywrightClient.render() called before start()")

        page = await self._context.new_page()
        page.set_default_timeout(timeout_ms)
        try:
            try:
                response = await page.goto(url, wait_until="load", timeout=timeout_ms)
            except PlaywrightError as e:
                message = (str(e).splitlines() or [type(e).__name__])[0]
                logger.warning("Browser navigation to %s failed: %s", url, message)
                rendered = RenderedPage(status=0, url=page.url or url, error=message)
                await self._collect_diagnostics(page, rendered, max_html_chars)
                return rendered

            if settle_s:
                await asyncio.sleep(settle_s)

            rendered = RenderedPage(
                status=response.status if response else 0,
                url=page.url,
                html=await page.content(),
            )
            if not rendered.ok:
                await self._collect_diagnostics(page, rendered, max_html_chars)
            return rendered
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug("page.close() failed: %s", e)

    @staticmethod
    async def _collect_diagnostics(
        page: Page, rendered: RenderedPage, max_html_chars: Optional[int]
    ) -> None:
        """Best effort: title, HTML, screenshot. Missing pieces stay ``None``."""
        try:
            rendered.title = await page.title()
        except PlaywrightError:
            pass
        if not rendered.html:
            try:
                rendered.html = await page.content()
            except PlaywrightError:
                pass
        if max_html_chars is not None and rendered.html:
            rendered.html = rendered.html[:max_html_chars]
        try:
            rendered.screenshot = await page.screenshot(full_page=True)
        except PlaywrightError:
            pass
