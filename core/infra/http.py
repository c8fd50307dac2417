"""
http.py – Async HTTP transport built on *aiohttp* with bounded retries,
          exponential back-off with jitter, browser-like default headers and
          budget-limited escalation to a headless browser when blocked.

``HttpClient.fetch()`` never raises for source problems: every failure comes
back as a :class:`~core.models.FetchOutcome` tagged with a
:class:`~core.models.FailureKind`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Dict, Mapping, Optional

import aiohttp

from core.interfaces import DiagnosticsSink
from core.models import DiagnosticArtifact, FailureKind, FetchOutcome, TransportMode
from core.infra.sel import DEFAULT_BROWSER_UA, PlaywrightClient, RenderedPage

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": DEFAULT_BROWSER_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

BLOCKED_STATUSES = (403, 429)
BROWSER_MIN_TIMEOUT = 30.0
DIAGNOSTIC_HTML_CHARS = 200_000


class BrowserBudget:
    """Counting semaphore limiting browser launches within one run.

    Single-threaded use only; there is no waiting, just ``try_acquire()``.
    """

    def __init__(self, limit: int = 3) -> None:
        if limit < 0:
            raise ValueError("browser budget cannot be negative")
        self._limit = limit
        self._available = limit

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def remaining(self) -> int:
        return self._available

    @property
    def used(self) -> int:
        return self._limit - self._available

    def try_acquire(self) -> bool:
        if self._available <= 0:
            return False
        self._available -= 1
        return True

    def release(self) -> None:
        if self._available < self._limit:
            self._available += 1


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * default browser-like headers, overridable per request
    * exponential back-off **with jitter** for timeouts / network errors / non-2xx
    * at most ``max_retries + 1`` attempts per fetch
    * 403 / 429 escalation to Playwright, limited by a per-instance
      :class:`BrowserBudget`
    * async context-manager support
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 5.0,
        max_jitter: float = 0.5,
        default_headers: Optional[Mapping[str, str]] = None,
        browser_budget: Optional[BrowserBudget] = None,
        browser_factory: Optional[Callable[[], Any]] = None,
        browser_settle_s: float = 2.0,
        headless: bool = True,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_jitter = max_jitter
        self._own_session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = {**DEFAULT_HEADERS, **(default_headers or {})}
        self.budget = browser_budget if browser_budget is not None else BrowserBudget()
        self._browser_factory = browser_factory or (lambda: PlaywrightClient(headless=headless))
        self._settle_s = browser_settle_s
        self._diagnostics = diagnostics

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session is not None:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Internal helpers
    def _merge_headers(self, extra: Mapping[str, str] | None) -> Dict[str, str]:
        merged: Dict[str, str] = {**self._default_headers}
        if extra:
            merged.update(extra)
        return merged

    def _backoff(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
        exponential = min(self._base_delay * 2 ** (attempt - 1), self._max_delay)
        return exponential + random.uniform(0, self._max_jitter)

    # ---------------------------------------------- #
    # Public API
    async def fetch(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
        allow_browser_escalation: bool = False,
        source_id: Optional[str] = None,
    ) -> FetchOutcome:
        """GET ``url``. Never raises for network or HTTP problems."""
        timeout = self._timeout if timeout is None else timeout
        attempts = (self._max_retries if max_retries is None else max_retries) + 1
        merged = self._merge_headers(headers)
        session = await self._ensure_session()

        outcome = FetchOutcome(
            success=False, final_url=url, error_kind=FailureKind.UNAVAILABLE, error_detail="No attempt made"
        )
        for attempt in range(1, attempts + 1):
            try:
                async with session.request(
                    "GET",
                    url,
                    headers=merged,
                    timeout=aiohttp.ClientTimeout(total=timeout),
                ) as resp:
                    status = resp.status
                    final_url = str(resp.url)
                    if 200 <= status < 300:
                        body = await resp.text(errors="replace")
                        logger.debug("GET %s -> %d (%d bytes)", url, status, len(body))
                        return FetchOutcome(
                            success=True,
                            http_status=status,
                            body_text=body,
                            final_url=final_url,
                        )
            except asyncio.TimeoutError:
                outcome = FetchOutcome(
                    success=False,
                    final_url=url,
                    error_kind=FailureKind.UNAVAILABLE,
                    error_detail=f"Timeout after {timeout:g}s",
                )
            except aiohttp.ClientError as e:
                outcome = FetchOutcome(
                    success=False,
                    final_url=url,
                    error_kind=FailureKind.UNAVAILABLE,
                    error_detail=str(e).splitlines()[0] if str(e) else type(e).__name__,
                )
            except Exception as e:  # noqa: BLE001
                # Not a transient network condition; retrying will not help.
                logger.error("GET %s failed unexpectedly: %r", url, e)
                return FetchOutcome(
                    success=False,
                    final_url=url,
                    error_kind=FailureKind.UNAVAILABLE,
                    error_detail=f"{type(e).__name__}: {e}",
                )
            else:
                if status in BLOCKED_STATUSES:
                    return await self._on_blocked(
                        url,
                        status=status,
                        final_url=final_url,
                        allow_browser_escalation=allow_browser_escalation,
                        timeout=timeout,
                        source_id=source_id,
                    )
                outcome = FetchOutcome(
                    success=False,
                    http_status=status,
                    final_url=final_url,
                    error_kind=FailureKind.UNAVAILABLE,
                    error_detail=f"HTTP {status}",
                )

            if attempt == attempts:
                break

            sleep_seconds = self._backoff(attempt)
            logger.warning(
                "GET %s failed (attempt %d/%d – will retry in %.1fs): %s",
                url,
                attempt,
                attempts,
                sleep_seconds,
                outcome.explanation,
            )
            await asyncio.sleep(sleep_seconds)

        logger.error("GET %s failed after %d attempts: %s", url, attempts, outcome.explanation)
        return outcome

    # ---------------------------------------------- #
    # Browser escalation
    async def _on_blocked(
        self,
        url: str,
        *,
        status: int,
        final_url: str,
        allow_browser_escalation: bool,
        timeout: float,
        source_id: Optional[str],
    ) -> FetchOutcome:
        blocked = FetchOutcome(
            success=False,
            http_status=status,
            final_url=final_url,
            error_kind=FailureKind.BLOCKED,
            error_detail=f"HTTP {status}",
        )
        if not allow_browser_escalation:
            logger.warning("GET %s blocked (HTTP %d); browser escalation not allowed", url, status)
            return blocked
        if not self.budget.try_acquire():
            logger.warning("GET %s blocked (HTTP %d), but browser budget exhausted", url, status)
            return blocked.model_copy(
                update={"error_detail": f"HTTP {status}; blocked and browser budget exhausted"}
            )

        logger.info(
            "GET %s blocked (HTTP %d). Retrying via browser (%d launch(es) left)...",
            url,
            status,
            self.budget.remaining,
        )
        return await self._fetch_with_browser(url, blocked_status=status, timeout=timeout, source_id=source_id)

    async def _fetch_with_browser(
        self, url: str, *, blocked_status: int, timeout: float, source_id: Optional[str]
    ) -> FetchOutcome:
        """Caller holds one budget permit; it is handed back if the launch fails."""
        client = self._browser_factory()
        try:
            try:
                await client.start()
            except Exception as e:  # noqa: BLE001
                self.budget.release()
                logger.warning("Browser launch for %s failed: %s", url, e)
                return FetchOutcome(
                    success=False,
                    http_status=blocked_status,
                    final_url=url,
                    transport_mode=TransportMode.BROWSER,
                    error_kind=FailureKind.BLOCKED,
                    error_detail=f"HTTP {blocked_status}; browser launch failed: {e}",
                )

            try:
                page: RenderedPage = await client.render(
                    url,
                    timeout_ms=max(timeout, BROWSER_MIN_TIMEOUT) * 1000,
                    settle_s=self._settle_s,
                    max_html_chars=DIAGNOSTIC_HTML_CHARS,
                )
            except Exception as e:  # noqa: BLE001
                logger.warning("Browser fetch of %s failed: %s", url, e)
                return FetchOutcome(
                    success=False,
                    final_url=url,
                    transport_mode=TransportMode.BROWSER,
                    error_kind=FailureKind.BLOCKED,
                    error_detail=f"Browser fetch failed: {e}",
                )
        finally:
            try:
                await client.stop()
            except Exception as e:  # noqa: BLE001
                logger.warning("Browser shutdown after %s failed: %s", url, e)

        if page.ok:
            logger.info("Browser fetch of %s succeeded (HTTP %d)", url, page.status)
            return FetchOutcome(
                success=True,
                http_status=page.status,
                body_text=page.html,
                final_url=page.url,
                transport_mode=TransportMode.BROWSER,
            )

        await self._emit_diagnostics(source_id or url, url, page)
        if page.error is not None:
            detail = f"Browser navigation failed: {page.error}"
            kind = FailureKind.BLOCKED
        else:
            detail = f"HTTP {page.status} via browser"
            kind = (
                FailureKind.BLOCKED
                if page.status in BLOCKED_STATUSES or page.status == 0
                else FailureKind.UNAVAILABLE
            )
        return FetchOutcome(
            success=False,
            http_status=page.status,
            final_url=page.url,
            transport_mode=TransportMode.BROWSER,
            error_kind=kind,
            error_detail=detail,
        )

    async def _emit_diagnostics(self, source_id: str, url: str, page: RenderedPage) -> None:
        if self._diagnostics is None:
            return
        artifact = DiagnosticArtifact(
            source_id=source_id,
            url=page.url or url,
            http_status=page.status,
            error=page.error,
            title=page.title,
            html=page.html[:DIAGNOSTIC_HTML_CHARS] if page.html else None,
            screenshot=page.screenshot,
        )
        try:
            await self._diagnostics.handle(artifact)
        except Exception as e:  # noqa: BLE001
            logger.warning("Diagnostics sink %s failed for %s: %s", self._diagnostics.name, source_id, e)

