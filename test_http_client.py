"""
Tests for the HTTP transport: retries, header merging, and browser escalation
under a per-run launch budget.
"""

import asyncio

import aiohttp
import pytest

from core.infra.http import BrowserBudget, HttpClient
from core.infra.sel import DEFAULT_BROWSER_UA, RenderedPage
from core.models import FailureKind, TransportMode

URL = "https://example.test/page"


class FakeResponse:
    def __init__(self, status, body="", url=URL):
        self.status = status
        self.url = url
        self._body = body

    async def text(self, errors="strict"):
        return self._body


class _RequestContext:
    def __init__(self, item):
        self._item = item

    async def __aenter__(self):
        if isinstance(self._item, BaseException):
            raise self._item
        return self._item

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays scripted responses; the last one repeats forever."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        return _RequestContext(item)


class FakeBrowser:
    def __init__(self, page=None, fail_start=False, fail_render=False):
        self.page = page
        self.fail_start = fail_start
        self.fail_render = fail_render
        self.started = False
        self.stopped = False
        self.render_kwargs = None

    async def start(self):
        if self.fail_start:
            raise RuntimeError("executable doesn't exist")
        self.started = True

    async def render(self, url, **kwargs):
        self.render_kwargs = kwargs
        if self.fail_render:
            raise RuntimeError("target closed")
        return self.page

    async def stop(self):
        self.stopped = True


class BrowserFactory:
    def __init__(self, **browser_kwargs):
        self._kwargs = browser_kwargs
        self.launched = []

    def __call__(self):
        browser = FakeBrowser(**self._kwargs)
        self.launched.append(browser)
        return browser


class RecordingSink:
    name = "RecordingSink"

    def __init__(self, fail=False):
        self.artifacts = []
        self.fail = fail

    async def handle(self, artifact):
        self.artifacts.append(artifact)
        if self.fail:
            raise OSError("disk full")


def make_client(session, **kwargs):
    kwargs.setdefault("base_delay", 0)
    kwargs.setdefault("max_delay", 0)
    kwargs.setdefault("max_jitter", 0)
    return HttpClient(session=session, **kwargs)


def fetch(client, **kwargs):
    return asyncio.run(client.fetch(URL, **kwargs))


# ---------------------------------------------- #
# Direct fetches
def test_success_returns_body_and_final_url():
    session = FakeSession(FakeResponse(200, "<html>ok</html>", url="https://example.test/final"))
    outcome = fetch(make_client(session))

    assert outcome.success
    assert outcome.http_status == 200
    assert outcome.body_text == "<html>ok</html>"
    assert outcome.final_url == "https://example.test/final"
    assert outcome.transport_mode is TransportMode.DIRECT
    assert len(session.calls) == 1


def test_persistent_server_error_makes_exactly_max_retries_plus_one_attempts():
    session = FakeSession(FakeResponse(500))
    outcome = fetch(make_client(session, max_retries=2))

    assert len(session.calls) == 3
    assert not outcome.success
    assert outcome.error_kind is FailureKind.UNAVAILABLE
    assert outcome.http_status == 500
    assert outcome.explanation == "HTTP 500"


def test_per_call_retry_override():
    session = FakeSession(FakeResponse(503))
    fetch(make_client(session, max_retries=4), max_retries=0)

    assert len(session.calls) == 1


def test_timeout_is_retried_until_success():
    session = FakeSession(asyncio.TimeoutError(), FakeResponse(200, "late"))
    outcome = fetch(make_client(session))

    assert outcome.success
    assert outcome.body_text == "late"
    assert len(session.calls) == 2


def test_network_errors_end_unavailable():
    session = FakeSession(aiohttp.ClientConnectionError("connection refused"))
    outcome = fetch(make_client(session, max_retries=1))

    assert len(session.calls) == 2
    assert outcome.error_kind is FailureKind.UNAVAILABLE
    assert outcome.error_detail == "connection refused"
    assert outcome.http_status == 0


def test_timeout_detail_names_the_limit():
    session = FakeSession(asyncio.TimeoutError())
    outcome = fetch(make_client(session, max_retries=0, timeout=7))

    assert outcome.error_detail == "Timeout after 7s"


def test_unexpected_exception_is_not_retried():
    session = FakeSession(ValueError("boom"))
    outcome = fetch(make_client(session, max_retries=3))

    assert len(session.calls) == 1
    assert outcome.error_kind is FailureKind.UNAVAILABLE
    assert outcome.error_detail == "ValueError: boom"


def test_request_headers_override_defaults():
    session = FakeSession(FakeResponse(200))
    fetch(make_client(session), headers={"Accept": "application/json"})

    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == URL
    assert kwargs["headers"]["Accept"] == "application/json"
    assert kwargs["headers"]["User-Agent"] == DEFAULT_BROWSER_UA
    assert kwargs["timeout"].total == 10.0


def test_backoff_doubles_and_caps():
    client = HttpClient(session=FakeSession(FakeResponse(200)), base_delay=1, max_delay=5, max_jitter=0)

    assert [client._backoff(n) for n in (1, 2, 3, 4)] == [1, 2, 4, 5]


# ---------------------------------------------- #
# Blocking and browser escalation
def test_blocked_without_escalation_does_not_retry_or_launch():
    session = FakeSession(FakeResponse(403))
    factory = BrowserFactory()
    outcome = fetch(make_client(session, browser_factory=factory))

    assert len(session.calls) == 1
    assert outcome.error_kind is FailureKind.BLOCKED
    assert outcome.explanation == "HTTP 403"
    assert factory.launched == []


def test_escalation_returns_rendered_page():
    session = FakeSession(FakeResponse(429))
    factory = BrowserFactory(page=RenderedPage(status=200, url=URL, html="<html>rendered</html>"))
    client = make_client(session, browser_factory=factory, browser_budget=BrowserBudget(3))
    outcome = fetch(client, allow_browser_escalation=True)

    assert outcome.success
    assert outcome.transport_mode is TransportMode.BROWSER
    assert outcome.body_text == "<html>rendered</html>"
    assert client.budget.used == 1
    browser = factory.launched[0]
    assert browser.stopped
    assert browser.render_kwargs["timeout_ms"] == 30000
    assert browser.render_kwargs["max_html_chars"] == 200_000


def test_budget_exhaustion_blocks_without_launching():
    session = FakeSession(FakeResponse(403))
    factory = BrowserFactory(page=RenderedPage(status=200, url=URL, html="ok"))
    client = make_client(session, browser_factory=factory, browser_budget=BrowserBudget(3))

    async def four_fetches():
        return [await client.fetch(URL, allow_browser_escalation=True) for _ in range(4)]

    outcomes = asyncio.run(four_fetches())

    assert [o.success for o in outcomes] == [True, True, True, False]
    assert len(factory.launched) == 3
    last = outcomes[-1]
    assert last.error_kind is FailureKind.BLOCKED
    assert "budget exhausted" in last.error_detail
    assert client.budget.remaining == 0


def test_launch_failure_does_not_consume_budget():
    session = FakeSession(FakeResponse(403))
    factory = BrowserFactory(fail_start=True)
    client = make_client(session, browser_factory=factory, browser_budget=BrowserBudget(3))
    outcome = fetch(client, allow_browser_escalation=True)

    assert outcome.error_kind is FailureKind.BLOCKED
    assert "browser launch failed" in outcome.error_detail
    assert client.budget.remaining == 3
    assert factory.launched[0].stopped


def test_render_exception_is_blocked_and_browser_released():
    session = FakeSession(FakeResponse(403))
    factory = BrowserFactory(fail_render=True)
    outcome = fetch(make_client(session, browser_factory=factory), allow_browser_escalation=True)

    assert outcome.error_kind is FailureKind.BLOCKED
    assert outcome.error_detail.startswith("Browser fetch failed")
    assert factory.launched[0].stopped


@pytest.mark.parametrize(
    "page_status, expected_kind",
    [(403, FailureKind.BLOCKED), (0, FailureKind.BLOCKED), (500, FailureKind.UNAVAILABLE)],
)
def test_browser_failure_status_is_classified_and_captured(page_status, expected_kind):
    session = FakeSession(FakeResponse(403))
    page = RenderedPage(status=page_status, url=URL, html="<html>denied</html>", title="Denied", screenshot=b"png")
    sink = RecordingSink()
    client = make_client(session, browser_factory=BrowserFactory(page=page), diagnostics=sink)
    outcome = fetch(client, allow_browser_escalation=True, source_id="fortnite")

    assert not outcome.success
    assert outcome.error_kind is expected_kind
    assert outcome.transport_mode is TransportMode.BROWSER
    assert len(sink.artifacts) == 1
    artifact = sink.artifacts[0]
    assert artifact.source_id == "fortnite"
    assert artifact.title == "Denied"
    assert artifact.screenshot == b"png"


def test_navigation_error_is_blocked():
    session = FakeSession(FakeResponse(403))
    page = RenderedPage(status=0, url=URL, error="net::ERR_TIMED_OUT")
    outcome = fetch(make_client(session, browser_factory=BrowserFactory(page=page)), allow_browser_escalation=True)

    assert outcome.error_kind is FailureKind.BLOCKED
    assert outcome.error_detail == "Browser navigation failed: net::ERR_TIMED_OUT"


def test_failing_diagnostics_sink_does_not_change_outcome():
    session = FakeSession(FakeResponse(403))
    page = RenderedPage(status=500, url=URL, html="x")
    client = make_client(session, browser_factory=BrowserFactory(page=page), diagnostics=RecordingSink(fail=True))
    outcome = fetch(client, allow_browser_escalation=True)

    assert outcome.error_kind is FailureKind.UNAVAILABLE
    assert outcome.error_detail == "HTTP 500 via browser"


# ---------------------------------------------- #
# BrowserBudget
def test_budget_counts_and_never_exceeds_limit():
    budget = BrowserBudget(2)
    assert budget.try_acquire()
    assert budget.try_acquire()
    assert not budget.try_acquire()
    assert budget.used == 2

    budget.release()
    budget.release()
    budget.release()
    assert budget.remaining == 2


def test_negative_budget_rejected():
    with pytest.raises(ValueError):
        BrowserBudget(-1)
