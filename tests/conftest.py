"""In-memory stand-ins for the browser stack.

The fakes mirror the small Playwright surface the engine uses. Page
behaviour is scripted per instance (failing navigation tiers, engine
payloads, HTML) and `FakeBrowser` hands out pages from a queue so each scan
attempt can behave differently.
"""

from __future__ import annotations

import pytest

from adapters.axe_engine import AXE_READY_SCRIPT, AXE_RUN_SCRIPT
from adapters.browser.launchers import BrowserHandle
from adapters.detectors import COLOR_PROBE_SCRIPT
from core.config import AppSettings


DEFAULT_HTML = """
<html lang="en"><body>
  <a href="#main">Skip to content</a>
  <main id="main"><h1>Title</h1><h2>Section</h2><p>Body</p></main>
</body></html>
"""


def axe_payload(violations=None, passes=None):
    return {
        "results": {
            "violations": violations or [],
            "passes": passes if passes is not None else ["document-title"],
            "incomplete": [],
            "inapplicable": ["video-caption"],
        }
    }


def axe_violation(rule_id="image-alt", impact="critical", nodes=1):
    return {
        "id": rule_id,
        "impact": impact,
        "description": f"{rule_id} description",
        "help": f"{rule_id} help",
        "helpUrl": f"https://dequeuniversity.com/rules/axe/4.7/{rule_id}",
        "tags": ["wcag2a"],
        "nodes": [{"html": f"<div data-n='{i}'></div>", "target": ["div"]} for i in range(nodes)],
    }


class FakePage:
    def __init__(
        self,
        *,
        html=DEFAULT_HTML,
        title="Example page",
        url="https://example.org/",
        failing_tiers=(),
        failing_scripts=(),
        axe_ready=True,
        payload=None,
        run_error=None,
        colors=None,
        close_error=None,
    ):
        self.html = html
        self._title = title
        self.url = url
        self.failing_tiers = set(failing_tiers)
        self.failing_scripts = set(failing_scripts)
        self.axe_ready = axe_ready
        self.payload = payload if payload is not None else axe_payload()
        self.run_error = run_error
        self.colors = colors or []
        self.close_error = close_error

        self.closed = False
        self.goto_calls = []
        self.injected = []
        self.evaluated = []
        self.headers = None
        self.viewport = None
        self.default_timeout = None
        self.navigation_timeout = None

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if wait_until in self.failing_tiers:
            raise RuntimeError(f"net::ERR_TIMED_OUT ({wait_until})")
        return None

    async def title(self):
        return self._title

    async def evaluate(self, expression, arg=None):
        self.evaluated.append(expression)
        if expression == AXE_READY_SCRIPT:
            return self.axe_ready
        if expression == AXE_RUN_SCRIPT:
            if self.run_error is not None:
                raise self.run_error
            return self.payload
        if expression == COLOR_PROBE_SCRIPT:
            return self.colors
        raise AssertionError(f"unexpected script: {expression[:40]}")

    async def add_script_tag(self, url=None, **kwargs):
        if url in self.failing_scripts:
            raise RuntimeError(f"failed to load {url}")
        self.injected.append(url)

    async def content(self):
        return self.html

    async def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    async def set_viewport_size(self, viewport):
        self.viewport = viewport

    async def set_extra_http_headers(self, headers):
        self.headers = headers

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout):
        self.navigation_timeout = timeout


class FakeContext:
    def __init__(self, browser, options):
        self.browser = browser
        self.options = options
        self.closed = False
        self.pages = []

    async def new_page(self):
        page = self.browser.next_page()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, pages=None, *, close_error=None, connected=True):
        self._queue = list(pages or [])
        self.close_error = close_error
        self.connected = connected
        self.closed = False
        self.contexts = []
        self.pages = []

    def next_page(self):
        page = self._queue.pop(0) if self._queue else FakePage()
        self.pages.append(page)
        return page

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def new_page(self, **options):
        return self.next_page()

    def is_connected(self):
        return self.connected and not self.closed

    async def close(self):
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class FakeDriver:
    def __init__(self):
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeLauncher:
    def __init__(self, strategy, *, browser=None, error=None):
        self.strategy = strategy
        self.browser = browser or FakeBrowser()
        self.error = error
        self.calls = 0
        self.driver = FakeDriver()

    async def launch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return BrowserHandle(strategy=self.strategy, browser=self.browser, driver=self.driver)


@pytest.fixture
def settings():
    return AppSettings(
        settle_delay_ms=0,
        engine_poll_attempts=3,
        engine_poll_interval_ms=0,
        engine_timeout_ms=1_000,
        scan_backoff_ms=0,
        delay_between_pages_ms=0,
        close_timeout_ms=1_000,
    )
