import asyncio

import pytest

from adapters.axe_engine import AXE_RUN_SCRIPT, build_axe_config, parse_axe_results
from adapters.browser.manager import BrowserManager
from adapters.scan_runner import ScanSessionRunner, looks_blocked
from conftest import FakeBrowser, FakeLauncher, FakePage, axe_payload, axe_violation
from core.domain.models import BrowserStrategy, FindingSource, ScanOutcome


def _runner(settings, pages, strategy=BrowserStrategy.A, launchers=None):
    browser = FakeBrowser(pages)
    manager = BrowserManager(settings, launchers or [FakeLauncher(strategy, browser=browser)])
    return ScanSessionRunner(settings, manager), browser


def test_successful_scan_collects_engine_and_heuristic_findings(settings):
    page = FakePage(
        html="<html><body><h1>a</h1><h1>b</h1></body></html>",
        payload=axe_payload([axe_violation("image-alt", "critical", nodes=3)]),
    )
    runner, browser = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/", "untile"))

    assert result.error is None
    assert [f.rule_id for f in result.violations] == ["image-alt"]
    assert result.violations[0].occurrences == 3
    assert {f.rule_id for f in result.heuristic_violations} == {"heuristic-skip-link", "heuristic-multiple-h1"}
    assert all(f.source is FindingSource.HEURISTIC for f in result.heuristic_violations)
    assert result.passes == ["document-title"]
    assert [a.outcome for a in result.attempts] == [ScanOutcome.SUCCESS]
    assert page.closed
    assert all(context.closed for context in browser.contexts)


def test_context_strategy_sets_headers_on_context(settings):
    page = FakePage()
    runner, browser = _runner(settings, [page])

    asyncio.run(runner.run_scan("https://example.org/"))

    options = browser.contexts[0].options
    assert options["viewport"] == {"width": 1280, "height": 720}
    assert options["extra_http_headers"]["User-Agent"] == settings.user_agent
    assert page.default_timeout == settings.page_timeout_ms
    assert page.navigation_timeout == settings.navigation_timeout_ms


def test_page_strategy_opens_pages_without_context(settings):
    page = FakePage()
    runner, browser = _runner(settings, [page], strategy=BrowserStrategy.B)

    asyncio.run(runner.run_scan("https://example.org/"))

    assert browser.contexts == []
    assert page.headers["Accept-Language"] == settings.accept_language
    assert page.viewport == {"width": 1280, "height": 720}
    assert page.closed


def test_navigation_falls_through_tiers(settings):
    page = FakePage(failing_tiers={"domcontentloaded", "networkidle"})
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error is None
    assert [call[1] for call in page.goto_calls] == ["domcontentloaded", "networkidle", "load"]


def test_retry_after_navigation_failure_returns_second_attempt(settings):
    broken = FakePage(failing_tiers={"domcontentloaded", "networkidle", "load"})
    good = FakePage(payload=axe_payload([axe_violation("label", "serious")]))
    runner, browser = _runner(settings, [broken, good])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error is None
    assert [f.rule_id for f in result.violations] == ["label"]
    assert [a.outcome for a in result.attempts] == [ScanOutcome.NAVIGATION_ERROR, ScanOutcome.SUCCESS]
    assert all(p.closed for p in browser.pages)
    assert all(c.closed for c in browser.contexts)


def test_exhausted_retries_produce_annotated_empty_result(settings):
    pages = [FakePage(failing_tiers={"domcontentloaded", "networkidle", "load"}) for _ in range(2)]
    runner, browser = _runner(settings, pages)

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.violations == [] and result.heuristic_violations == []
    assert result.error.startswith("Failed after 2 attempts: Navigation to https://example.org/ failed")
    assert len(result.attempts) == 2
    assert all(p.closed for p in browser.pages)


def test_cdn_fallback_is_used(settings):
    page = FakePage(failing_scripts={settings.axe_primary_url})
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error is None
    assert page.injected == [settings.axe_fallback_url]


def test_engine_never_ready(settings):
    pages = [FakePage(axe_ready=False) for _ in range(2)]
    runner, _ = _runner(settings, pages)

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert "axe.run not available after 3 polls" in result.error
    assert [a.outcome for a in result.attempts] == [ScanOutcome.ENGINE_ERROR] * 2


def test_engine_callback_error(settings):
    settings.scan_max_attempts = 1
    page = FakePage(payload={"error": "axe is already running"})
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error == "Failed after 1 attempts: axe is already running"
    assert page.closed


def test_engine_in_page_timeout(settings):
    settings.scan_max_attempts = 1
    page = FakePage(payload={"timedOut": True, "error": "axe.run timed out after 1000ms"})
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.attempts[0].outcome is ScanOutcome.TIMEOUT


def test_engine_python_side_timeout(settings):
    class HangingPage(FakePage):
        async def evaluate(self, expression, arg=None):
            if expression == AXE_RUN_SCRIPT:
                await asyncio.sleep(10)
            return await super().evaluate(expression, arg)

    settings.scan_max_attempts = 1
    settings.engine_timeout_ms = 1
    page = HangingPage()
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.attempts[0].outcome is ScanOutcome.TIMEOUT
    assert page.closed


def test_heuristics_can_be_disabled(settings):
    page = FakePage(html="<html><body></body></html>")
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/", use_heuristics=False))

    assert result.heuristic_violations == []


def test_close_errors_do_not_fail_the_scan(settings):
    page = FakePage(close_error=RuntimeError("Target closed"))
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error is None


def test_no_browser_returns_annotated_result(settings):
    launchers = [FakeLauncher(s, error=RuntimeError("no chromium")) for s in BrowserStrategy]
    runner, _ = _runner(settings, [], launchers=launchers)

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error == "No browser available"
    assert result.attempts == []


def test_block_page_detection():
    assert looks_blocked("Just a moment... Cloudflare", "https://x.org") == "cloudflare"
    assert looks_blocked("Home", "https://x.org/forbidden") == "forbidden"
    assert looks_blocked("Home", "https://x.org/") is None


def test_axe_config_and_parsing():
    config = build_axe_config(["wcag2a", "wcag2aa"])
    assert config["runOnly"] == {"type": "tag", "values": ["wcag2a", "wcag2aa"]}

    result = parse_axe_results(
        {
            "violations": [axe_violation("color-contrast", "serious", nodes=0), {"impact": "minor"}],
            "passes": ["html-has-lang", {"id": "document-title"}],
            "incomplete": [],
            "inapplicable": [],
        }
    )
    assert len(result.violations) == 1
    finding = result.violations[0]
    assert finding.affected_element_markup == "N/A"
    assert finding.occurrences == 1
    assert finding.description == "color-contrast help"
    assert result.passes == ["html-has-lang", "document-title"]


@pytest.mark.parametrize(
    "criteria_set, complete, expected",
    [
        ("untile", False, ["wcag2a", "wcag2aa"]),
        ("gov-pt", False, ["wcag2a", "wcag2aa", "wcag21a", "wcag21aa"]),
        ("custom", True, ["wcag2a", "wcag2aa", "wcag21a", "wcag21aa"]),
    ],
)
def test_engine_tags_follow_criteria_set(settings, criteria_set, complete, expected):
    captured = {}

    class RecordingPage(FakePage):
        async def evaluate(self, expression, arg=None):
            if expression == AXE_RUN_SCRIPT:
                captured["tags"] = arg["config"]["runOnly"]["values"]
            return await super().evaluate(expression, arg)

    runner, _ = _runner(settings, [RecordingPage()])
    asyncio.run(runner.run_scan("https://example.org/", criteria_set, complete=complete))

    assert captured["tags"] == expected


def test_failing_page_hook_still_closes_page(settings):
    class StealthFailLauncher(FakeLauncher):
        async def launch(self):
            handle = await super().launch()

            async def broken_hook(page):
                raise RuntimeError("stealth patch failed")

            handle.page_hook = broken_hook
            return handle

    settings.scan_max_attempts = 1
    browser = FakeBrowser([FakePage()])
    manager = BrowserManager(settings, [StealthFailLauncher(BrowserStrategy.B, browser=browser)])
    runner = ScanSessionRunner(settings, manager)

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error == "Failed after 1 attempts: stealth patch failed"
    assert browser.pages[0].closed


def test_snapshot_failure_keeps_engine_result(settings):
    class NavigatedAwayPage(FakePage):
        async def content(self):
            raise RuntimeError("Execution context was destroyed")

    settings.scan_max_attempts = 1
    page = NavigatedAwayPage(payload=axe_payload([axe_violation("image-alt", "critical")]))
    runner, _ = _runner(settings, [page])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert result.error is None
    assert [f.rule_id for f in result.violations] == ["image-alt"]
    assert result.heuristic_violations == []
    assert [a.outcome for a in result.attempts] == [ScanOutcome.SUCCESS]
    assert page.closed


def test_linear_backoff_between_attempts(settings, monkeypatch):
    import adapters.scan_runner as scan_runner

    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr(scan_runner.asyncio, "sleep", fake_sleep)
    settings.scan_max_attempts = 3
    settings.scan_backoff_ms = 3_000
    nav_broken = {"domcontentloaded", "networkidle", "load"}
    runner, _ = _runner(settings, [FakePage(failing_tiers=nav_broken) for _ in range(3)])

    result = asyncio.run(runner.run_scan("https://example.org/"))

    assert sleeps == [3.0, 6.0]
    assert len(result.attempts) == 3
    assert result.error.startswith("Failed after 3 attempts")
