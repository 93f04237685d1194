import asyncio

from adapters.browser.launchers import BrowserHandle, PlaywrightLauncher, StealthLauncher
from adapters.browser.manager import BrowserManager
from conftest import FakeBrowser, FakeDriver, FakeLauncher
from core.domain.models import BrowserStrategy


def _launchers(a_error=None, b_error=None, c_error=None):
    return [
        FakeLauncher(BrowserStrategy.A, error=a_error),
        FakeLauncher(BrowserStrategy.B, error=b_error),
        FakeLauncher(BrowserStrategy.C, error=c_error),
    ]


def test_first_strategy_wins(settings):
    launchers = _launchers()
    manager = BrowserManager(settings, launchers)

    handle = asyncio.run(manager.ensure_browser())

    assert handle.strategy is BrowserStrategy.A
    assert [l.calls for l in launchers] == [1, 0, 0]


def test_ensure_browser_is_idempotent(settings):
    launchers = _launchers()
    manager = BrowserManager(settings, launchers)

    async def scenario():
        first = await manager.ensure_browser()
        second = await manager.ensure_browser()
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second
    assert launchers[0].calls == 1


def test_falls_back_to_real_browser_once(settings):
    launchers = _launchers(a_error=RuntimeError("A down"), b_error=asyncio.TimeoutError())
    manager = BrowserManager(settings, launchers)

    handle = asyncio.run(manager.ensure_browser())

    assert handle.strategy is BrowserStrategy.C
    assert [l.calls for l in launchers] == [1, 1, 1]


def test_all_strategies_failing_leaves_no_handle(settings):
    launchers = _launchers(RuntimeError("A"), RuntimeError("B"), RuntimeError("C"))
    manager = BrowserManager(settings, launchers)

    assert asyncio.run(manager.ensure_browser()) is None
    assert manager.handle is None
    assert launchers[2].calls == 1


def test_disconnected_browser_is_relaunched(settings):
    launchers = _launchers()
    manager = BrowserManager(settings, launchers)

    async def scenario():
        first = await manager.ensure_browser()
        first.browser.connected = False
        return await manager.ensure_browser()

    asyncio.run(scenario())
    assert launchers[0].calls == 2
    assert launchers[0].driver.stopped


def test_close_stops_browser_and_driver(settings):
    launchers = _launchers()
    manager = BrowserManager(settings, launchers)

    async def scenario():
        await manager.ensure_browser()
        await manager.close()

    asyncio.run(scenario())
    assert launchers[0].browser.closed
    assert launchers[0].driver.stopped
    assert manager.handle is None


def test_failed_close_still_clears_handle(settings):
    browser = FakeBrowser(close_error=RuntimeError("target closed"))
    launcher = FakeLauncher(BrowserStrategy.B, browser=browser)
    manager = BrowserManager(settings, [launcher])

    async def scenario():
        await manager.ensure_browser()
        await manager.close()
        return await manager.ensure_browser()

    relaunched = asyncio.run(scenario())
    assert launcher.driver.stopped
    assert launcher.calls == 2
    assert relaunched is not None


def test_close_timeout_is_guarded(settings):
    class HangingBrowser(FakeBrowser):
        async def close(self):
            await asyncio.sleep(10)

    settings.close_timeout_ms = 10
    launcher = FakeLauncher(BrowserStrategy.A, browser=HangingBrowser())
    manager = BrowserManager(settings, [launcher])

    async def scenario():
        await manager.ensure_browser()
        await manager.close()

    asyncio.run(scenario())
    assert manager.handle is None
    assert launcher.driver.stopped


class _FakeChromium:
    def __init__(self, error=None):
        self.error = error
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.error is not None:
            raise self.error
        return FakeBrowser()


class _FakeDriverFactory:
    def __init__(self, chromium):
        self.driver = FakeDriver()
        self.driver.chromium = chromium

    def __call__(self):
        return self

    async def start(self):
        return self.driver


def test_playwright_launcher_uses_hardening_flags(settings):
    chromium = _FakeChromium()
    factory = _FakeDriverFactory(chromium)

    handle = asyncio.run(PlaywrightLauncher(settings, driver_factory=factory).launch())

    assert isinstance(handle, BrowserHandle)
    assert handle.strategy is BrowserStrategy.A
    assert "--disable-blink-features=AutomationControlled" in chromium.launch_kwargs["args"]
    assert chromium.launch_kwargs["timeout"] == settings.launch_timeout_ms


def test_launcher_stops_driver_when_launch_fails(settings):
    chromium = _FakeChromium(error=RuntimeError("Executable doesn't exist"))
    factory = _FakeDriverFactory(chromium)

    async def scenario():
        try:
            await StealthLauncher(settings, driver_factory=factory).launch()
        except RuntimeError:
            return True
        return False

    assert asyncio.run(scenario())
    assert factory.driver.stopped
