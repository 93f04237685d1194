"""Browser launch strategies.

Each launcher starts one driver + Chromium process and wraps it in a
`BrowserHandle`. The manager tries them in order; the first that succeeds
owns the browser for the whole validator lifetime.

- A: standard Playwright Chromium with hardening flags (context per scan).
- B: Playwright Chromium plus `playwright-stealth` applied to every page.
- C: rebrowser-playwright driving the installed Chrome channel.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from playwright.async_api import async_playwright
from playwright_stealth import Stealth
from rebrowser_playwright.async_api import async_playwright as rebrowser_async_playwright

from core.config import AppSettings
from core.domain.models import BrowserStrategy


logger = logging.getLogger(__name__)

PageHook = Callable[[Any], Awaitable[None]]
DriverFactory = Callable[[], Any]

STANDARD_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--disable-web-security",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-extensions",
    "--disable-plugins",
    "--hide-scrollbars",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-first-run",
)

STEALTH_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
)

REAL_BROWSER_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-blink-features=AutomationControlled",
)

REAL_BROWSER_VIEWPORT = {"width": 1280, "height": 720}


@dataclass
class BrowserHandle:
    """Opaque handle to the one running browser process."""

    strategy: BrowserStrategy
    browser: Any
    driver: Any = None
    page_hook: PageHook | None = None
    viewport: dict[str, int] | None = None

    @property
    def is_alive(self) -> bool:
        is_connected = getattr(self.browser, "is_connected", None)
        if callable(is_connected):
            return bool(is_connected())
        return self.browser is not None

    async def close(self) -> None:
        """Close the browser, then stop the driver that launched it."""

        try:
            await self.browser.close()
        finally:
            await self._stop_driver()

    async def force_close(self) -> None:
        """Stop the driver without waiting for a graceful browser close."""

        await self._stop_driver()

    async def _stop_driver(self) -> None:
        driver, self.driver = self.driver, None
        if driver is not None:
            await driver.stop()


async def _stop_quietly(driver: Any) -> None:
    try:
        await driver.stop()
    except Exception as exc:
        logger.debug("Driver stop after failed launch also failed: %s", exc)


class PlaywrightLauncher:
    """Strategy A: standard Playwright Chromium."""

    strategy = BrowserStrategy.A

    def __init__(self, settings: AppSettings, *, driver_factory: DriverFactory | None = None) -> None:
        self._settings = settings
        self._driver_factory = driver_factory or async_playwright

    async def launch(self) -> BrowserHandle:
        driver = await self._driver_factory().start()
        try:
            browser = await driver.chromium.launch(
                headless=self._settings.headless,
                args=list(STANDARD_LAUNCH_ARGS),
                timeout=self._settings.launch_timeout_ms,
            )
        except Exception:
            await _stop_quietly(driver)
            raise
        return BrowserHandle(strategy=self.strategy, browser=browser, driver=driver)


class StealthLauncher:
    """Strategy B: Playwright Chromium with stealth patches on every page.

    The launch is raced against its own timer; the stealth patches are
    applied per page through `BrowserHandle.page_hook`.
    """

    strategy = BrowserStrategy.B

    def __init__(
        self,
        settings: AppSettings,
        *,
        driver_factory: DriverFactory | None = None,
        stealth: Stealth | None = None,
    ) -> None:
        self._settings = settings
        self._driver_factory = driver_factory or async_playwright
        self._stealth = stealth or Stealth()

    async def launch(self) -> BrowserHandle:
        driver = await self._driver_factory().start()
        try:
            browser = await asyncio.wait_for(
                driver.chromium.launch(
                    headless=self._settings.headless,
                    args=list(STEALTH_LAUNCH_ARGS),
                ),
                timeout=self._settings.stealth_launch_timeout_ms / 1000,
            )
        except Exception:
            await _stop_quietly(driver)
            raise
        return BrowserHandle(
            strategy=self.strategy,
            browser=browser,
            driver=driver,
            page_hook=self._stealth.apply_stealth_async,
        )


class RealBrowserLauncher:
    """Strategy C: rebrowser-playwright driving an installed Chrome."""

    strategy = BrowserStrategy.C

    def __init__(self, settings: AppSettings, *, driver_factory: DriverFactory | None = None) -> None:
        self._settings = settings
        self._driver_factory = driver_factory or rebrowser_async_playwright

    async def launch(self) -> BrowserHandle:
        driver = await self._driver_factory().start()
        launch_kwargs: dict[str, Any] = {
            "headless": self._settings.headless,
            "args": list(REAL_BROWSER_LAUNCH_ARGS),
            "timeout": self._settings.launch_timeout_ms,
        }
        if self._settings.real_browser_channel:
            launch_kwargs["channel"] = self._settings.real_browser_channel
        try:
            browser = await driver.chromium.launch(**launch_kwargs)
        except Exception:
            await _stop_quietly(driver)
            raise
        return BrowserHandle(
            strategy=self.strategy,
            browser=browser,
            driver=driver,
            viewport=dict(REAL_BROWSER_VIEWPORT),
        )


def default_launchers(settings: AppSettings) -> list[Any]:
    """Launchers in fallback order (A, B, C)."""

    return [
        PlaywrightLauncher(settings),
        StealthLauncher(settings),
        RealBrowserLauncher(settings),
    ]
