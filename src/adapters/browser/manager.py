"""Browser acquisition manager.

Owns the single shared `BrowserHandle`. `ensure_browser()` walks the
launchers in order and never raises: when every strategy fails the handle
stays `None` and callers proceed without a browser.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from adapters.browser.launchers import BrowserHandle, default_launchers
from core.config import AppSettings
from core.domain.errors import CleanupFailure, LaunchFailure
from core.interfaces.browser import BrowserLauncher


logger = logging.getLogger(__name__)


class BrowserManager:
    def __init__(
        self,
        settings: AppSettings | None = None,
        launchers: Sequence[BrowserLauncher] | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._launchers = list(launchers) if launchers is not None else default_launchers(self._settings)
        self._handle: BrowserHandle | None = None
        self._lock = asyncio.Lock()

    @property
    def handle(self) -> BrowserHandle | None:
        return self._handle

    async def ensure_browser(self) -> BrowserHandle | None:
        """Return the live handle, launching one if needed."""

        if self._handle is not None and self._handle.is_alive:
            return self._handle

        async with self._lock:
            if self._handle is not None and self._handle.is_alive:
                return self._handle
            if self._handle is not None:
                stale, self._handle = self._handle, None
                logger.warning("Browser (strategy %s) is no longer connected; relaunching", stale.strategy.value)
                try:
                    await stale.force_close()
                except Exception as exc:
                    logger.warning("%s", CleanupFailure(f"Stopping stale driver failed: {str(exc) or type(exc).__name__}"))

            errors: dict[str, str] = {}
            for launcher in self._launchers:
                name = launcher.strategy.value
                logger.info("Launching browser with strategy %s", name)
                try:
                    handle = await launcher.launch()
                except Exception as exc:
                    message = str(exc) or type(exc).__name__
                    errors[name] = message
                    logger.warning("Strategy %s failed: %s", name, message)
                    continue

                self._handle = handle
                logger.info("Browser ready (strategy %s)", name)
                return handle

            logger.error("%s", LaunchFailure(errors))
            return None

    async def close(self) -> None:
        """Close the shared browser under a timeout guard.

        The handle is cleared even when the close fails or times out.
        """

        handle = self._handle
        if handle is None:
            return

        try:
            await asyncio.wait_for(handle.close(), timeout=self._settings.close_timeout_ms / 1000)
            logger.info("Browser closed (strategy %s)", handle.strategy.value)
        except Exception as exc:
            logger.warning("%s", CleanupFailure(f"Browser close failed: {str(exc) or type(exc).__name__}"))
            try:
                await handle.force_close()
            except Exception as force_exc:
                logger.error("Forced browser close failed: %s", force_exc)
        finally:
            self._handle = None
