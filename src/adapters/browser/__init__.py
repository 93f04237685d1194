"""Browser acquisition adapters (launch strategies and the shared manager)."""

from adapters.browser.launchers import (
    BrowserHandle,
    PlaywrightLauncher,
    RealBrowserLauncher,
    StealthLauncher,
    default_launchers,
)
from adapters.browser.manager import BrowserManager

__all__ = [
    "BrowserHandle",
    "BrowserManager",
    "PlaywrightLauncher",
    "RealBrowserLauncher",
    "StealthLauncher",
    "default_launchers",
]
