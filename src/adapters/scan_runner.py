"""Scan session runner.

One attempt = open an isolated page, navigate, inject the engine, run it,
run the heuristic detectors, close the page. Attempt-level failures are
retried with linear backoff and, once exhausted, folded into an
error-annotated `EngineResult`; `run_scan` itself never raises them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from adapters.axe_engine import inject_axe, parse_axe_results, run_axe, wait_for_axe
from adapters.browser.launchers import BrowserHandle
from adapters.browser.manager import BrowserManager
from adapters.detectors import capture_snapshot, run_detectors
from core.config import AppSettings
from core.domain.criteria_set import CriteriaSet
from core.domain.errors import (
    CleanupFailure,
    NavigationFailure,
    ScanTimeout,
)
from core.domain.models import EngineResult, ScanAttempt, ScanOutcome
from core.interfaces.browser import AuditPage


logger = logging.getLogger(__name__)

BLOCK_PAGE_INDICATORS: tuple[str, ...] = (
    "cloudflare",
    "checking your browser",
    "error 404",
    "error 500",
    "access denied",
    "forbidden",
)

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9"


def _outcome_for(exc: BaseException) -> ScanOutcome:
    if isinstance(exc, (ScanTimeout, asyncio.TimeoutError)):
        return ScanOutcome.TIMEOUT
    if isinstance(exc, NavigationFailure):
        return ScanOutcome.NAVIGATION_ERROR
    return ScanOutcome.ENGINE_ERROR


def _message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def looks_blocked(title: str, url: str) -> str | None:
    """Return the first block/error indicator found in the title or URL."""

    haystack = f"{title} {url}".lower()
    for indicator in BLOCK_PAGE_INDICATORS:
        if indicator in haystack:
            return indicator
    return None


class ScanSessionRunner:
    def __init__(self, settings: AppSettings, manager: BrowserManager) -> None:
        self._settings = settings
        self._manager = manager

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": ACCEPT_HEADER,
            "Accept-Language": self._settings.accept_language,
            "User-Agent": self._settings.user_agent,
        }

    async def _open_page(self, handle: BrowserHandle) -> tuple[Any, Any]:
        """Open an isolated page; the context is `None` for page-based strategies."""

        viewport = handle.viewport or {
            "width": self._settings.viewport_width,
            "height": self._settings.viewport_height,
        }

        page = context = None
        try:
            if handle.strategy.context_based:
                context = await handle.browser.new_context(
                    viewport=viewport,
                    user_agent=self._settings.user_agent,
                    extra_http_headers=self._headers(),
                )
                page = await context.new_page()
            else:
                page = await handle.browser.new_page()
                await page.set_viewport_size(viewport)
                await page.set_extra_http_headers(self._headers())

            page.set_default_timeout(self._settings.page_timeout_ms)
            page.set_default_navigation_timeout(self._settings.navigation_timeout_ms)

            if handle.page_hook is not None:
                await handle.page_hook(page)
        except Exception:
            await self._close_quietly(page, context)
            raise
        return page, context

    async def _navigate(self, page: AuditPage, url: str) -> str:
        tiers = (
            ("domcontentloaded", self._settings.nav_domcontentloaded_timeout_ms),
            ("networkidle", self._settings.nav_networkidle_timeout_ms),
            ("load", self._settings.nav_load_timeout_ms),
        )
        errors: list[str] = []
        for wait_until, timeout_ms in tiers:
            try:
                await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
                return wait_until
            except Exception as exc:
                message = _message(exc)
                errors.append(f"{wait_until}: {message}")
                logger.debug("Navigation tier %s failed for %s: %s", wait_until, url, message)
        raise NavigationFailure(url, errors)

    async def _warn_if_blocked(self, page: AuditPage, url: str) -> None:
        try:
            title = await page.title()
        except Exception as exc:
            logger.debug("Could not read page title for %s: %s", url, exc)
            title = ""
        indicator = looks_blocked(title, str(getattr(page, "url", "") or ""))
        if indicator:
            logger.warning("Page %s looks like a block/error page (%r in title/url); continuing", url, indicator)

    async def _close_quietly(self, page: AuditPage | None, context: Any) -> None:
        for label, target in (("page", page), ("context", context)):
            if target is None:
                continue
            try:
                await target.close()
            except Exception as exc:
                logger.warning("%s", CleanupFailure(f"Closing {label} failed: {_message(exc)}"))

    async def _attempt(
        self,
        handle: BrowserHandle,
        url: str,
        tags: list[str],
        *,
        use_heuristics: bool,
    ) -> EngineResult:
        page = context = None
        try:
            page, context = await self._open_page(handle)
            tier = await self._navigate(page, url)
            logger.debug("Navigated to %s (%s)", url, tier)

            await self._warn_if_blocked(page, url)

            if self._settings.settle_delay_ms:
                await asyncio.sleep(self._settings.settle_delay_ms / 1000)

            await inject_axe(page, self._settings.axe_primary_url, self._settings.axe_fallback_url)
            await wait_for_axe(
                page,
                attempts=self._settings.engine_poll_attempts,
                interval_ms=self._settings.engine_poll_interval_ms,
            )
            raw = await run_axe(page, tags, timeout_ms=self._settings.engine_timeout_ms)
            result = parse_axe_results(raw)

            if use_heuristics:
                try:
                    snapshot = await capture_snapshot(page)
                    result.heuristic_violations = run_detectors(snapshot)
                except Exception as exc:
                    logger.warning("Heuristic checks skipped for %s: %s", url, _message(exc))
            return result
        finally:
            await self._close_quietly(page, context)

    async def run_scan(
        self,
        url: str,
        criteria_set: CriteriaSet | str | None = None,
        *,
        complete: bool = False,
        use_heuristics: bool = True,
    ) -> EngineResult:
        """Scan `url`, retrying attempt-level failures."""

        tags = CriteriaSet.parse(criteria_set).engine_tags(complete=complete)
        max_attempts = self._settings.scan_max_attempts
        attempts: list[ScanAttempt] = []
        last_error = "no attempt made"

        for attempt_number in range(1, max_attempts + 1):
            handle = await self._manager.ensure_browser()
            if handle is None:
                logger.error("No browser available for %s", url)
                result = EngineResult.empty(error="No browser available")
                result.attempts = attempts
                return result

            started = time.perf_counter()
            try:
                result = await self._attempt(handle, url, tags, use_heuristics=use_heuristics)
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - started) * 1000
                last_error = _message(exc)
                attempts.append(
                    ScanAttempt(
                        attempt_number=attempt_number,
                        url=url,
                        outcome=_outcome_for(exc),
                        error=last_error,
                        elapsed_ms=elapsed_ms,
                    )
                )
                logger.warning(
                    "Attempt %s/%s for %s failed after %.0fms (%s): %s",
                    attempt_number,
                    max_attempts,
                    url,
                    elapsed_ms,
                    type(exc).__name__,
                    last_error,
                )
            else:
                elapsed_ms = (time.perf_counter() - started) * 1000
                attempts.append(
                    ScanAttempt(
                        attempt_number=attempt_number,
                        url=url,
                        outcome=ScanOutcome.SUCCESS,
                        elapsed_ms=elapsed_ms,
                        raw_result={
                            "violations": len(result.violations),
                            "passes": len(result.passes),
                            "incomplete": len(result.incomplete),
                            "inapplicable": len(result.inapplicable),
                            "heuristic_violations": len(result.heuristic_violations),
                        },
                    )
                )
                logger.info(
                    "Scan of %s succeeded on attempt %s in %.0fms (%s violations, %s heuristic)",
                    url,
                    attempt_number,
                    elapsed_ms,
                    len(result.violations),
                    len(result.heuristic_violations),
                )
                result.attempts = attempts
                return result

            if attempt_number < max_attempts and self._settings.scan_backoff_ms:
                await asyncio.sleep(attempt_number * self._settings.scan_backoff_ms / 1000)

        result = EngineResult.empty(error=f"Failed after {len(attempts)} attempts: {last_error}")
        result.attempts = attempts
        return result
