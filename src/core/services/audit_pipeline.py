"""Audit orchestration.

`WCAGValidator` ties the pieces together for callers (CLIs, APIs, batch
jobs, tests): it owns the shared browser, delegates the scan to the
session runner and reduces the result into an `AuditResult`. Nothing here
raises for scan or browser problems; failures surface as results with the
-1 score sentinel.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from adapters.browser.manager import BrowserManager
from adapters.scan_runner import ScanSessionRunner
from core.config import AppSettings
from core.domain.criteria_set import CriteriaSet
from core.domain.models import (
    AuditResult,
    CommonIssue,
    ComplianceLevel,
    ComplianceResult,
    EngineResult,
    MultiPageAuditResult,
    MultiPageSummary,
    PageAuditResult,
    PageScore,
    Severity,
)
from core.resources_loader import get_criteria_ids_by_set
from core.services.normalizer import normalize
from core.services.scoring import (
    SCORE_UNAVAILABLE,
    calculate_legal_risk_metrics,
    calculate_wcag_score,
    generate_summary,
    risk_level_for,
    validate_compliance,
)


logger = logging.getLogger(__name__)


@dataclass
class AuditHooks:
    """Optional callbacks for UI layers (progress of multi-page audits)."""

    page_started: Callable[[int, int, str], None] | None = None
    page_finished: Callable[[int, int, PageAuditResult], None] | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_multi_page_summary(page_results: Sequence[PageAuditResult]) -> MultiPageSummary:
    """Aggregate per-page results; pages scored -1 are left out of score stats."""

    if not page_results:
        return MultiPageSummary()

    by_criteria: Counter[str] = Counter()
    by_severity: dict[Severity, int] = {severity: 0 for severity in Severity}
    pages_by_criteria: dict[str, list[str]] = defaultdict(list)
    total = 0

    for page in page_results:
        result = page.audit_result
        total += len(result.violations)
        for violation in result.violations:
            by_criteria[violation.criteria.id] += 1
            by_severity[violation.severity] += 1
            if page.url not in pages_by_criteria[violation.criteria.id]:
                pages_by_criteria[violation.criteria.id].append(page.url)

    scored = [PageScore(url=p.url, score=p.audit_result.wcag_score) for p in page_results if p.audit_result.score_available]
    average = round(sum(s.score for s in scored) / len(scored), 2) if scored else SCORE_UNAVAILABLE
    best = max(scored, key=lambda s: s.score) if scored else None
    worst = min(scored, key=lambda s: s.score) if scored else None

    common = [
        CommonIssue(criteria=criterion_id, count=by_criteria[criterion_id], pages=pages)
        for criterion_id, pages in pages_by_criteria.items()
        if len(pages) > 1
    ]
    common.sort(key=lambda issue: issue.count, reverse=True)

    average_legal = round(
        sum(p.audit_result.legal_risk_metrics.legal_risk_score for p in page_results) / len(page_results),
        2,
    )

    return MultiPageSummary(
        total_violations=total,
        average_score=average,
        best_page=best,
        worst_page=worst,
        violations_by_criteria=dict(by_criteria),
        violations_by_severity=by_severity,
        common_issues=common,
        overall_risk_level=risk_level_for(average_legal),
        average_legal_risk=average_legal,
    )


class WCAGValidator:
    """Runs WCAG audits against live pages with one shared browser.

    Usage:

        async with WCAGValidator() as validator:
            result = await validator.audit_site("https://example.org", "site-1")
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        manager: BrowserManager | None = None,
        runner: ScanSessionRunner | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self._manager = manager or BrowserManager(self.settings)
        self._runner = runner or ScanSessionRunner(self.settings, self._manager)

    async def __aenter__(self) -> "WCAGValidator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._manager.close()

    def _score_scale(self, use_standard_formula: bool) -> int:
        return 10 if use_standard_formula else 100

    def _error_result(
        self,
        url: str,
        site_id: str,
        criteria_set: CriteriaSet,
        message: str,
        *,
        use_standard_formula: bool = False,
    ) -> AuditResult:
        return AuditResult(
            site_id=site_id,
            url=url,
            wcag_score=SCORE_UNAVAILABLE,
            score_scale=self._score_scale(use_standard_formula),
            violations=[],
            legal_risk_metrics=calculate_legal_risk_metrics([]),
            summary=generate_summary([], SCORE_UNAVAILABLE),
            engine_result=EngineResult.empty(error=message),
            criteria_set=criteria_set,
            compliance=ComplianceResult(
                level=ComplianceLevel.NONE,
                score=SCORE_UNAVAILABLE,
                reasons=[f"audit failed: {message}"],
            ),
        )

    async def audit_site(
        self,
        url: str,
        site_id: str,
        *,
        is_complete_audit: bool = False,
        use_standard_formula: bool = False,
        criteria_set: CriteriaSet | str = CriteriaSet.UNTILE,
        custom_criteria: Iterable[str] | None = None,
        use_access_monitor: bool = True,
    ) -> AuditResult:
        """Audit one page and return a fully populated `AuditResult`."""

        resolved = CriteriaSet.parse(criteria_set)
        logger.info("Auditing %s (%s)", url, resolved.label())

        try:
            criteria_ids = get_criteria_ids_by_set(resolved, custom_criteria)

            handle = await self._manager.ensure_browser()
            if handle is None:
                logger.error("No browser available; %s will not be scored", url)
                engine_result = EngineResult.empty(error="No browser available")
            else:
                engine_result = await self._runner.run_scan(
                    url,
                    resolved,
                    complete=is_complete_audit,
                    use_heuristics=use_access_monitor and self.settings.use_heuristics,
                )

            current = self._manager.handle
            strategy = current.strategy if current is not None else None

            violations = normalize(engine_result, url)
            score = calculate_wcag_score(
                violations,
                engine_result,
                use_standard_formula=use_standard_formula,
                perfect_score_on_passes=self.settings.perfect_score_on_passes,
            )
            scale = self._score_scale(use_standard_formula)

            result = AuditResult(
                site_id=site_id,
                url=url,
                wcag_score=score,
                score_scale=scale,
                violations=violations,
                legal_risk_metrics=calculate_legal_risk_metrics(violations),
                summary=generate_summary(violations, score),
                engine_result=engine_result,
                criteria_set=resolved,
                criteria_ids=criteria_ids,
                compliance=validate_compliance(score, violations, resolved, scale=scale),
                browser_strategy=strategy,
            )
        except Exception as exc:
            logger.exception("Audit of %s failed", url)
            return self._error_result(
                url,
                site_id,
                resolved,
                str(exc) or type(exc).__name__,
                use_standard_formula=use_standard_formula,
            )

        if engine_result.error:
            logger.warning("Audit of %s finished without a score: %s", url, engine_result.error)
        else:
            logger.info(
                "Audit of %s finished: score=%s/%s, %s violation(s), risk %s",
                url,
                result.wcag_score,
                result.score_scale,
                len(result.violations),
                result.legal_risk_metrics.risk_level.value,
            )
        return result

    async def _audit_page(self, url: str, site_id: str, options: dict) -> PageAuditResult:
        started = time.perf_counter()
        result = await self.audit_site(url, site_id, **options)
        return PageAuditResult(
            url=url,
            audit_result=result,
            audit_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def audit_pages(
        self,
        urls: Sequence[str],
        site_id: str,
        *,
        hooks: AuditHooks | None = None,
        **options,
    ) -> MultiPageAuditResult:
        """Audit several pages sequentially with the shared browser.

        `options` are forwarded to `audit_site`. Pages that end up scored -1
        get one more attempt when `retry_failed_pages` is enabled; the retry
        replaces the earlier result only when it produces a score.
        """

        hooks = hooks or AuditHooks()
        targets = [u.strip() for u in urls if u and u.strip()]
        delay = self.settings.delay_between_pages_ms / 1000
        start_time = _utcnow()

        page_results: list[PageAuditResult] = []
        for index, url in enumerate(targets, start=1):
            if index > 1 and delay:
                await asyncio.sleep(delay)
            if hooks.page_started:
                hooks.page_started(index, len(targets), url)
            page = await self._audit_page(url, site_id, options)
            page_results.append(page)
            if hooks.page_finished:
                hooks.page_finished(index, len(targets), page)

        if self.settings.retry_failed_pages:
            failed = [i for i, page in enumerate(page_results) if not page.audit_result.score_available]
            if failed:
                logger.info("Retrying %s page(s) without a score", len(failed))
            for i in failed:
                if delay:
                    await asyncio.sleep(delay)
                retried = await self._audit_page(page_results[i].url, site_id, options)
                if retried.audit_result.score_available:
                    page_results[i] = retried
                else:
                    logger.warning("Retry of %s still produced no score", retried.url)

        return MultiPageAuditResult(
            site_id=site_id,
            start_time=start_time,
            end_time=_utcnow(),
            pages_requested=len(targets),
            pages_audited=sum(1 for page in page_results if page.audit_result.score_available),
            page_results=page_results,
            summary=build_multi_page_summary(page_results),
        )
