"""Domain models (Pydantic v2).

These models describe *what* an audit produces, not *how* the browser
obtains it:
- `RawFinding` is the common shape of engine and heuristic issues.
- `Violation` is the normalized entity attached to a WCAG criterion.
- `AuditResult` is the aggregate root returned to callers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.criteria_set import CriteriaSet


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    CRITICAL = "critical"
    SERIOUS = "serious"
    MODERATE = "moderate"
    MINOR = "minor"


class Principle(str, Enum):
    PERCEIVABLE = "PERCEIVABLE"
    OPERABLE = "OPERABLE"
    UNDERSTANDABLE = "UNDERSTANDABLE"
    ROBUST = "ROBUST"


class ConformanceLevel(str, Enum):
    A = "A"
    AA = "AA"
    AAA = "AAA"


class Priority(str, Enum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"


class RiskLevel(str, Enum):
    ALTO = "ALTO"
    MEDIO = "MÉDIO"
    BAIXO = "BAIXO"


class ComplianceLevel(str, Enum):
    FULL = "Plenamente conforme"
    PARTIAL = "Parcialmente conforme"
    NONE = "Não conforme"


class FindingSource(str, Enum):
    ENGINE = "engine"
    HEURISTIC = "heuristic"


class ScanOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NAVIGATION_ERROR = "navigation_error"
    ENGINE_ERROR = "engine_error"


class BrowserStrategy(str, Enum):
    """Launch strategy that produced the shared browser.

    - A: standard Playwright Chromium, one browser context per scan.
    - B: stealth Playwright Chromium, one page per scan.
    - C: real-browser mode (rebrowser-playwright), one page per scan.
    """

    A = "A"
    B = "B"
    C = "C"

    @property
    def context_based(self) -> bool:
        return self is BrowserStrategy.A


class WCAGCriterion(BaseModel):
    """Static WCAG success criterion record from the knowledge base."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Success criterion id (e.g. '1.4.3') or 'generic'.")
    name: str = Field(..., min_length=1)
    level: ConformanceLevel = Field(default=ConformanceLevel.A)
    principle: Principle
    priority: Priority
    description: str = Field(default="")
    technology: dict[str, str] = Field(
        default_factory=dict,
        description="Per-platform remediation hints (webflow, laravel, wordpress).",
    )


class RawFinding(BaseModel):
    """One issue reported by the engine or by a heuristic detector."""

    rule_id: str = Field(..., min_length=1)
    impact: str | None = Field(
        default=None,
        description="Engine impact vocabulary; unknown values are normalized later.",
    )
    description: str = Field(default="")
    affected_element_markup: str = Field(default="N/A")
    tags: set[str] = Field(default_factory=set)
    source: FindingSource = Field(default=FindingSource.ENGINE)
    occurrences: int = Field(default=1, ge=0)
    help_url: str | None = None


class ScanAttempt(BaseModel):
    """Diagnostic record of one navigate-inject-scan cycle."""

    attempt_number: int = Field(..., ge=1)
    url: str
    outcome: ScanOutcome
    error: str | None = None
    elapsed_ms: float = Field(default=0.0, ge=0.0)
    raw_result: dict[str, Any] | None = Field(
        default=None,
        description="Counts of the raw engine payload when the attempt succeeded.",
    )


class EngineResult(BaseModel):
    """Output of one scan session (engine + heuristics)."""

    violations: list[RawFinding] = Field(default_factory=list)
    heuristic_violations: list[RawFinding] = Field(default_factory=list)
    passes: list[str] = Field(default_factory=list, description="Rule ids that passed.")
    incomplete: list[str] = Field(default_factory=list)
    inapplicable: list[str] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Set when every attempt failed.")
    attempts: list[ScanAttempt] = Field(default_factory=list)

    @classmethod
    def empty(cls, error: str | None = None) -> "EngineResult":
        return cls(error=error)

    @property
    def all_findings(self) -> list[RawFinding]:
        return [*self.violations, *self.heuristic_violations]

    @property
    def has_data(self) -> bool:
        return bool(self.violations or self.heuristic_violations)


class Violation(BaseModel):
    """Normalized violation attached to a WCAG criterion."""

    id: str = Field(default_factory=lambda: f"violation_{uuid.uuid4().hex}")
    criteria: WCAGCriterion
    severity: Severity
    description: str = Field(default="")
    element: str = Field(default="N/A")
    page: str = Field(..., description="URL of the audited page.")
    timestamp: datetime = Field(default_factory=_utcnow)
    status: Literal["open"] = "open"
    rule_id: str = Field(..., min_length=1)
    source: FindingSource = Field(default=FindingSource.ENGINE)
    occurrences: int = Field(default=1, ge=0)


class LegalRiskMetrics(BaseModel):
    legal_risk_score: int = Field(..., ge=0, le=100)
    exposure_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    critical_violations: int = Field(default=0, ge=0)
    serious_violations: int = Field(default=0, ge=0)
    priority_violations: int = Field(default=0, ge=0)


class AuditSummary(BaseModel):
    total_violations: int = Field(default=0, ge=0)
    critical_violations: int = Field(default=0, ge=0)
    priority_violations: int = Field(default=0, ge=0)
    compliance_percentage: float = Field(
        default=-1,
        description="Mirrors the WCAG score, including the -1 sentinel.",
    )


class ComplianceResult(BaseModel):
    level: ComplianceLevel
    score: float
    reasons: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class AuditResult(BaseModel):
    """Aggregate root of one audit.

    The freeze is shallow: fields cannot be reassigned, but the nested
    `violations` list and `engine_result` model are ordinary pydantic values.
    Use `model_copy(deep=True)` before editing them.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"audit_{uuid.uuid4().hex}")
    site_id: str
    url: str
    timestamp: datetime = Field(default_factory=_utcnow)
    wcag_score: float = Field(
        default=-1,
        description="Compliance score; -1 means it could not be computed.",
    )
    score_scale: Literal[10, 100] = Field(default=100)
    violations: list[Violation] = Field(default_factory=list)
    legal_risk_metrics: LegalRiskMetrics
    summary: AuditSummary
    engine_result: EngineResult = Field(default_factory=EngineResult)
    criteria_set: CriteriaSet = Field(default=CriteriaSet.UNTILE)
    criteria_ids: list[str] = Field(default_factory=list)
    compliance: ComplianceResult | None = None
    browser_strategy: BrowserStrategy | None = Field(
        default=None,
        description="Strategy of the browser used; None when no browser was available.",
    )

    @property
    def score_available(self) -> bool:
        return self.wcag_score >= 0


class PageAuditResult(BaseModel):
    url: str
    audit_result: AuditResult
    audit_time_ms: float = Field(default=0.0, ge=0.0)


class PageScore(BaseModel):
    url: str
    score: float


class CommonIssue(BaseModel):
    criteria: str
    count: int = Field(..., ge=0)
    pages: list[str] = Field(default_factory=list)


class MultiPageSummary(BaseModel):
    total_violations: int = 0
    average_score: float = -1
    best_page: PageScore | None = None
    worst_page: PageScore | None = None
    violations_by_criteria: dict[str, int] = Field(default_factory=dict)
    violations_by_severity: dict[Severity, int] = Field(
        default_factory=lambda: {severity: 0 for severity in Severity},
    )
    common_issues: list[CommonIssue] = Field(default_factory=list)
    overall_risk_level: RiskLevel = RiskLevel.BAIXO
    average_legal_risk: float = 0.0


class MultiPageAuditResult(BaseModel):
    id: str = Field(default_factory=lambda: f"multi_audit_{uuid.uuid4().hex}")
    site_id: str
    start_time: datetime
    end_time: datetime
    pages_requested: int = Field(default=0, ge=0)
    pages_audited: int = Field(default=0, ge=0)
    page_results: list[PageAuditResult] = Field(default_factory=list)
    summary: MultiPageSummary
