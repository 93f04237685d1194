"""Scoring and legal-risk derivation.

Two scoring formulas coexist:
- weighted penalty (default, 0-100): 100 minus severity-weighted counts.
- standard (0-10): 10 minus a flat factor per violation, where the factor
  escalates with heuristic and critical findings.

Both return -1 when no score can be computed (failed scan, or a scan that
produced no findings at all).
"""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from core.domain.criteria_set import CriteriaSet
from core.domain.models import (
    AuditSummary,
    ComplianceLevel,
    ComplianceResult,
    EngineResult,
    FindingSource,
    LegalRiskMetrics,
    Priority,
    RiskLevel,
    Severity,
    Violation,
)


SCORE_UNAVAILABLE = -1.0

SEVERITY_WEIGHTS: dict[Severity, float] = {
    Severity.CRITICAL: 6,
    Severity.SERIOUS: 3,
    Severity.MODERATE: 1,
    Severity.MINOR: 0.5,
}

STANDARD_BASE = 10.0
STANDARD_FACTOR = 0.10
STANDARD_FACTOR_HEURISTIC = 0.15
STANDARD_FACTOR_CRITICAL = 0.25

FULL_COMPLIANCE_THRESHOLD = 9.0
PARTIAL_COMPLIANCE_THRESHOLD = 8.0

_PRIORITY_LEVELS = (Priority.P0, Priority.P1)


def weighted_penalty_score(critical: int = 0, serious: int = 0, moderate: int = 0, minor: int = 0) -> float:
    penalty = (
        critical * SEVERITY_WEIGHTS[Severity.CRITICAL]
        + serious * SEVERITY_WEIGHTS[Severity.SERIOUS]
        + moderate * SEVERITY_WEIGHTS[Severity.MODERATE]
        + minor * SEVERITY_WEIGHTS[Severity.MINOR]
    )
    return round(max(0.0, 100.0 - penalty), 2)


def standard_score(total: int, *, has_critical: bool = False, has_heuristic: bool = False) -> float:
    if has_critical:
        factor = STANDARD_FACTOR_CRITICAL
    elif has_heuristic:
        factor = STANDARD_FACTOR_HEURISTIC
    else:
        factor = STANDARD_FACTOR
    return round(max(0.0, STANDARD_BASE - factor * total), 2)


def severity_counts(violations: Sequence[Violation]) -> dict[Severity, int]:
    counts = Counter(v.severity for v in violations)
    return {severity: counts.get(severity, 0) for severity in Severity}


def calculate_wcag_score(
    violations: Sequence[Violation],
    engine_result: EngineResult,
    *,
    use_standard_formula: bool = False,
    perfect_score_on_passes: bool = False,
) -> float:
    """Score an audit, or return -1 when it cannot be scored.

    A scan without any finding is ambiguous (broken page vs perfect page),
    so it scores -1 unless the engine reported passes and
    `perfect_score_on_passes` is enabled.
    """

    if engine_result.error:
        return SCORE_UNAVAILABLE

    if not engine_result.has_data:
        if engine_result.passes and perfect_score_on_passes:
            return STANDARD_BASE if use_standard_formula else 100.0
        return SCORE_UNAVAILABLE

    counts = severity_counts(violations)
    if use_standard_formula:
        return standard_score(
            len(violations),
            has_critical=counts[Severity.CRITICAL] > 0,
            has_heuristic=any(v.source is FindingSource.HEURISTIC for v in violations),
        )
    return weighted_penalty_score(
        critical=counts[Severity.CRITICAL],
        serious=counts[Severity.SERIOUS],
        moderate=counts[Severity.MODERATE],
        minor=counts[Severity.MINOR],
    )


def risk_level_for(legal_risk_score: float) -> RiskLevel:
    if legal_risk_score > 70:
        return RiskLevel.ALTO
    if legal_risk_score > 40:
        return RiskLevel.MEDIO
    return RiskLevel.BAIXO


def legal_risk_from_counts(critical: int, serious: int, priority: int) -> LegalRiskMetrics:
    legal = min(100, critical * 15 + serious * 8 + priority * 5)
    exposure = min(100, critical * 20 + serious * 10)
    return LegalRiskMetrics(
        legal_risk_score=legal,
        exposure_score=exposure,
        risk_level=risk_level_for(legal),
        critical_violations=critical,
        serious_violations=serious,
        priority_violations=priority,
    )


def _priority_count(violations: Sequence[Violation]) -> int:
    return sum(1 for v in violations if v.criteria.priority in _PRIORITY_LEVELS)


def calculate_legal_risk_metrics(violations: Sequence[Violation]) -> LegalRiskMetrics:
    counts = severity_counts(violations)
    return legal_risk_from_counts(
        counts[Severity.CRITICAL],
        counts[Severity.SERIOUS],
        _priority_count(violations),
    )


def generate_summary(violations: Sequence[Violation], score: float) -> AuditSummary:
    return AuditSummary(
        total_violations=len(violations),
        critical_violations=sum(1 for v in violations if v.severity is Severity.CRITICAL),
        priority_violations=_priority_count(violations),
        compliance_percentage=score,
    )


def validate_compliance(
    score: float,
    violations: Sequence[Violation],
    criteria_set: CriteriaSet | str | None = None,
    *,
    scale: int = 100,
) -> ComplianceResult:
    """Classify an audit as fully, partially or not compliant.

    Thresholds apply on the 10-point scale; weighted scores are divided by 10.
    Outside `gov-pt`, any critical violation caps the result at partial.
    """

    resolved = CriteriaSet.parse(criteria_set)

    if score < 0:
        return ComplianceResult(
            level=ComplianceLevel.NONE,
            score=score,
            reasons=["score unavailable"],
            recommendations=["Re-run the audit once the page can be scanned"],
        )

    score10 = round(score / 10, 2) if scale == 100 else round(score, 2)
    critical = [v for v in violations if v.severity is Severity.CRITICAL]
    reasons: list[str] = []

    if score10 >= FULL_COMPLIANCE_THRESHOLD:
        level = ComplianceLevel.FULL
        reasons.append(f"Score {score10}/10 meets the {FULL_COMPLIANCE_THRESHOLD} threshold")
    elif score10 >= PARTIAL_COMPLIANCE_THRESHOLD:
        level = ComplianceLevel.PARTIAL
        reasons.append(f"Score {score10}/10 meets the {PARTIAL_COMPLIANCE_THRESHOLD} threshold only")
    else:
        level = ComplianceLevel.NONE
        reasons.append(f"Score {score10}/10 is below {PARTIAL_COMPLIANCE_THRESHOLD}")

    if critical:
        reasons.append(f"{len(critical)} critical violation(s)")
        if level is ComplianceLevel.FULL and resolved is not CriteriaSet.GOV_PT:
            level = ComplianceLevel.PARTIAL

    recommendations: list[str] = []
    seen: set[str] = set()
    for v in sorted(violations, key=lambda item: list(Severity).index(item.severity)):
        key = v.criteria.id if v.criteria.id != "generic" else v.rule_id
        if key in seen:
            continue
        seen.add(key)
        recommendations.append(f"Fix {v.criteria.id} {v.criteria.name} ({v.severity.value})")
        if len(recommendations) >= 5:
            break

    return ComplianceResult(level=level, score=score10, reasons=reasons, recommendations=recommendations)
