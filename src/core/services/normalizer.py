"""Violation normalization and WCAG mapping.

Turns raw engine/heuristic findings into `Violation`s attached to a WCAG
criterion. Rules without a mapping (or mapped to a criterion outside the
knowledge base) get a synthetic `generic` criterion that carries the rule id
in its name, so every finding survives normalization.
"""

from __future__ import annotations

import logging

from core.domain.models import (
    ConformanceLevel,
    EngineResult,
    Principle,
    Priority,
    RawFinding,
    Severity,
    Violation,
    WCAGCriterion,
)
from core.resources_loader import get_criteria_by_id


logger = logging.getLogger(__name__)

GENERIC_CRITERION_ID = "generic"

_RULES_BY_CRITERION: dict[str, tuple[str, ...]] = {
    # Perceivable
    "1.1.1": (
        "image-alt",
        "img-redundant-alt",
        "object-alt",
        "role-img-alt",
        "svg-img-alt",
        "duplicate-img-alt",
    ),
    "1.2.2": ("video-caption",),
    "1.2.3": ("video-description",),
    "1.3.1": (
        "landmark-one-main",
        "heading-order",
        "list",
        "region",
        "heading-has-content",
        "landmark-unique",
        "listitem",
        "presentation-role-conflict",
        "table-duplicate-name",
        "table-fake-caption",
        "td-has-header",
        "td-headers-attr",
        "th-has-data-cells",
        "landmark-banner-is-top-level",
        "landmark-complementary-is-top-level",
        "landmark-contentinfo-is-top-level",
        "landmark-main-is-top-level",
        "landmark-no-duplicate-banner",
        "landmark-no-duplicate-contentinfo",
        "landmark-no-duplicate-main",
        "page-has-heading-one",
        "heuristic-heading-order",
        "heuristic-br-sequence",
        "heuristic-multiple-h1",
        "heuristic-nested-contentinfo",
    ),
    "1.4.1": ("link-in-text-block",),
    "1.4.3": ("color-contrast", "heuristic-color-contrast"),
    "1.4.4": ("meta-viewport", "meta-viewport-large"),
    "1.4.6": ("color-contrast-enhanced",),
    # Operable
    "2.1.1": ("focusable-content", "scrollable-region-focusable"),
    "2.2.1": ("meta-refresh",),
    "2.2.2": ("marquee",),
    "2.4.1": ("skip-link", "bypass", "heuristic-skip-link"),
    "2.4.2": ("page-title", "frame-title", "document-title"),
    "2.4.3": ("focus-order-semantics",),
    "2.4.4": ("identical-links-same-purpose",),
    "2.4.7": ("focus-visible",),
    "2.5.3": ("heuristic-label-in-name",),
    # Understandable
    "3.1.1": ("html-lang", "html-has-lang", "html-lang-valid", "valid-lang"),
    "3.3.2": ("label", "form-field-multiple-labels", "label-content-name-mismatch", "select-name"),
    # Robust
    "4.1.1": ("heuristic-duplicate-id",),
    "4.1.2": (
        "aria-allowed-attr",
        "aria-required-attr",
        "aria-valid-attr-value",
        "button-name",
        "link-name",
        "input-button-name",
        "focusable-no-name",
        "aria-hidden-body",
        "aria-hidden-focus",
        "aria-input-field-name",
        "aria-required-children",
        "aria-required-parent",
        "aria-roles",
        "aria-unsupported-elements",
        "aria-valid-attr",
        "heuristic-empty-aria-label",
    ),
}

RULE_TO_CRITERION: dict[str, str] = {
    rule: criterion_id for criterion_id, rules in _RULES_BY_CRITERION.items() for rule in rules
}

_SEVERITY_BY_IMPACT = {severity.value: severity for severity in Severity}


def generic_criterion(rule_id: str) -> WCAGCriterion:
    return WCAGCriterion(
        id=GENERIC_CRITERION_ID,
        name=f"Axe violation: {rule_id}",
        level=ConformanceLevel.A,
        principle=Principle.ROBUST,
        priority=Priority.P2,
        description=f"Rule '{rule_id}' has no prioritized WCAG criterion",
    )


def map_axe_rule_to_wcag(rule_id: str) -> WCAGCriterion:
    """Criterion for a rule id; the generic criterion when none resolves."""

    criterion_id = RULE_TO_CRITERION.get(rule_id)
    if criterion_id:
        criterion = get_criteria_by_id(criterion_id)
        if criterion is not None:
            return criterion
    return generic_criterion(rule_id)


def map_severity(impact: str | None) -> Severity:
    if not impact:
        return Severity.MODERATE
    return _SEVERITY_BY_IMPACT.get(str(impact).strip().lower(), Severity.MODERATE)


def _to_violation(finding: RawFinding, page_url: str) -> Violation:
    return Violation(
        criteria=map_axe_rule_to_wcag(finding.rule_id),
        severity=map_severity(finding.impact),
        description=finding.description,
        element=finding.affected_element_markup or "N/A",
        page=page_url,
        rule_id=finding.rule_id,
        source=finding.source,
        occurrences=finding.occurrences,
    )


def normalize(engine_result: EngineResult, page_url: str) -> list[Violation]:
    """One `Violation` per raw finding; engine findings first, then heuristics."""

    violations = [_to_violation(finding, page_url) for finding in engine_result.all_findings]
    logger.debug(
        "Normalized %s engine + %s heuristic finding(s) for %s",
        len(engine_result.violations),
        len(engine_result.heuristic_violations),
        page_url,
    )
    return violations
