from core.domain.models import (
    EngineResult,
    FindingSource,
    Principle,
    Priority,
    RawFinding,
    Severity,
)
from core.services.normalizer import (
    RULE_TO_CRITERION,
    map_axe_rule_to_wcag,
    map_severity,
    normalize,
)


def test_mapped_rule_resolves_knowledge_base_criterion():
    criterion = map_axe_rule_to_wcag("color-contrast")
    assert criterion.id == "1.4.3"
    assert criterion.priority is Priority.P0


def test_unmapped_rule_gets_generic_criterion():
    criterion = map_axe_rule_to_wcag("some-future-rule")
    assert criterion.id == "generic"
    assert criterion.priority is Priority.P2
    assert criterion.principle is Principle.ROBUST
    assert "some-future-rule" in criterion.name


def test_mapped_rule_outside_knowledge_base_is_generic():
    # 2.2.2 is in the table but not among the prioritized criteria.
    assert RULE_TO_CRITERION["marquee"] == "2.2.2"
    assert map_axe_rule_to_wcag("marquee").id == "generic"


def test_every_heuristic_rule_is_mapped():
    heuristic_rules = [rule for rule in RULE_TO_CRITERION if rule.startswith("heuristic-")]
    assert len(heuristic_rules) == 9


def test_severity_mapping_defaults_to_moderate():
    assert map_severity("critical") is Severity.CRITICAL
    assert map_severity("SERIOUS") is Severity.SERIOUS
    assert map_severity("minor") is Severity.MINOR
    assert map_severity(None) is Severity.MODERATE
    assert map_severity("catastrophic") is Severity.MODERATE


def test_normalize_keeps_one_violation_per_finding_in_order():
    result = EngineResult(
        violations=[
            RawFinding(rule_id="image-alt", impact="critical", affected_element_markup="<img>"),
            RawFinding(rule_id="unknown-rule", impact="bogus"),
        ],
        heuristic_violations=[
            RawFinding(rule_id="heuristic-skip-link", impact="serious", source=FindingSource.HEURISTIC),
        ],
    )

    violations = normalize(result, "https://example.org/")

    assert len(violations) == len(result.violations) + len(result.heuristic_violations)
    assert [v.rule_id for v in violations] == ["image-alt", "unknown-rule", "heuristic-skip-link"]
    assert [v.criteria.id for v in violations] == ["1.1.1", "generic", "2.4.1"]
    assert violations[0].element == "<img>"
    assert violations[1].severity is Severity.MODERATE
    assert violations[2].source is FindingSource.HEURISTIC
    assert all(v.page == "https://example.org/" and v.status == "open" for v in violations)
    assert len({v.id for v in violations}) == 3


def test_normalize_empty_result():
    assert normalize(EngineResult(), "https://example.org/") == []
