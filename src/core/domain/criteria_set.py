"""Criteria-set utilities.

A criteria set names the subset of WCAG criteria an audit targets and,
through it, the rule tags requested from the engine. Kept in the domain
layer so the knowledge base loader and the scan runner share one source of
truth.
"""

from __future__ import annotations

from enum import Enum

WCAG20_TAGS: tuple[str, ...] = ("wcag2a", "wcag2aa")
WCAG21_TAGS: tuple[str, ...] = ("wcag2a", "wcag2aa", "wcag21a", "wcag21aa")


class CriteriaSet(str, Enum):
    """Supported criteria sets."""

    UNTILE = "untile"
    GOV_PT = "gov-pt"
    CUSTOM = "custom"

    @classmethod
    def default(cls) -> "CriteriaSet":
        return cls.UNTILE

    @classmethod
    def parse(cls, value: "CriteriaSet | str | None") -> "CriteriaSet":
        """Lenient conversion; unknown or empty values fall back to the default."""

        if isinstance(value, CriteriaSet):
            return value
        if not value:
            return cls.default()
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.default()

    def engine_tags(self, *, complete: bool = False) -> list[str]:
        """Rule tags passed to the engine for this set.

        `gov-pt` (or a complete audit) asks for the WCAG 2.1 A/AA tags;
        everything else stays on WCAG 2.0 A/AA.
        """

        if complete or self is CriteriaSet.GOV_PT:
            return list(WCAG21_TAGS)
        return list(WCAG20_TAGS)

    def label(self) -> str:
        """Human readable label for logging."""

        return {
            CriteriaSet.UNTILE: "UNTILE priority criteria",
            CriteriaSet.GOV_PT: "acessibilidade.gov.pt critical criteria",
            CriteriaSet.CUSTOM: "custom criteria",
        }[self]
