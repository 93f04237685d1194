"""Heuristic accessibility detectors.

These complement the engine with checks it does not (or not reliably)
perform. They run on a `PageSnapshot` taken from the live page right after
the engine run:
- the serialized DOM (`page.content()`), parsed with BeautifulSoup
- computed foreground/background colors of text-bearing elements.

Every detector is a plain function `snapshot -> RawFinding | None` and
reports at most one finding, with the number of offending elements in
`occurrences`.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterable, Sequence

from bs4 import BeautifulSoup, NavigableString, Tag

from core.domain.models import FindingSource, RawFinding
from core.interfaces.browser import AuditPage
from core.interfaces.detector import HeuristicDetector


logger = logging.getLogger(__name__)

COLOR_PROBE_SCRIPT = """
() => {
  const out = [];
  const nodes = document.querySelectorAll(
    'p, span, a, li, td, th, label, button, h1, h2, h3, h4, h5, h6, dt, dd, figcaption, blockquote'
  );
  for (const el of nodes) {
    const text = (el.textContent || '').trim();
    if (!text) continue;
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') continue;
    out.push({
      tag: el.tagName.toLowerCase(),
      text: text.slice(0, 80),
      color: style.color,
      background: style.backgroundColor,
    });
    if (out.length >= 500) break;
  }
  return out;
}
"""

SKIP_LINK_TARGETS = ("#main", "#content", "#main-content")

_HEADING_RE = re.compile(r"^h([1-6])$")
_MARKUP_LIMIT = 250

_INTERACTIVE_TAGS = {"a", "button", "input", "select", "textarea", "summary"}
_INTERACTIVE_ROLES = {
    "button",
    "link",
    "checkbox",
    "radio",
    "switch",
    "tab",
    "menuitem",
    "option",
    "combobox",
    "textbox",
}
_LANDMARK_ANCESTORS = {"main", "header", "nav", "aside"}


@dataclass(frozen=True)
class ColorSample:
    tag: str
    text: str
    color: str
    background: str


@dataclass
class PageSnapshot:
    """DOM and computed colors of one page at a point in time."""

    html: str
    colors: list[ColorSample] = field(default_factory=list)
    url: str = ""

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html or "", "html.parser")


def _parse_colors(raw: Any) -> list[ColorSample]:
    samples: list[ColorSample] = []
    if not isinstance(raw, list):
        return samples
    for item in raw:
        if not isinstance(item, dict):
            continue
        samples.append(
            ColorSample(
                tag=str(item.get("tag") or ""),
                text=str(item.get("text") or ""),
                color=str(item.get("color") or ""),
                background=str(item.get("background") or ""),
            )
        )
    return samples


async def capture_snapshot(page: AuditPage) -> PageSnapshot:
    """Serialize the live page for the detectors."""

    html = await page.content()
    try:
        raw_colors = await page.evaluate(COLOR_PROBE_SCRIPT)
    except Exception as exc:
        logger.warning("Color probe failed: %s", exc)
        raw_colors = []
    return PageSnapshot(html=html, colors=_parse_colors(raw_colors), url=str(getattr(page, "url", "") or ""))


def _markup(el: Tag | str | None) -> str:
    if el is None:
        return "N/A"
    text = str(el)
    return text if len(text) <= _MARKUP_LIMIT else text[:_MARKUP_LIMIT] + "..."


def _finding(
    rule: str,
    description: str,
    *,
    count: int,
    element: Tag | str | None = None,
    impact: str = "serious",
    tags: Iterable[str] = (),
) -> RawFinding | None:
    if count <= 0:
        return None
    return RawFinding(
        rule_id=f"heuristic-{rule}",
        impact=impact,
        description=description,
        affected_element_markup=_markup(element),
        tags={"heuristic", *tags},
        source=FindingSource.HEURISTIC,
        occurrences=count,
    )


def _is_interactive(el: Tag) -> bool:
    if el.name == "input":
        return (el.get("type") or "").lower() != "hidden"
    if el.name == "a":
        return el.has_attr("href")
    if el.name in _INTERACTIVE_TAGS:
        return True
    role = (el.get("role") or "").strip().lower()
    return role in _INTERACTIVE_ROLES


def _interactive_elements(soup: BeautifulSoup) -> list[Tag]:
    return [el for el in soup.find_all(True) if _is_interactive(el)]


def _visible_text(el: Tag) -> str:
    if el.name == "input":
        return (el.get("value") or "").strip()
    return " ".join(el.get_text(" ", strip=True).split())


def detect_missing_skip_link(snapshot: PageSnapshot) -> RawFinding | None:
    for anchor in snapshot.soup.find_all("a", href=True):
        if anchor["href"].strip() in SKIP_LINK_TARGETS:
            return None
    return _finding(
        "skip-link",
        "No skip link to the main content (#main, #content or #main-content)",
        count=1,
        tags=("wcag2a", "wcag241"),
    )


def detect_heading_order(snapshot: PageSnapshot) -> RawFinding | None:
    previous = 0
    skips = 0
    first: Tag | None = None
    for heading in snapshot.soup.find_all(_HEADING_RE):
        level = int(heading.name[1])
        if level - previous > 1:
            skips += 1
            first = first or heading
        previous = level
    return _finding(
        "heading-order",
        f"Heading levels skipped {skips} time(s)",
        count=skips,
        element=first,
        tags=("wcag2a", "wcag131"),
    )


def _next_significant_sibling(node: Tag) -> Any:
    sibling = node.next_sibling
    while type(sibling) is NavigableString and not sibling.strip():
        sibling = sibling.next_sibling
    return sibling


def _previous_significant_sibling(node: Tag) -> Any:
    sibling = node.previous_sibling
    while type(sibling) is NavigableString and not sibling.strip():
        sibling = sibling.previous_sibling
    return sibling


def _is_br(node: Any) -> bool:
    return isinstance(node, Tag) and node.name == "br"


def detect_br_sequences(snapshot: PageSnapshot) -> RawFinding | None:
    runs = 0
    first: Tag | None = None
    for br in snapshot.soup.find_all("br"):
        if _is_br(_previous_significant_sibling(br)):
            continue
        length = 1
        node = _next_significant_sibling(br)
        while _is_br(node):
            length += 1
            node = _next_significant_sibling(node)
        if length >= 3:
            runs += 1
            first = first or br.parent
    return _finding(
        "br-sequence",
        f"{runs} run(s) of 3 or more consecutive <br> used for layout",
        count=runs,
        element=first,
        tags=("wcag2a", "wcag131"),
    )


def detect_multiple_h1(snapshot: PageSnapshot) -> RawFinding | None:
    h1s = snapshot.soup.find_all("h1")
    if len(h1s) <= 1:
        return None
    return _finding(
        "multiple-h1",
        f"Page has {len(h1s)} <h1> elements",
        count=len(h1s),
        element=h1s[1],
        tags=("wcag2a", "wcag131"),
    )


def _normalize_color(value: str) -> str:
    return "".join(value.lower().split())


def detect_color_contrast(snapshot: PageSnapshot) -> RawFinding | None:
    offending: list[ColorSample] = []
    for sample in snapshot.colors:
        color = _normalize_color(sample.color)
        background = _normalize_color(sample.background)
        if not color and not background:
            continue
        if color == background or "transparent" in (color, background):
            offending.append(sample)
    if not offending:
        return None
    first = offending[0]
    return _finding(
        "color-contrast",
        f"{len(offending)} text element(s) with indistinguishable or transparent colors",
        count=len(offending),
        element=f"<{first.tag}>{first.text}</{first.tag}>",
        tags=("wcag2aa", "wcag143"),
    )


def detect_duplicate_ids(snapshot: PageSnapshot) -> RawFinding | None:
    counts = Counter(el["id"].strip() for el in snapshot.soup.find_all(id=True) if el["id"].strip())
    duplicated = sorted(value for value, n in counts.items() if n > 1)
    if not duplicated:
        return None
    return _finding(
        "duplicate-id",
        f"Duplicate id values: {', '.join(duplicated[:10])}",
        count=len(duplicated),
        element=snapshot.soup.find(id=duplicated[0]),
        tags=("wcag2a", "wcag411"),
    )


def detect_label_in_name(snapshot: PageSnapshot) -> RawFinding | None:
    mismatches = 0
    first: Tag | None = None
    for el in _interactive_elements(snapshot.soup):
        aria_label = (el.get("aria-label") or "").strip()
        title = (el.get("title") or "").strip()
        name = aria_label or title
        if not name:
            continue
        text = _visible_text(el)
        if text and text.lower() not in name.lower():
            mismatches += 1
            first = first or el
    return _finding(
        "label-in-name",
        f"{mismatches} interactive element(s) whose accessible name does not contain the visible text",
        count=mismatches,
        element=first,
        tags=("wcag21a", "wcag253"),
    )


def _has_landmark_ancestor(el: Tag) -> bool:
    for parent in el.parents:
        if not isinstance(parent, Tag) or parent.name == "[document]":
            continue
        if parent.name in _LANDMARK_ANCESTORS or parent.has_attr("role"):
            return True
    return False


def detect_nested_contentinfo(snapshot: PageSnapshot) -> RawFinding | None:
    nested: list[Tag] = []
    for el in snapshot.soup.find_all(True):
        is_contentinfo = el.name == "footer" or (el.get("role") or "").strip().lower() == "contentinfo"
        if is_contentinfo and _has_landmark_ancestor(el):
            nested.append(el)
    return _finding(
        "nested-contentinfo",
        f"{len(nested)} contentinfo landmark(s) nested inside another landmark",
        count=len(nested),
        element=nested[0] if nested else None,
        tags=("wcag2a", "wcag131"),
    )


def detect_empty_aria_label(snapshot: PageSnapshot) -> RawFinding | None:
    empty = [
        el
        for el in snapshot.soup.find_all(True)
        if (_is_interactive(el) or el.has_attr("tabindex"))
        and el.has_attr("aria-label") and not (el.get("aria-label") or "").strip()
    ]
    return _finding(
        "empty-aria-label",
        f"{len(empty)} interactive element(s) with an empty aria-label",
        count=len(empty),
        element=empty[0] if empty else None,
        impact="critical",
        tags=("wcag2a", "wcag412"),
    )


DEFAULT_DETECTORS: tuple[HeuristicDetector, ...] = (
    detect_missing_skip_link,
    detect_heading_order,
    detect_br_sequences,
    detect_multiple_h1,
    detect_color_contrast,
    detect_duplicate_ids,
    detect_label_in_name,
    detect_nested_contentinfo,
    detect_empty_aria_label,
)


def run_detectors(
    snapshot: PageSnapshot,
    detectors: Sequence[HeuristicDetector] = DEFAULT_DETECTORS,
) -> list[RawFinding]:
    """Run every detector; a failing detector is logged and skipped."""

    findings: list[RawFinding] = []
    for detector in detectors:
        name = getattr(detector, "__name__", type(detector).__name__)
        try:
            finding = detector(snapshot)
        except Exception as exc:
            logger.warning("Detector %s failed: %s", name, exc)
            continue
        if finding is not None:
            findings.append(finding)
    logger.debug("Heuristic detectors produced %s finding(s)", len(findings))
    return findings
