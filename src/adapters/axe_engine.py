"""axe-core injection and execution.

The engine is loaded from a CDN into the live page and run through a small
in-page wrapper that turns its callback into a promise settling exactly
once (result, error or in-page timeout). The Python side still races the
evaluation against `asyncio.wait_for` so a hung page cannot stall a scan.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from core.domain.errors import EngineExecutionError, EngineNotLoaded, ScanTimeout
from core.domain.models import EngineResult, FindingSource, RawFinding
from core.interfaces.browser import AuditPage


logger = logging.getLogger(__name__)

AXE_READY_SCRIPT = "() => typeof window.axe !== 'undefined' && typeof window.axe.run === 'function'"

AXE_RUN_SCRIPT = """
({ config, timeoutMs }) => new Promise((resolve) => {
  let settled = false;
  const settle = (payload) => {
    if (settled) return;
    settled = true;
    resolve(payload);
  };
  const timer = setTimeout(
    () => settle({ timedOut: true, error: `axe.run timed out after ${timeoutMs}ms` }),
    timeoutMs,
  );
  const ids = (items) => (items || []).map((item) => item.id);
  try {
    window.axe.run(document, config, (err, results) => {
      clearTimeout(timer);
      if (err) {
        settle({ error: String((err && err.message) || err) });
        return;
      }
      settle({
        results: {
          violations: (results.violations || []).map((v) => ({
            id: v.id,
            impact: v.impact || null,
            description: v.description || '',
            help: v.help || '',
            helpUrl: v.helpUrl || null,
            tags: v.tags || [],
            nodes: (v.nodes || []).map((n) => ({ html: n.html || '', target: n.target || [] })),
          })),
          passes: ids(results.passes),
          incomplete: ids(results.incomplete),
          inapplicable: ids(results.inapplicable),
        },
      });
    });
  } catch (e) {
    clearTimeout(timer);
    settle({ error: String((e && e.message) || e) });
  }
})
"""

# Extra slack for the Python-side race so the in-page timer normally wins.
_RACE_SLACK_SECONDS = 1.0


def build_axe_config(tags: Iterable[str]) -> dict[str, Any]:
    return {
        "runOnly": {"type": "tag", "values": list(tags)},
        "resultTypes": ["violations", "passes"],
    }


async def inject_axe(page: AuditPage, primary_url: str, fallback_url: str) -> str:
    """Inject the engine, falling back to the secondary CDN.

    Returns the URL that loaded. Raises `EngineNotLoaded` when both fail.
    """

    try:
        await page.add_script_tag(url=primary_url)
        return primary_url
    except Exception as exc:
        logger.warning("axe-core injection from %s failed (%s); trying fallback", primary_url, exc)

    try:
        await page.add_script_tag(url=fallback_url)
        return fallback_url
    except Exception as exc:
        raise EngineNotLoaded(f"axe-core could not be injected from {primary_url} or {fallback_url}: {exc}") from exc


async def wait_for_axe(page: AuditPage, *, attempts: int, interval_ms: int) -> None:
    for attempt in range(1, attempts + 1):
        if await page.evaluate(AXE_READY_SCRIPT):
            logger.debug("axe-core ready after %s poll(s)", attempt)
            return
        if attempt < attempts:
            await asyncio.sleep(interval_ms / 1000)
    raise EngineNotLoaded(f"axe.run not available after {attempts} polls")


async def run_axe(page: AuditPage, tags: Iterable[str], *, timeout_ms: int) -> dict[str, Any]:
    """Run the engine and return its serialized results."""

    arg = {"config": build_axe_config(tags), "timeoutMs": timeout_ms}
    try:
        payload = await asyncio.wait_for(
            page.evaluate(AXE_RUN_SCRIPT, arg),
            timeout=timeout_ms / 1000 + _RACE_SLACK_SECONDS,
        )
    except asyncio.TimeoutError as exc:
        raise ScanTimeout(f"axe.run timed out after {timeout_ms}ms") from exc

    if not isinstance(payload, dict):
        raise EngineExecutionError(f"Unexpected engine payload: {type(payload).__name__}")
    if payload.get("timedOut"):
        raise ScanTimeout(payload.get("error") or f"axe.run timed out after {timeout_ms}ms")
    if payload.get("error"):
        raise EngineExecutionError(str(payload["error"]))

    results = payload.get("results")
    if not isinstance(results, dict):
        raise EngineExecutionError("Engine returned no results")
    return results


def _rule_ids(items: Any) -> list[str]:
    out: list[str] = []
    for item in items or []:
        if isinstance(item, str):
            out.append(item)
        elif isinstance(item, dict) and item.get("id"):
            out.append(str(item["id"]))
    return out


def parse_axe_results(results: dict[str, Any]) -> EngineResult:
    """Convert serialized engine output into an `EngineResult`.

    One finding per violated rule; the first node's markup is kept as the
    affected element and the node count as `occurrences`.
    """

    findings: list[RawFinding] = []
    for item in results.get("violations") or []:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        nodes = [n for n in (item.get("nodes") or []) if isinstance(n, dict)]
        markup = (nodes[0].get("html") or "N/A") if nodes else "N/A"
        findings.append(
            RawFinding(
                rule_id=str(item["id"]),
                impact=item.get("impact"),
                description=str(item.get("help") or item.get("description") or ""),
                affected_element_markup=markup,
                tags=set(item.get("tags") or []),
                source=FindingSource.ENGINE,
                occurrences=max(1, len(nodes)),
                help_url=item.get("helpUrl"),
            )
        )

    return EngineResult(
        violations=findings,
        passes=_rule_ids(results.get("passes")),
        incomplete=_rule_ids(results.get("incomplete")),
        inapplicable=_rule_ids(results.get("inapplicable")),
    )
