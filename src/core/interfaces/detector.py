"""Heuristic detector contract."""

from __future__ import annotations

from typing import Any, Protocol

from core.domain.models import RawFinding


class HeuristicDetector(Protocol):
    """A check over a page snapshot that yields zero or one summarized finding."""

    def __call__(self, snapshot: Any) -> RawFinding | None: ...
