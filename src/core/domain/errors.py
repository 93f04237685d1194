"""Audit error taxonomy.

Attempt-level errors (`NavigationFailure`, `EngineNotLoaded`,
`EngineExecutionError`, `ScanTimeout`) are retried by the scan runner and then
folded into an error-annotated result. `LaunchFailure` and `CleanupFailure`
are only ever logged.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for every audit-engine error."""


class LaunchFailure(AuditError):
    """Every browser launch strategy failed."""

    def __init__(self, errors: dict[str, str] | None = None) -> None:
        self.errors = dict(errors or {})
        detail = "; ".join(f"{name}: {msg}" for name, msg in self.errors.items())
        super().__init__(f"All browser strategies failed ({detail})" if detail else "All browser strategies failed")


class NavigationFailure(AuditError):
    """All navigation wait tiers failed for a URL."""

    def __init__(self, url: str, tier_errors: list[str] | None = None) -> None:
        self.url = url
        self.tier_errors = list(tier_errors or [])
        last = self.tier_errors[-1] if self.tier_errors else "unknown error"
        super().__init__(f"Navigation to {url} failed: {last}")


class EngineNotLoaded(AuditError):
    """The injected engine script never exposed a callable entry point."""


class EngineExecutionError(AuditError):
    """The engine callback reported an error."""


class ScanTimeout(AuditError):
    """An engine run exceeded its timeout race."""


class CleanupFailure(AuditError):
    """Closing a page, context or browser failed."""
