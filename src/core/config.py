"""Configuración del Core.

Centraliza variables de entorno (pydantic-settings) para que los adaptadores
de navegador, el scan runner y el pipeline de auditoría lean timeouts y
endpoints desde un único sitio.

Notas:
- Todos los retardos se expresan en milisegundos, como en las APIs del
  navegador.
- Los tests construyen `AppSettings(...)` directamente con retardos a cero.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (multiplataforma, sin dependencias extra)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "wcag-audit"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "wcag-audit"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "wcag-audit"
    return Path.home() / ".config" / "wcag-audit"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class AppSettings(BaseSettings):
    """Central settings for the audit engine.

    Order of sources: explicit kwargs, environment (`WCAG_AUDIT_*`), the
    project `.env`, then the per-user `.env`.
    """

    model_config = SettingsConfigDict(
        env_prefix="WCAG_AUDIT_",
        extra="ignore",
        case_sensitive=False,
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    # Browser acquisition
    headless: bool = Field(default=True, description="Launch browsers headless.")
    launch_timeout_ms: int = Field(
        default=60_000,
        gt=0,
        description="Launch timeout for the standard Playwright strategy.",
    )
    stealth_launch_timeout_ms: int = Field(
        default=45_000,
        gt=0,
        description="Race timer around the stealth strategy launch.",
    )
    real_browser_channel: str | None = Field(
        default="chrome",
        description="Installed browser channel used by the real-browser strategy.",
    )
    close_timeout_ms: int = Field(
        default=10_000,
        gt=0,
        description="Timeout guard around closing the shared browser.",
    )

    # Page setup
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        min_length=1,
        description="User-Agent sent by every scan page.",
    )
    accept_language: str = Field(default="en-US,en;q=0.5", min_length=1)
    viewport_width: int = Field(default=1280, ge=320)
    viewport_height: int = Field(default=720, ge=240)
    page_timeout_ms: int = Field(default=45_000, gt=0, description="Default per-page timeout.")
    navigation_timeout_ms: int = Field(default=60_000, gt=0, description="Default navigation timeout.")

    # Navigation tiers
    nav_domcontentloaded_timeout_ms: int = Field(default=60_000, gt=0)
    nav_networkidle_timeout_ms: int = Field(default=30_000, gt=0)
    nav_load_timeout_ms: int = Field(default=45_000, gt=0)

    # Engine injection and execution
    settle_delay_ms: int = Field(
        default=2_000,
        ge=0,
        description="Pause after navigation before injecting the engine.",
    )
    axe_primary_url: str = Field(
        default="https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.7.0/axe.min.js",
        min_length=8,
    )
    axe_fallback_url: str = Field(
        default="https://unpkg.com/axe-core@4.7.0/axe.min.js",
        min_length=8,
    )
    engine_poll_attempts: int = Field(default=10, ge=1, le=100)
    engine_poll_interval_ms: int = Field(default=500, ge=0)
    engine_timeout_ms: int = Field(
        default=30_000,
        gt=0,
        description="Timeout race around a single engine run.",
    )

    # Retry policy
    scan_max_attempts: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Navigate-inject-scan attempts per audit.",
    )
    scan_backoff_ms: int = Field(
        default=3_000,
        ge=0,
        description="Linear backoff step; attempt N waits N times this value.",
    )

    # Audit behaviour
    use_heuristics: bool = Field(
        default=True,
        description="Run the heuristic detectors after the engine.",
    )
    perfect_score_on_passes: bool = Field(
        default=False,
        description=(
            "Score 100 (instead of the -1 sentinel) when the engine returns "
            "passes and no violations."
        ),
    )

    # Multi-page audits
    delay_between_pages_ms: int = Field(default=5_000, ge=0)
    retry_failed_pages: bool = Field(default=True)

    log_level: str = Field(default="INFO", description="Root log level for configure_logging().")
