"""Contratos de adquisición de navegador y de página.

Por qué Protocol:
- Las estrategias de lanzamiento (estándar, stealth, navegador real) son
  intercambiables y sustituibles por fakes sin herencia rígida.
- El scan runner solo necesita la pequeña superficie de página que comparten
  todos los drivers.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from core.domain.models import BrowserStrategy


@runtime_checkable
class AuditPage(Protocol):
    """Page surface shared by Playwright, stealth and rebrowser pages."""

    async def goto(self, url: str, **kwargs: Any) -> Any: ...

    async def title(self) -> str: ...

    @property
    def url(self) -> str: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def add_script_tag(self, **kwargs: Any) -> Any: ...

    async def content(self) -> str: ...

    async def close(self) -> None: ...


@runtime_checkable
class BrowserLauncher(Protocol):
    """Contrato mínimo para una estrategia de lanzamiento.

    Reglas de diseño:
    - `launch` es asíncrono y lanza excepción si falla; el manager pasa a la
      siguiente estrategia.
    - Un launcher que arrancó un driver antes de fallar lo detiene él mismo.
    """

    strategy: BrowserStrategy

    async def launch(self) -> Any:
        """Start a browser and return a `BrowserHandle`."""

        ...
