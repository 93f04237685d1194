"""Cargador de la base de conocimiento WCAG.

Este módulo vive en `core/` porque:
- centraliza el *qué* criterios apunta una auditoría sin acoplar los
  adaptadores de escaneo a un fichero de datos
- los criterios viajan con el paquete (`core/resources/wcag_criteria.json`),
  así que no hay nada que descargar en runtime.

Las búsquedas por id solo consideran la lista de criterios prioritarios; los
conjuntos (`gov-pt`) pueden sobrescribir la prioridad de los que seleccionan.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Iterable

from core.domain.criteria_set import CriteriaSet
from core.domain.models import ConformanceLevel, Principle, Priority, WCAGCriterion


logger = logging.getLogger(__name__)

CRITERIA_FILENAME = "wcag_criteria.json"

_CRITICAL_PRIORITIES = (Priority.P0, Priority.P1)


def _resources_dir() -> Path:
    # core/resources_loader.py -> core/resources
    return Path(__file__).resolve().parent / "resources"


@lru_cache(maxsize=1)
def _load_raw() -> dict:
    path = _resources_dir() / CRITERIA_FILENAME
    return json.loads(path.read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def load_priority_criteria() -> tuple[WCAGCriterion, ...]:
    """Prioritized criteria in knowledge-base order."""

    raw = _load_raw()
    return tuple(WCAGCriterion.model_validate(item) for item in raw.get("criteria", []))


def get_criteria_by_id(criterion_id: str) -> WCAGCriterion | None:
    for criterion in load_priority_criteria():
        if criterion.id == criterion_id:
            return criterion
    return None


def get_criteria_by_priority(priority: Priority | str) -> list[WCAGCriterion]:
    wanted = Priority(priority)
    return [c for c in load_priority_criteria() if c.priority is wanted]


def get_criteria_by_principle(principle: Principle | str) -> list[WCAGCriterion]:
    wanted = Principle(principle)
    return [c for c in load_priority_criteria() if c.principle is wanted]


def get_criteria_by_level(level: ConformanceLevel | str) -> list[WCAGCriterion]:
    wanted = ConformanceLevel(level)
    return [c for c in load_priority_criteria() if c.level is wanted]


def get_critical_criteria() -> list[WCAGCriterion]:
    """P0 and P1 criteria."""

    return [c for c in load_priority_criteria() if c.priority in _CRITICAL_PRIORITIES]


def is_priority_criteria(criterion_id: str) -> bool:
    criterion = get_criteria_by_id(criterion_id)
    return criterion is not None and criterion.priority in _CRITICAL_PRIORITIES


def _set_definition(name: str) -> dict:
    sets = _load_raw().get("sets", {})
    return sets.get(name, {})


def _resolve_ids(ids: Iterable[str], *, overrides: dict[str, str] | None = None) -> list[WCAGCriterion]:
    overrides = overrides or {}
    out: list[WCAGCriterion] = []
    for criterion_id in ids:
        criterion = get_criteria_by_id(criterion_id)
        if criterion is None:
            logger.debug("Unknown criterion id skipped: %s", criterion_id)
            continue
        priority = overrides.get(criterion_id)
        if priority:
            criterion = criterion.model_copy(update={"priority": Priority(priority)})
        out.append(criterion)
    return out


def get_criteria_by_set(
    criteria_set: CriteriaSet | str | None = None,
    custom: Iterable[str] | None = None,
) -> list[WCAGCriterion]:
    """Criterios ordenados de un conjunto.

    Reglas:
    - `gov-pt` usa su propia lista ordenada y sus prioridades.
    - `custom` resuelve los ids dados; sin ids cae a `untile`.
    - `untile` (y cualquier valor desconocido) es la lista prioritaria completa.
    """

    resolved = CriteriaSet.parse(criteria_set)

    if resolved is CriteriaSet.GOV_PT:
        definition = _set_definition(CriteriaSet.GOV_PT.value)
        return _resolve_ids(
            definition.get("ids", []),
            overrides=definition.get("priority_overrides", {}),
        )

    if resolved is CriteriaSet.CUSTOM:
        custom_ids = [str(x).strip() for x in (custom or []) if str(x).strip()]
        if custom_ids:
            return _resolve_ids(custom_ids)
        logger.info("Custom criteria set without ids; falling back to %s", CriteriaSet.UNTILE.value)

    return list(load_priority_criteria())


def get_criteria_ids_by_set(
    criteria_set: CriteriaSet | str | None = None,
    custom: Iterable[str] | None = None,
) -> list[str]:
    return [c.id for c in get_criteria_by_set(criteria_set, custom)]
