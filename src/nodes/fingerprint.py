"""Fingerprinter for catalog controls.

A fingerprint is a content signature over the substantive, catalog-owned
text of a control: its title, every part's prose and every param label.
Props such as ``sort-id`` and the control class are excluded, so catalog
rebuilds that only reshuffle display metadata do not register as changes.
"""
from __future__ import annotations

import hashlib
import json
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable

import structlog

from config.loader import get_fingerprint_algorithm, get_max_workers, get_parallel_threshold
from models.catalog import CatalogControl, Param, Part
from models.shared import STRUCTURAL_COMPARE_FIELDS
from models.ssp import ImplementedRequirement

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _normalize_text(text: str | None) -> str:
    """Collapse whitespace runs so re-serialization noise is ignored."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def _prose_entries(parts: Iterable[Part]) -> list[list[str]]:
    entries: list[list[str]] = []
    for part in parts:
        for node in part.iter_parts():
            if node.prose:
                entries.append([node.name, node.id or "", _normalize_text(node.prose)])
    return sorted(entries)


def _label_entries(params: Iterable[Param]) -> list[list[str]]:
    return [[param.id, _normalize_text(param.label)] for param in params]


def canonical_content(control: CatalogControl | ImplementedRequirement) -> str:
    """Canonical serialization of the fingerprinted fields."""
    document = {
        "title": _normalize_text(control.title),
        "prose": _prose_entries(control.parts),
        "labels": _label_entries(control.params),
    }
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_fingerprint(control: CatalogControl | ImplementedRequirement, algorithm: str | None = None) -> str:
    """Return the hex digest fingerprint of a control's catalog-owned content."""
    digest = hashlib.new(algorithm or get_fingerprint_algorithm())
    digest.update(canonical_content(control).encode("utf-8"))
    return digest.hexdigest()


def fingerprint_controls(
    controls: list[CatalogControl],
    max_workers: int | None = None,
    parallel_threshold: int | None = None,
) -> list[str]:
    """Fingerprint many controls; result order matches input order.

    Large batches fan out over a thread pool. ``Executor.map`` yields in
    submission order, so output stays deterministic.
    """
    threshold = parallel_threshold if parallel_threshold is not None else get_parallel_threshold()
    workers = max_workers or get_max_workers()

    if len(controls) < threshold or workers <= 1:
        return [compute_fingerprint(c) for c in controls]

    logger.debug("fingerprint_parallel", controls=len(controls), workers=workers)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(compute_fingerprint, controls))


def _dump_field(source: CatalogControl | ImplementedRequirement, field: str) -> Any:
    value = getattr(source, field)
    if isinstance(value, list):
        return [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in value]
    return value


def differing_fields(
    control: CatalogControl,
    requirement: ImplementedRequirement,
    fields: Iterable[str] = STRUCTURAL_COMPARE_FIELDS,
) -> list[str]:
    """Names of the given catalog-owned fields that differ exactly."""
    return [f for f in fields if _dump_field(control, f) != _dump_field(requirement, f)]


def structurally_equal(control: CatalogControl, requirement: ImplementedRequirement) -> bool:
    """Exact comparison of class/title/params/parts against a stale cache."""
    return not differing_fields(control, requirement)
