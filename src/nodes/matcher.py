"""Control Matcher: pairs catalog controls with prior implemented requirements.

Matching policy: exact, case-sensitive control id. No fuzzy matching;
control identifiers are externally standardized.
- id on both sides   -> matched pair (changed or unchanged)
- catalog-only id    -> (control, None)  candidate new
- document-only id   -> (None, requirement)  candidate removed
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from models.catalog import CatalogControl
from models.issues import ReconcileWarning
from models.ssp import ImplementedRequirement

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ControlPair:
    """One matcher output; at least one side is set."""
    control: Optional[CatalogControl]
    requirement: Optional[ImplementedRequirement]

    def __post_init__(self) -> None:
        if self.control is None and self.requirement is None:
            raise ValueError("ControlPair needs a control or a requirement")

    @property
    def control_id(self) -> str:
        if self.control is not None:
            return self.control.id
        return self.requirement.control_id  # type: ignore[union-attr]


@dataclass
class MatchResult:
    """Ordered pairs: catalog order first, then unmatched requirements in document order."""
    pairs: list[ControlPair] = field(default_factory=list)
    warnings: list[ReconcileWarning] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "matched": sum(1 for p in self.pairs if p.control and p.requirement),
            "catalog_only": sum(1 for p in self.pairs if p.requirement is None),
            "document_only": sum(1 for p in self.pairs if p.control is None),
        }


def _index_first(items, key, kind: str, warnings: list[ReconcileWarning]) -> dict:
    """Index items by key keeping the first occurrence; later ones are warned about."""
    index: dict = {}
    for position, item in enumerate(items):
        item_id = key(item)
        if item_id in index:
            warnings.append(ReconcileWarning.ambiguous(
                f"duplicate_{kind}_id",
                f"{kind} {item_id} appears more than once; entry #{position} ignored, first occurrence kept",
                control_id=item_id,
                location=f"{kind}[{position}]",
            ))
            continue
        index[item_id] = item
    return index


def match_controls(
    controls: list[CatalogControl],
    requirements: list[ImplementedRequirement],
) -> MatchResult:
    """Pair every catalog control and every prior requirement exactly once."""
    warnings: list[ReconcileWarning] = []

    control_index = _index_first(controls, lambda c: c.id, "catalog_control", warnings)
    requirement_index = _index_first(requirements, lambda r: r.control_id, "requirement", warnings)

    pairs = [
        ControlPair(control=control, requirement=requirement_index.get(control_id))
        for control_id, control in control_index.items()
    ]
    pairs.extend(
        ControlPair(control=None, requirement=requirement)
        for control_id, requirement in requirement_index.items()
        if control_id not in control_index
    )

    result = MatchResult(pairs=pairs, warnings=warnings)

    if warnings:
        logger.warning(
            "matcher_ambiguous_ids",
            count=len(warnings),
            sample=[w.control_id for w in warnings[:5]],
        )
    logger.info("matcher_completed", **result.summary)
    return result
