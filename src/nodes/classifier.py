"""Change Classifier: assigns new/changed/unchanged/removed to matcher pairs."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from models.shared import CATALOG_OWNED_FIELDS, ReconciliationStatus
from nodes.fingerprint import differing_fields, fingerprint_controls, structurally_equal
from nodes.matcher import ControlPair

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClassifiedPair:
    """A matcher pair with its status and fingerprints."""
    pair: ControlPair
    status: ReconciliationStatus
    current_fingerprint: Optional[str] = None
    prior_fingerprint: Optional[str] = None
    changed_fields: list[str] = field(default_factory=list)

    @property
    def control_id(self) -> str:
        return self.pair.control_id


def classify_pair(pair: ControlPair, current_fingerprint: str | None) -> ClassifiedPair:
    """
    Classify one pair.

    Both present: compare the stored prior fingerprint when there is one,
    otherwise fall back to exact structural equality against the cached
    catalog fields. ``changed_fields`` is informational and never drives
    the status.
    """
    control, requirement = pair.control, pair.requirement

    if control is None and requirement is None:
        raise ValueError("cannot classify an empty pair")

    if requirement is None:
        return ClassifiedPair(pair=pair, status=ReconciliationStatus.NEW, current_fingerprint=current_fingerprint)

    if control is None:
        return ClassifiedPair(
            pair=pair,
            status=ReconciliationStatus.REMOVED,
            prior_fingerprint=requirement.prior_fingerprint,
        )

    prior = requirement.prior_fingerprint
    if prior:
        same = prior == current_fingerprint
    else:
        same = structurally_equal(control, requirement)

    return ClassifiedPair(
        pair=pair,
        status=ReconciliationStatus.UNCHANGED if same else ReconciliationStatus.CHANGED,
        current_fingerprint=current_fingerprint,
        prior_fingerprint=prior,
        changed_fields=differing_fields(control, requirement, CATALOG_OWNED_FIELDS),
    )


def classify_pairs(
    pairs: list[ControlPair],
    max_workers: int | None = None,
    parallel_threshold: int | None = None,
) -> list[ClassifiedPair]:
    """Classify all pairs, fingerprinting catalog controls in one batch."""
    with_control = [p for p in pairs if p.control is not None]
    fingerprints = fingerprint_controls(
        [p.control for p in with_control],  # type: ignore[misc]
        max_workers=max_workers,
        parallel_threshold=parallel_threshold,
    )
    by_id = {p.control_id: fp for p, fp in zip(with_control, fingerprints)}

    classified = [classify_pair(p, by_id.get(p.control_id) if p.control is not None else None) for p in pairs]

    counts: dict[str, int] = {}
    for c in classified:
        counts[c.status.value] = counts.get(c.status.value, 0) + 1
    logger.info("classifier_completed", **counts)
    return classified
