"""Merge Resolver: produces the unified control record for each classified pair.

Ownership is fixed (see ``models.shared``):
- catalog-owned fields (class, title, params, props, parts) always come from
  the freshly fetched catalog control;
- user-owned fields (status, description, responsible party, testing data,
  risk rating, history, ...) always come from the prior requirement.

The resolver works on deep copies; neither input is ever mutated.
"""
from __future__ import annotations

import copy
import uuid
from typing import Callable, Optional

import structlog

from models.catalog import CatalogControl
from models.report import ReconcileOptions, ReconciliationEntry
from models.shared import CATALOG_OWNED_FIELDS, ImplementationStatus, ReconciliationStatus
from models.ssp import ImplementedRequirement
from nodes.classifier import ClassifiedPair
from utils.error_handler import DataLossError

logger = structlog.get_logger(__name__)


def _default_uuid() -> str:
    return str(uuid.uuid4())


class MergeResolver:
    """Turns ClassifiedPair objects into ReconciliationEntry objects."""

    def __init__(self, keep_removed: bool = False, uuid_factory: Optional[Callable[[], str]] = None):
        self.keep_removed = keep_removed
        self.uuid_factory = uuid_factory or _default_uuid

    @classmethod
    def from_options(cls, options: ReconcileOptions) -> "MergeResolver":
        return cls(keep_removed=options.keep_removed, uuid_factory=options.uuid_factory)

    def __call__(self, classified: ClassifiedPair) -> ReconciliationEntry:
        status = classified.status
        control = classified.pair.control
        requirement = classified.pair.requirement

        if status == ReconciliationStatus.NEW:
            merged = self._seed_from_catalog(control, classified.current_fingerprint)  # type: ignore[arg-type]
            return self._entry(classified, merged_control=merged)

        if status == ReconciliationStatus.REMOVED:
            prior = requirement.model_copy(deep=True)  # type: ignore[union-attr]
            merged = requirement.model_copy(deep=True) if self.keep_removed else None  # type: ignore[union-attr]
            return self._entry(classified, merged_control=merged, prior_control=prior)

        merged = self._refresh_catalog_fields(requirement, control, classified.current_fingerprint)  # type: ignore[arg-type]
        return self._entry(classified, merged_control=merged)

    def _seed_from_catalog(self, control: CatalogControl, fingerprint: str | None) -> ImplementedRequirement:
        """Fresh requirement: catalog fields populated, user fields at defaults."""
        return ImplementedRequirement(
            uuid=self.uuid_factory(),
            control_id=control.id,
            status=ImplementationStatus.NOT_ASSESSED,
            prior_fingerprint=fingerprint,
            **{name: copy.deepcopy(getattr(control, name)) for name in CATALOG_OWNED_FIELDS},
        )

    def _refresh_catalog_fields(
        self,
        requirement: ImplementedRequirement,
        control: CatalogControl,
        fingerprint: str | None,
    ) -> ImplementedRequirement:
        """Existing requirement with catalog-owned fields overwritten."""
        requirement = self._release_catalog_props(requirement, control)
        merged = requirement.model_copy(deep=True)
        for name in CATALOG_OWNED_FIELDS:
            setattr(merged, name, copy.deepcopy(getattr(control, name)))
        merged.prior_fingerprint = fingerprint

        self._verify_user_fields(requirement, merged)
        return merged

    @staticmethod
    def _release_catalog_props(requirement: ImplementedRequirement, control: CatalogControl) -> ImplementedRequirement:
        """Drop extra props the catalog itself publishes (same name and ns); they are cache."""
        published = {(p.name, p.ns) for p in control.props if p.ns}
        kept = [p for p in requirement.extra_props if (p.name, p.ns) not in published]
        if len(kept) == len(requirement.extra_props):
            return requirement
        logger.debug(
            "merge_catalog_props_released",
            control_id=requirement.control_id,
            released=len(requirement.extra_props) - len(kept),
        )
        return requirement.model_copy(update={"extra_props": kept})

    @staticmethod
    def _verify_user_fields(prior: ImplementedRequirement, merged: ImplementedRequirement) -> None:
        before = prior.user_fields()
        after = merged.user_fields()
        altered = [name for name in before if before[name] != after[name]]
        if prior.uuid != merged.uuid:
            altered.append("uuid")
        if altered:
            logger.error("merge_user_fields_altered", control_id=prior.control_id, fields=altered)
            raise DataLossError(prior.control_id, altered)

    @staticmethod
    def _entry(
        classified: ClassifiedPair,
        merged_control: ImplementedRequirement | None,
        prior_control: ImplementedRequirement | None = None,
    ) -> ReconciliationEntry:
        return ReconciliationEntry(
            control_id=classified.control_id,
            status=classified.status,
            merged_control=merged_control,
            prior_control=prior_control,
            prior_fingerprint=classified.prior_fingerprint,
            current_fingerprint=classified.current_fingerprint,
            changed_fields=list(classified.changed_fields),
        )


def resolve_merges(classified: list[ClassifiedPair], options: ReconcileOptions) -> list[ReconciliationEntry]:
    """Resolve every classified pair, preserving input order."""
    resolver = MergeResolver.from_options(options)
    entries = [resolver(c) for c in classified]
    logger.info(
        "merge_resolver_completed",
        entries=len(entries),
        active=sum(1 for e in entries if e.merged_control is not None),
        keep_removed=options.keep_removed,
    )
    return entries


def resolve_merge(classified: ClassifiedPair, options: ReconcileOptions | None = None) -> ReconciliationEntry:
    """Resolve a single classified pair."""
    return MergeResolver.from_options(options or ReconcileOptions())(classified)
