from __future__ import annotations

from typing import Any, TypedDict

# Runtime imports: LangGraph resolves these hints when building channels.
from models.catalog import CatalogControl
from models.issues import ReconcileWarning
from models.report import ReconcileOptions, ReconciliationEntry, ReconciliationReport
from models.ssp import ImplementedRequirement
from nodes.classifier import ClassifiedPair
from nodes.matcher import ControlPair


class ReconcileState(TypedDict, total=False):
    """State object passed through the LangGraph reconciliation pipeline."""
    catalog: Any
    prior_document: Any
    options: ReconcileOptions
    reconciled_at: str
    controls: list[CatalogControl]
    catalog_metadata: dict[str, Any]
    requirements: list[ImplementedRequirement]
    prior_metadata: dict[str, Any]
    pairs: list[ControlPair]
    classified: list[ClassifiedPair]
    entries: list[ReconciliationEntry]
    preserved_metadata: dict[str, Any]
    # Each producing node writes its own key; the report node concatenates them
    flatten_warnings: list[ReconcileWarning]
    read_warnings: list[ReconcileWarning]
    match_warnings: list[ReconcileWarning]
    final_report: ReconciliationReport | None
