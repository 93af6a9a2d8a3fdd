"""Catalog reconciliation pipeline.

Wires the reconciliation nodes into a LangGraph StateGraph:

    flatten -> read_prior -> match -> classify -> merge -> metadata -> report

and exposes the public API used by the CLI and by callers embedding the
engine:

    reconcile(catalog, prior_document=None, options=None) -> ReconciliationReport
    flatten(catalog) -> list[CatalogControl]
    build_merged_document(report, prior_document=None, keep_removed=None) -> dict
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from langgraph.graph import END, StateGraph

from config.loader import get_max_workers, get_parallel_threshold
from models.catalog import CatalogControl, FlattenResult
from models.report import ReconcileOptions, ReconciliationReport
from models.state import ReconcileState
from nodes.classifier import classify_pairs
from nodes.flattener import flatten_catalog
from nodes.matcher import match_controls
from nodes.merge_resolver import resolve_merges
from nodes.metadata_preserver import preserve_metadata
from nodes.ssp_reader import read_prior_document
from nodes.ssp_writer import build_merged_document

logger = structlog.get_logger(__name__)

__all__ = [
    "Reconciler",
    "build_merged_document",
    "flatten",
    "flatten_with_warnings",
    "reconcile",
]


def _timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


class Reconciler:
    """Runs one catalog/document reconciliation through the node graph."""

    def __init__(self, parallel_threshold: Optional[int] = None) -> None:
        self.parallel_threshold = parallel_threshold if parallel_threshold is not None else get_parallel_threshold()
        self.graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(ReconcileState)

        graph.add_node("flatten", self._flatten_node)
        graph.add_node("read_prior", self._read_prior_node)
        graph.add_node("match", self._match_node)
        graph.add_node("classify", self._classify_node)
        graph.add_node("merge", self._merge_node)
        graph.add_node("metadata", self._metadata_node)
        graph.add_node("report", self._report_node)

        graph.set_entry_point("flatten")
        graph.add_edge("flatten", "read_prior")
        graph.add_edge("read_prior", "match")
        graph.add_edge("match", "classify")
        graph.add_edge("classify", "merge")
        graph.add_edge("merge", "metadata")
        graph.add_edge("metadata", "report")
        graph.add_edge("report", END)

        return graph.compile()

    def reconcile(
        self,
        catalog: Any,
        prior_document: Any = None,
        options: Optional[ReconcileOptions] = None,
        now: Optional[datetime] = None,
    ) -> ReconciliationReport:
        options = options or ReconcileOptions()
        state: ReconcileState = {
            "catalog": catalog,
            "prior_document": prior_document,
            "options": options,
            "reconciled_at": _timestamp(now),
        }

        logger.info(
            "reconcile_started",
            has_prior=prior_document is not None,
            keep_removed=options.keep_removed,
        )
        result = self.graph.invoke(state)
        report = result["final_report"]

        logger.info("reconcile_completed", **report.counts, warnings=len(report.warnings))
        return report

    def _flatten_node(self, state: ReconcileState) -> dict[str, Any]:
        flattened = flatten_catalog(state["catalog"])
        return {
            "controls": flattened.controls,
            "catalog_metadata": flattened.metadata,
            "flatten_warnings": flattened.warnings,
        }

    def _read_prior_node(self, state: ReconcileState) -> dict[str, Any]:
        prior = read_prior_document(state.get("prior_document"))
        return {
            "requirements": prior.requirements,
            "prior_metadata": prior.metadata,
            "read_warnings": prior.warnings,
        }

    def _match_node(self, state: ReconcileState) -> dict[str, Any]:
        result = match_controls(state.get("controls", []), state.get("requirements", []))
        return {"pairs": result.pairs, "match_warnings": result.warnings}

    def _classify_node(self, state: ReconcileState) -> dict[str, Any]:
        options = state["options"]
        classified = classify_pairs(
            state.get("pairs", []),
            max_workers=options.max_workers or get_max_workers(),
            parallel_threshold=self.parallel_threshold,
        )
        return {"classified": classified}

    def _merge_node(self, state: ReconcileState) -> dict[str, Any]:
        return {"entries": resolve_merges(state.get("classified", []), state["options"])}

    def _metadata_node(self, state: ReconcileState) -> dict[str, Any]:
        preserved = preserve_metadata(
            state.get("catalog_metadata"),
            state.get("prior_metadata"),
            state["reconciled_at"],
        )
        return {"preserved_metadata": preserved}

    def _report_node(self, state: ReconcileState) -> dict[str, Any]:
        warnings = [
            *state.get("flatten_warnings", []),
            *state.get("read_warnings", []),
            *state.get("match_warnings", []),
        ]
        report = ReconciliationReport.from_entries(
            entries=state.get("entries", []),
            preserved_metadata=state.get("preserved_metadata", {}),
            warnings=warnings,
            keep_removed=state["options"].keep_removed,
            reconciled_at=state["reconciled_at"],
        )
        return {"final_report": report}


_default_reconciler: Optional[Reconciler] = None


def _get_reconciler() -> Reconciler:
    global _default_reconciler
    if _default_reconciler is None:
        _default_reconciler = Reconciler()
    return _default_reconciler


def reconcile(
    catalog: Any,
    prior_document: Any = None,
    options: Optional[ReconcileOptions] = None,
    now: Optional[datetime] = None,
) -> ReconciliationReport:
    """
    Reconcile a freshly fetched catalog against a prior SSP.

    Args:
        catalog: OSCAL catalog, wrapped (``{"catalog": ...}``) or bare.
        prior_document: Prior SSP (OSCAL or simplified export) or None.
        options: ReconcileOptions; defaults come from config.
        now: Pins ``reconciled_at``; defaults to the current UTC time.

    Raises:
        MalformedCatalogError: catalog cannot be walked at all.
        MalformedDocumentError: prior document container is unusable.
    """
    return _get_reconciler().reconcile(catalog, prior_document, options=options, now=now)


def flatten_with_warnings(catalog: Any) -> FlattenResult:
    """Flatten a catalog and return controls, metadata and warnings."""
    return flatten_catalog(catalog)


def flatten(catalog: Any) -> list[CatalogControl]:
    """Flatten a catalog for a fresh-start workflow; warnings are only logged."""
    return flatten_catalog(catalog).controls
