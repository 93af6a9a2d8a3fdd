"""Merged-document writer: renders a ReconciliationReport as an OSCAL SSP.

The output is readable by ``nodes.ssp_reader``, so a merged document can be
fed straight back into the next reconciliation run. User fields are written
as props stamped with the engine's namespace; catalog props are written
as-is after them.
"""
from __future__ import annotations

import copy
import json
import uuid
from typing import Any

import structlog

from config.loader import get_oscal_version, get_prop_namespace
from models.report import ReconciliationReport
from models.shared import (
    FINGERPRINT_PROP,
    ImplementationStatus,
    JSON_USER_FIELDS,
    TITLE_PROP,
    USER_FIELD_PROPS,
)
from models.ssp import ImplementedRequirement

logger = structlog.get_logger(__name__)

# Top-level SSP sections carried over unchanged from the prior document
CARRIED_SECTIONS = ("import-profile", "system-characteristics", "system-implementation")


def _prop(name: str, value: Any, namespace: str) -> dict[str, Any]:
    return {"name": name, "ns": namespace, "value": value}


def requirement_to_oscal(requirement: ImplementedRequirement, namespace: str | None = None) -> dict[str, Any]:
    """Serialize one ImplementedRequirement as an OSCAL implemented-requirement."""
    namespace = namespace or get_prop_namespace()
    dumped = requirement.model_dump(mode="json", by_alias=True, exclude_none=True)

    props: list[dict[str, Any]] = []
    if requirement.title:
        props.append(_prop(TITLE_PROP, requirement.title, namespace))
    if requirement.prior_fingerprint:
        props.append(_prop(FINGERPRINT_PROP, requirement.prior_fingerprint, namespace))

    for field_name, (prop_name, _) in USER_FIELD_PROPS.items():
        if field_name == "status":
            props.append(_prop(prop_name, dumped["status"], namespace))
        elif field_name == "history":
            if requirement.history:
                history = [entry.model_dump(mode="json") for entry in requirement.history]
                props.append(_prop(prop_name, json.dumps(history), namespace))
        elif field_name in JSON_USER_FIELDS:
            if dumped.get(field_name) is not None:
                props.append(_prop(prop_name, json.dumps(dumped[field_name]), namespace))
        elif dumped.get(field_name):
            props.append(_prop(prop_name, dumped[field_name], namespace))

    props.extend(dumped.get("props", []))
    props.extend(dumped.get("extra_props", []))

    item: dict[str, Any] = {
        "uuid": requirement.uuid,
        "control-id": requirement.control_id,
    }
    if "class" in dumped:
        item["class"] = dumped["class"]
    item["props"] = props
    if dumped.get("params"):
        item["params"] = dumped["params"]
    if dumped.get("parts"):
        item["parts"] = dumped["parts"]
    item["description"] = requirement.description
    if requirement.remarks:
        item["remarks"] = requirement.remarks
    return item


def _document_uuid(report: ReconciliationReport, prior_ssp: dict[str, Any]) -> str:
    if prior_ssp.get("uuid"):
        return str(prior_ssp["uuid"])
    title = str(report.preserved_metadata.get("title", ""))
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{get_prop_namespace()}#{title}#{report.reconciled_at}"))


def build_merged_document(
    report: ReconciliationReport,
    prior_document: dict[str, Any] | None = None,
    keep_removed: bool | None = None,
) -> dict[str, Any]:
    """
    Build the merged OSCAL ``system-security-plan`` document.

    Args:
        report: Output of ``reconciler.reconcile``.
        prior_document: The prior SSP the report was built from. Its
            top-level uuid and system sections are reused.
        keep_removed: Overrides ``report.keep_removed`` for this rendering.

    Returns:
        JSON-compatible dict.
    """
    keep = report.keep_removed if keep_removed is None else keep_removed
    prior_ssp: dict[str, Any] = {}
    if isinstance(prior_document, dict) and isinstance(prior_document.get("system-security-plan"), dict):
        prior_ssp = prior_document["system-security-plan"]

    namespace = get_prop_namespace()
    metadata = copy.deepcopy(report.preserved_metadata)
    metadata.setdefault("title", "System Security Plan")
    metadata.setdefault("oscal-version", get_oscal_version())

    active = report.merged_controls(keep)
    requirements = [requirement_to_oscal(r, namespace) for r in active]

    ssp: dict[str, Any] = {
        "uuid": _document_uuid(report, prior_ssp),
        "metadata": metadata,
    }
    for section in CARRIED_SECTIONS:
        if section in prior_ssp:
            ssp[section] = copy.deepcopy(prior_ssp[section])

    prior_implementation = prior_ssp.get("control-implementation")
    description = ""
    if isinstance(prior_implementation, dict):
        description = prior_implementation.get("description") or ""
    ssp["control-implementation"] = {
        "description": description,
        "implemented-requirements": requirements,
    }
    if "back-matter" in prior_ssp:
        ssp["back-matter"] = copy.deepcopy(prior_ssp["back-matter"])

    not_assessed = sum(1 for r in active if r.status == ImplementationStatus.NOT_ASSESSED)
    logger.info(
        "ssp_writer_completed",
        requirements=len(requirements),
        not_assessed=not_assessed,
        keep_removed=keep,
        reused_prior=bool(prior_ssp),
    )
    return {"system-security-plan": ssp}
