"""Prior-document reader: parses an existing SSP into ImplementedRequirements.

Accepted shapes:
- OSCAL SSP: ``system-security-plan.control-implementation.implemented-requirements``
  with user fields stored as props;
- simplified export: top-level ``controls`` list with camelCase fields.

User props are recognised either by the engine's namespace or, for documents
written before namespacing, by their well-known names. Any other namespaced
prop (the engine's or a third party's, e.g. FedRAMP) is kept verbatim in
``extra_props``. Un-namespaced unknown props belong to the OSCAL/NIST
vocabulary and are treated as cached catalog props.
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from config.loader import get_prop_namespace
from models.issues import ReconcileWarning
from models.shared import (
    FINGERPRINT_PROP,
    ImplementationStatus,
    JSON_USER_FIELDS,
    LEGACY_DESCRIPTION_PROP,
    PROP_TO_USER_FIELD,
    TITLE_PROP,
    USER_FIELD_PROPS,
)
from models.ssp import HistoryEntry, ImplementedRequirement
from utils.error_handler import MalformedDocumentError

logger = structlog.get_logger(__name__)

_STATUS_VALUES = {s.value for s in ImplementationStatus}


@dataclass
class PriorDocument:
    """Parsed prior SSP."""
    requirements: list[ImplementedRequirement] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    warnings: list[ReconcileWarning] = field(default_factory=list)


class SSPReader:
    """Reads one prior document. Instances are single-use."""

    def __init__(self) -> None:
        self.namespace = get_prop_namespace()
        self.warnings: list[ReconcileWarning] = []

    def __call__(self, document: Any) -> PriorDocument:
        if document is None:
            return PriorDocument()

        if not isinstance(document, dict):
            raise MalformedDocumentError(f"expected a JSON object, got {type(document).__name__}")

        if "system-security-plan" in document:
            raw_requirements, metadata = self._locate_oscal(document["system-security-plan"])
            parse = self._parse_oscal_requirement
        elif "controls" in document:
            raw_requirements = document["controls"]
            if not isinstance(raw_requirements, list):
                raise MalformedDocumentError("'controls' is not a list")
            metadata = document.get("metadata") or {}
            parse = self._parse_simplified_control
        else:
            raise MalformedDocumentError("neither 'system-security-plan' nor 'controls' found")

        requirements: list[ImplementedRequirement] = []
        for index, raw in enumerate(raw_requirements):
            location = f"implemented-requirements[{index}]"
            if not isinstance(raw, dict):
                self._warn("invalid_requirement", f"{location} is not an object; skipped", location=location)
                continue
            requirement = parse(raw, location)
            if requirement is not None:
                requirements.append(requirement)

        logger.info(
            "ssp_reader_completed",
            requirements=len(requirements),
            warnings=len(self.warnings),
        )
        return PriorDocument(
            requirements=requirements,
            metadata=metadata if isinstance(metadata, dict) else {},
            warnings=self.warnings,
        )

    def _locate_oscal(self, ssp: Any) -> tuple[list[Any], dict[str, Any]]:
        if not isinstance(ssp, dict):
            raise MalformedDocumentError("'system-security-plan' is not an object")
        implementation = ssp.get("control-implementation")
        if implementation is None:
            implementation = {}
        if not isinstance(implementation, dict):
            raise MalformedDocumentError("'control-implementation' is not an object")
        requirements = implementation.get("implemented-requirements")
        if requirements is None:
            requirements = []
        if not isinstance(requirements, list):
            raise MalformedDocumentError("'implemented-requirements' is not a list")
        return requirements, ssp.get("metadata") or {}

    def _parse_oscal_requirement(self, raw: dict[str, Any], location: str) -> ImplementedRequirement | None:
        control_id = raw.get("control-id")
        fields: dict[str, Any] = {
            "class": raw.get("class"),
            "params": raw.get("params") or [],
            "parts": raw.get("parts") or [],
            "description": raw.get("description") or "",
            "remarks": raw.get("remarks") or "",
        }

        catalog_props: list[Any] = []
        extra_props: list[Any] = []
        for prop in raw.get("props") or []:
            if not isinstance(prop, dict) or "name" not in prop:
                continue
            name = prop["name"]
            ours = prop.get("ns") == self.namespace
            if name == FINGERPRINT_PROP:
                fields["prior_fingerprint"] = prop.get("value")
            elif name == TITLE_PROP:
                fields["title"] = prop.get("value") or ""
            elif name == LEGACY_DESCRIPTION_PROP and (ours or not prop.get("ns")):
                continue  # derived from parts; regenerated on write
            elif name in PROP_TO_USER_FIELD and (ours or not prop.get("ns")):
                fields[PROP_TO_USER_FIELD[name]] = prop.get("value")
            elif prop.get("ns"):
                extra_props.append(prop)
            else:
                catalog_props.append(prop)

        if "title" not in fields and raw.get("title"):
            fields["title"] = raw["title"]

        fields["props"] = catalog_props
        fields["extra_props"] = extra_props
        return self._build(control_id, raw.get("uuid"), fields, location)

    def _parse_simplified_control(self, raw: dict[str, Any], location: str) -> ImplementedRequirement | None:
        control_id = raw.get("id") or raw.get("control-id")
        fields: dict[str, Any] = {
            "class": raw.get("class"),
            "title": raw.get("title") or "",
            "params": raw.get("params") or [],
            "props": raw.get("props") or [],
            "parts": raw.get("parts") or [],
            "description": raw.get("implementation") or raw.get("description") or "",
            "remarks": raw.get("remarks") or "",
            "prior_fingerprint": raw.get("priorFingerprint") or raw.get("catalogFingerprint"),
        }
        for name, (_, camel_key) in USER_FIELD_PROPS.items():
            if raw.get(camel_key) not in (None, ""):
                fields[name] = raw[camel_key]
        return self._build(control_id, raw.get("uuid"), fields, location)

    def _build(
        self,
        control_id: Any,
        requirement_uuid: Any,
        fields: dict[str, Any],
        location: str,
    ) -> ImplementedRequirement | None:
        if not isinstance(control_id, str) or not control_id.strip():
            self._warn("missing_control_id", f"{location} has no control id; skipped", location=location)
            return None
        control_id = control_id.strip()

        if not requirement_uuid:
            requirement_uuid = str(uuid.uuid4())
            self._warn(
                "missing_uuid",
                f"{control_id} had no uuid; one was assigned",
                control_id=control_id,
                location=location,
            )

        fields["status"] = self._coerce_status(fields.get("status"), control_id, location)
        fields["history"] = self._coerce_history(fields.get("history"), control_id, location)
        fields["api_response_data"] = self._coerce_json(fields.get("api_response_data"))
        for name in USER_FIELD_PROPS:
            if name != "status" and name not in JSON_USER_FIELDS and fields.get(name) is not None:
                value = fields[name]
                fields[name] = value if isinstance(value, str) else json.dumps(value)

        try:
            return ImplementedRequirement.model_validate(
                {"uuid": str(requirement_uuid), "control_id": control_id, **fields}
            )
        except ValidationError as e:
            self._warn(
                "invalid_requirement",
                f"{control_id} failed validation: {e.error_count()} error(s); skipped",
                control_id=control_id,
                location=location,
            )
            logger.debug("ssp_reader_validation_detail", control_id=control_id, errors=e.errors())
            return None

    def _coerce_status(self, value: Any, control_id: str, location: str) -> str:
        if value in (None, ""):
            return ImplementationStatus.NOT_ASSESSED.value
        normalized = str(value).strip().lower().replace("_", "-").replace(" ", "-")
        if normalized in _STATUS_VALUES:
            return normalized
        self._warn(
            "unknown_status",
            f"{control_id} has unrecognised status {value!r}; treated as not-assessed",
            control_id=control_id,
            location=location,
        )
        return ImplementationStatus.NOT_ASSESSED.value

    @staticmethod
    def _coerce_json(value: Any) -> Any:
        """Decode JSON text; text that is not JSON is kept as the plain string."""
        if value in (None, ""):
            return None
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    def _coerce_history(self, value: Any, control_id: str, location: str) -> list[HistoryEntry]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                self._warn(
                    "invalid_history",
                    f"{control_id} evidence history is not valid JSON; left empty",
                    control_id=control_id,
                    location=location,
                )
                return []
        if not isinstance(value, list):
            value = [value]

        entries: list[HistoryEntry] = []
        for item in value:
            try:
                entries.append(HistoryEntry.model_validate(item))
            except ValidationError:
                self._warn(
                    "invalid_history_entry",
                    f"{control_id} has a malformed evidence history entry; skipped",
                    control_id=control_id,
                    location=location,
                )
        return entries

    def _warn(self, code: str, message: str, control_id: str | None = None, location: str | None = None) -> None:
        self.warnings.append(ReconcileWarning.structural(code, message, control_id=control_id, location=location))
        logger.warning(f"ssp_reader_{code}", control_id=control_id, location=location)


def read_prior_document(document: Any) -> PriorDocument:
    """Parse a prior SSP (or None). Raises MalformedDocumentError if unusable."""
    return SSPReader()(document)
