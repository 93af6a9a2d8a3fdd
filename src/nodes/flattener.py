"""Control Flattener for the reconciliation pipeline.

Walks a hierarchical OSCAL catalog (groups containing sub-groups, controls
and control enhancements) into a flat, ordered list of CatalogControl
records. Order is depth-first in declaration order: within a container its
controls come first (each followed by its enhancements), then its groups.
"""
from __future__ import annotations

import copy
from typing import Any

import structlog
from pydantic import ValidationError

from models.catalog import CatalogControl, FlattenResult
from models.issues import ReconcileWarning
from utils.error_handler import MalformedCatalogError

logger = structlog.get_logger(__name__)

# Keys that hold children rather than control payload
_CHILD_KEYS = ("controls",)


def unwrap_catalog(catalog: Any) -> dict[str, Any]:
    """Return the catalog body from ``{"catalog": {...}}`` or a bare catalog."""
    if not isinstance(catalog, dict):
        raise MalformedCatalogError(f"expected a JSON object, got {type(catalog).__name__}")

    body = catalog.get("catalog", catalog)
    if not isinstance(body, dict):
        raise MalformedCatalogError("'catalog' is not an object")

    if "groups" not in body and "controls" not in body:
        raise MalformedCatalogError("catalog has neither 'groups' nor 'controls'")

    for key in ("groups", "controls"):
        if key in body and not isinstance(body[key], list):
            raise MalformedCatalogError(f"catalog '{key}' is not a list")

    return body


class ControlFlattener:
    """
    Pure function object: catalog in, FlattenResult out.

    Malformed individual controls never abort the walk; they are skipped and
    reported as structural warnings.
    """

    def __init__(self) -> None:
        self._controls: list[CatalogControl] = []
        self._seen: dict[str, str] = {}
        self._warnings: list[ReconcileWarning] = []

    def __call__(self, catalog: Any) -> FlattenResult:
        body = unwrap_catalog(catalog)
        self._controls = []
        self._seen = {}
        self._warnings = []

        self._walk_container(body, path="catalog", group=None)

        metadata = body.get("metadata")
        result = FlattenResult(
            controls=self._controls,
            metadata=copy.deepcopy(metadata) if isinstance(metadata, dict) else {},
            warnings=self._warnings,
        )

        logger.info(
            "flattener_completed",
            controls=len(result.controls),
            warnings=len(result.warnings),
        )
        return result

    def _walk_container(self, container: dict[str, Any], path: str, group: dict[str, Any] | None) -> None:
        for index, control in enumerate(self._as_list(container.get("controls"), f"{path}.controls")):
            self._visit_control(control, f"{path}.controls[{index}]", group=group, parent_id=None)

        for index, sub_group in enumerate(self._as_list(container.get("groups"), f"{path}.groups")):
            sub_path = f"{path}.groups[{index}]"
            if not isinstance(sub_group, dict):
                self._warn("invalid_group", f"group at {sub_path} is not an object", location=sub_path)
                continue
            self._walk_container(sub_group, sub_path, group=sub_group)

    def _visit_control(
        self,
        raw: Any,
        path: str,
        group: dict[str, Any] | None,
        parent_id: str | None,
    ) -> None:
        if not isinstance(raw, dict):
            self._warn("invalid_control", f"control at {path} is not an object", location=path)
            return

        control_id = raw.get("id")
        if isinstance(control_id, str):
            control_id = control_id.strip()

        if not control_id:
            self._warn("missing_control_id", f"control at {path} has no id; skipped", location=path)
        elif control_id in self._seen:
            self._warn(
                "duplicate_control_id",
                f"control {control_id} at {path} duplicates {self._seen[control_id]}; first occurrence kept",
                control_id=control_id,
                location=path,
            )
        else:
            control = self._build_control(raw, control_id, path, group, parent_id)
            if control is not None:
                self._seen[control_id] = path
                self._controls.append(control)

        # Enhancements are walked even when their parent was skipped
        for index, child in enumerate(self._as_list(raw.get("controls"), f"{path}.controls")):
            self._visit_control(
                child,
                f"{path}.controls[{index}]",
                group=group,
                parent_id=control_id or parent_id,
            )

    def _build_control(
        self,
        raw: dict[str, Any],
        control_id: str,
        path: str,
        group: dict[str, Any] | None,
        parent_id: str | None,
    ) -> CatalogControl | None:
        payload = {k: copy.deepcopy(v) for k, v in raw.items() if k not in _CHILD_KEYS}
        payload["id"] = control_id
        if group is not None:
            payload["group_id"] = group.get("id")
            payload["group_title"] = group.get("title")
        payload["parent_id"] = parent_id

        try:
            return CatalogControl.model_validate(payload)
        except ValidationError as e:
            self._warn(
                "invalid_control",
                f"control {control_id} at {path} failed validation: {e.error_count()} error(s); skipped",
                control_id=control_id,
                location=path,
            )
            logger.debug("flattener_validation_detail", control_id=control_id, errors=e.errors())
            return None

    def _as_list(self, value: Any, path: str) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        self._warn("invalid_container", f"{path} is not a list; skipped", location=path)
        return []

    def _warn(self, code: str, message: str, control_id: str | None = None, location: str | None = None) -> None:
        warning = ReconcileWarning.structural(code, message, control_id=control_id, location=location)
        self._warnings.append(warning)
        logger.warning(f"flattener_{code}", control_id=control_id, location=location)


def flatten_catalog(catalog: Any) -> FlattenResult:
    """Flatten a raw catalog document. Raises MalformedCatalogError if unparseable."""
    return ControlFlattener()(catalog)
