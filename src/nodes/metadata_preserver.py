"""Metadata Preserver: merges catalog and prior SSP metadata blocks.

The catalog is the source of truth for framework identity: the keys listed
under ``metadata.catalog_owned`` in the config (published date, version,
document ids, roles, parties, ...). ``last-modified`` is stamped with the
reconciliation time. Every other key is document-specific: the prior
document's value wins (the SSP's own ``title``, ``responsible-parties``,
``locations``) and the catalog's value is only a fallback. Props are merged
by name, catalog props first.
"""
from __future__ import annotations

import copy
from typing import Any

import structlog

from config.loader import get_catalog_metadata_fields

logger = structlog.get_logger(__name__)

LAST_MODIFIED = "last-modified"
PROPS = "props"


def _merge_props(catalog_props: Any, prior_props: Any) -> list[Any]:
    """Catalog props first, then prior props whose name the catalog lacks."""
    merged = copy.deepcopy(catalog_props) if isinstance(catalog_props, list) else []
    catalog_names = {p.get("name") for p in merged if isinstance(p, dict)}
    for prop in prior_props if isinstance(prior_props, list) else []:
        if isinstance(prop, dict) and prop.get("name") not in catalog_names:
            merged.append(copy.deepcopy(prop))
    return merged


def preserve_metadata(
    catalog_metadata: dict[str, Any] | None,
    prior_metadata: dict[str, Any] | None,
    reconciled_at: str,
) -> dict[str, Any]:
    """Return the merged metadata block. Inputs are not modified."""
    catalog_metadata = catalog_metadata or {}
    prior_metadata = prior_metadata or {}
    catalog_owned = set(get_catalog_metadata_fields())

    merged: dict[str, Any] = {}
    carried: list[str] = []

    # Catalog keys in catalog order; the document keeps its own value for keys the catalog does not own
    for key, value in catalog_metadata.items():
        if key in (LAST_MODIFIED, PROPS):
            continue
        if key not in catalog_owned and key in prior_metadata:
            merged[key] = copy.deepcopy(prior_metadata[key])
            carried.append(key)
        else:
            merged[key] = copy.deepcopy(value)

    # Prior document keys the catalog does not supply
    for key, value in prior_metadata.items():
        if key in (LAST_MODIFIED, PROPS) or key in merged:
            continue
        if key in catalog_owned:
            logger.debug("metadata_catalog_key_missing", key=key)
        merged[key] = copy.deepcopy(value)
        carried.append(key)

    if PROPS in catalog_metadata or PROPS in prior_metadata:
        merged[PROPS] = _merge_props(catalog_metadata.get(PROPS), prior_metadata.get(PROPS))

    merged[LAST_MODIFIED] = reconciled_at

    logger.info(
        "metadata_preserved",
        catalog_keys=len(catalog_metadata),
        carried_from_document=carried,
    )
    return merged
