"""Shared model definitions for the reconciliation engine.

This module contains the canonical enums and the field-ownership table
used by every reconciliation node. The ownership table decides, per field,
which side of a merge wins: the freshly fetched catalog or the prior SSP.

Usage:
    from models.shared import ReconciliationStatus, CATALOG_OWNED_FIELDS
"""
from __future__ import annotations

from enum import Enum


class ReconciliationStatus(str, Enum):
    """Change classification of one control across catalog revisions."""
    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    REMOVED = "removed"


class ImplementationStatus(str, Enum):
    """Implementation status of a control inside an SSP."""
    NOT_ASSESSED = "not-assessed"
    EFFECTIVE = "effective"
    ALTERNATE_CONTROL = "alternate-control"
    INEFFECTIVE = "ineffective"
    NO_VISIBILITY = "no-visibility"
    NOT_IMPLEMENTED = "not-implemented"
    NOT_APPLICABLE = "not-applicable"


class WarningKind(str, Enum):
    """Category of a recoverable, per-control problem."""
    STRUCTURAL = "structural"
    AMBIGUOUS_MATCH = "ambiguous_match"


# Fields the catalog always wins on. Field names are ImplementedRequirement
# attributes; CatalogControl uses the same names.
CATALOG_OWNED_FIELDS: tuple[str, ...] = (
    "class_",
    "title",
    "params",
    "props",
    "parts",
)

# Subset compared when a requirement predates fingerprinting.
STRUCTURAL_COMPARE_FIELDS: tuple[str, ...] = (
    "class_",
    "title",
    "params",
    "parts",
)

# Fields the prior document always wins on. Never cleared by a merge.
USER_OWNED_FIELDS: tuple[str, ...] = (
    "status",
    "description",
    "remarks",
    "responsible_party",
    "consumer_guidance",
    "cloud_responsibility",
    "control_owner",
    "control_type",
    "implementation_date",
    "review_date",
    "next_review_date",
    "evidence",
    "testing_method",
    "testing_procedure",
    "testing_frequency",
    "last_test_date",
    "risk_rating",
    "api_url",
    "api_credential_id",
    "api_response_data",
    "frameworks",
    "compensating_controls",
    "exceptions",
    "history",
    "extra_props",
)

# User fields serialized as OSCAL props on an implemented requirement.
# field -> (prop name, camelCase key used by the simplified export format)
USER_FIELD_PROPS: dict[str, tuple[str, str]] = {
    "status": ("implementation-status", "status"),
    "responsible_party": ("responsible-party", "responsibleParty"),
    "consumer_guidance": ("consumer-guidance", "consumerGuidance"),
    "cloud_responsibility": ("cloud-responsibility", "cloudResponsibility"),
    "control_owner": ("control-owner", "controlOwner"),
    "control_type": ("control-type", "controlType"),
    "implementation_date": ("implementation-date", "implementationDate"),
    "review_date": ("review-date", "reviewDate"),
    "next_review_date": ("next-review-date", "nextReviewDate"),
    "evidence": ("evidence", "evidence"),
    "testing_method": ("testing-method", "testingMethod"),
    "testing_procedure": ("testing-procedure", "testingProcedure"),
    "testing_frequency": ("testing-frequency", "testingFrequency"),
    "last_test_date": ("last-test-date", "lastTestDate"),
    "risk_rating": ("risk-rating", "riskRating"),
    "api_url": ("api-url", "apiUrl"),
    "api_credential_id": ("api-credential-id", "apiCredentialId"),
    "api_response_data": ("api-response-data", "apiResponseData"),
    "frameworks": ("frameworks", "frameworks"),
    "compensating_controls": ("compensating-controls", "compensatingControls"),
    "exceptions": ("exceptions", "exceptions"),
    "history": ("api-data-history", "apiDataHistory"),
}

# User fields whose prop value is JSON text rather than a plain string
JSON_USER_FIELDS: tuple[str, ...] = ("history", "api_response_data")

PROP_TO_USER_FIELD: dict[str, str] = {prop: field for field, (prop, _) in USER_FIELD_PROPS.items()}

# Bookkeeping props written by the engine itself.
FINGERPRINT_PROP = "catalog-fingerprint"
TITLE_PROP = "catalog-control-title"
LEGACY_DESCRIPTION_PROP = "catalog-control-description"
