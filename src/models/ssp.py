"""SSP-side models: implemented requirements and their evidence history.

An ImplementedRequirement carries two kinds of fields (see
``models.shared``): a stale cache of catalog-owned fields copied when the
document was generated, and user-owned implementation fields that the
merge must carry forward untouched.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field

from models.catalog import Param, Part, Prop
from models.shared import ImplementationStatus, USER_OWNED_FIELDS


class HistoryEntry(BaseModel):
    """One timestamped evidence-fetch record."""
    model_config = ConfigDict(extra="allow")

    timestamp: str
    success: bool = True
    status: Optional[Any] = None  # HTTP status of the fetch
    data: Optional[Any] = None
    error: Optional[str] = None

    @property
    def day(self) -> str:
        """Calendar day (YYYY-MM-DD) of the entry."""
        return self.timestamp.split("T")[0]


class ImplementedRequirement(BaseModel):
    """One control's record inside an SSP."""
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    uuid: str = Field(default_factory=lambda: str(uuid.uuid4()))
    control_id: str = Field(min_length=1)

    # Catalog-derived cache, superseded on every merge
    class_: Optional[str] = Field(default=None, alias="class")
    title: str = ""
    params: List[Param] = Field(default_factory=list)
    props: List[Prop] = Field(default_factory=list)
    parts: List[Part] = Field(default_factory=list)

    # User-owned implementation fields
    status: ImplementationStatus = ImplementationStatus.NOT_ASSESSED
    description: str = ""
    remarks: str = ""
    responsible_party: str = ""
    consumer_guidance: str = ""
    cloud_responsibility: str = ""
    control_owner: str = ""
    control_type: str = ""
    implementation_date: str = ""
    review_date: str = ""
    next_review_date: str = ""
    evidence: str = ""
    testing_method: str = ""
    testing_procedure: str = ""
    testing_frequency: str = ""
    last_test_date: str = ""
    risk_rating: str = ""
    api_url: str = ""
    api_credential_id: str = ""
    api_response_data: Optional[Any] = None  # last evidence payload, JSON-compatible
    frameworks: str = ""
    compensating_controls: str = ""
    exceptions: str = ""
    history: List[HistoryEntry] = Field(default_factory=list)
    extra_props: List[Prop] = Field(
        default_factory=list,
        description="Props under a foreign or the engine's namespace that map to no field; written back unchanged.",
    )

    # Fingerprint of the catalog control at the last merge
    prior_fingerprint: Optional[str] = None

    def user_fields(self) -> dict[str, Any]:
        """Snapshot of every user-owned field (deep, JSON-compatible)."""
        dumped = self.model_dump(mode="json")
        return {name: dumped[name] for name in USER_OWNED_FIELDS}
