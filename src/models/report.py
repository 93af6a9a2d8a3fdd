"""Pydantic models for the reconciliation report."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional, List

from pydantic import BaseModel, ConfigDict, Field

from config.loader import get_keep_removed_default
from models.issues import ReconcileWarning
from models.shared import ReconciliationStatus
from models.ssp import ImplementedRequirement


class ReconcileOptions(BaseModel):
    """Caller-controlled switches for one reconciliation run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    keep_removed: bool = Field(default_factory=get_keep_removed_default)
    max_workers: Optional[int] = None
    # uuid source for newly documented controls; injectable for reproducible runs
    uuid_factory: Optional[Callable[[], str]] = Field(default=None, exclude=True)


class ReconciliationEntry(BaseModel):
    """Per-control output unit of the engine."""
    control_id: str
    status: ReconciliationStatus
    merged_control: Optional[ImplementedRequirement] = None
    prior_control: Optional[ImplementedRequirement] = None  # set for removed entries
    prior_fingerprint: Optional[str] = None
    current_fingerprint: Optional[str] = None
    changed_fields: List[str] = Field(default_factory=list)


def _empty_counts() -> dict[str, int]:
    return {status.value: 0 for status in ReconciliationStatus}


class ReconciliationReport(BaseModel):
    """Primary engine output, consumed by the export and review layers."""
    entries: List[ReconciliationEntry] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=_empty_counts)
    preserved_metadata: dict[str, Any] = Field(default_factory=dict)
    warnings: List[ReconcileWarning] = Field(default_factory=list)
    keep_removed: bool = False
    reconciled_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_entries(
        cls,
        entries: list[ReconciliationEntry],
        preserved_metadata: dict[str, Any],
        warnings: list[ReconcileWarning],
        keep_removed: bool,
        reconciled_at: str,
    ) -> "ReconciliationReport":
        counts = _empty_counts()
        for entry in entries:
            counts[entry.status.value] += 1
        return cls(
            entries=entries,
            counts=counts,
            preserved_metadata=preserved_metadata,
            warnings=warnings,
            keep_removed=keep_removed,
            reconciled_at=reconciled_at,
        )

    def entries_with_status(self, status: ReconciliationStatus) -> list[ReconciliationEntry]:
        return [e for e in self.entries if e.status == status]

    def merged_controls(self, keep_removed: Optional[bool] = None) -> list[ImplementedRequirement]:
        """Active control set of the merged document, in report order.

        ``keep_removed`` overrides the setting the report was built with.
        """
        keep = self.keep_removed if keep_removed is None else keep_removed
        active: list[ImplementedRequirement] = []
        for entry in self.entries:
            if entry.status == ReconciliationStatus.REMOVED:
                retained = entry.merged_control or entry.prior_control
                if keep and retained is not None:
                    active.append(retained)
            elif entry.merged_control is not None:
                active.append(entry.merged_control)
        return active

    def to_summary(self) -> dict[str, Any]:
        """Compact view for review screens: counts plus itemized ids."""
        return {
            "counts": dict(self.counts),
            "items": {
                status.value: [e.control_id for e in self.entries_with_status(status)]
                for status in ReconciliationStatus
            },
            "warnings": len(self.warnings),
            "reconciled_at": self.reconciled_at,
        }
