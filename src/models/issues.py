"""Pydantic models for recoverable reconciliation issues."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from models.shared import WarningKind


class ReconcileWarning(BaseModel):
    """Per-control problem that was recovered locally.

    Warnings never abort a run; they are accumulated on the report so the
    reviewer sees every control the engine had to skip or disambiguate.
    """
    kind: WarningKind
    code: str  # missing_control_id, duplicate_control_id, invalid_control, ...
    message: str
    control_id: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def structural(cls, code: str, message: str, control_id: str | None = None, location: str | None = None) -> "ReconcileWarning":
        return cls(kind=WarningKind.STRUCTURAL, code=code, message=message, control_id=control_id, location=location)

    @classmethod
    def ambiguous(cls, code: str, message: str, control_id: str | None = None, location: str | None = None) -> "ReconcileWarning":
        return cls(kind=WarningKind.AMBIGUOUS_MATCH, code=code, message=message, control_id=control_id, location=location)
