"""Catalog-side models.

Defines Pydantic models for OSCAL catalog controls as produced by the
flattener. Unknown OSCAL keys are kept (``extra="allow"``) so a control
survives flattening with its full structural payload.
"""
from __future__ import annotations

from typing import Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.issues import ReconcileWarning


class Prop(BaseModel):
    """OSCAL property (name/value pair with optional namespace)."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    value: Any = None
    ns: Optional[str] = None
    class_: Optional[str] = Field(default=None, alias="class")
    remarks: Optional[str] = None


class Param(BaseModel):
    """Parameter placeholder referenced from narrative text."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    class_: Optional[str] = Field(default=None, alias="class")
    label: Optional[str] = None
    constraints: Optional[List[Any]] = None


class Part(BaseModel):
    """Narrative part (statement, guidance, objective, ...), possibly nested."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    name: str
    ns: Optional[str] = None
    class_: Optional[str] = Field(default=None, alias="class")
    title: Optional[str] = None
    prose: Optional[str] = None
    parts: Optional[List["Part"]] = None

    def iter_parts(self):
        """Yield this part and every nested sub-part, depth-first."""
        yield self
        for sub in self.parts or []:
            yield from sub.iter_parts()


class CatalogControl(BaseModel):
    """One control as defined by the security-framework catalog."""
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str = Field(min_length=1)
    class_: Optional[str] = Field(default=None, alias="class")
    title: str = ""
    params: List[Param] = Field(default_factory=list)
    props: List[Prop] = Field(default_factory=list)
    parts: List[Part] = Field(default_factory=list)

    # Position in the catalog tree; not fingerprinted
    group_id: Optional[str] = None
    group_title: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def props_map(self) -> dict[str, Any]:
        """Props as a name -> value mapping."""
        return {p.name: p.value for p in self.props}

    @model_validator(mode="after")
    def single_statement(self) -> "CatalogControl":
        statements = [p for p in self.parts if p.name == "statement"]
        if len(statements) > 1:
            raise ValueError(f"control {self.id} has {len(statements)} parts named 'statement'")
        return self


class FlattenResult(BaseModel):
    """Flattener output: ordered controls plus the catalog metadata block."""
    controls: List[CatalogControl] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    warnings: List[ReconcileWarning] = Field(default_factory=list)
