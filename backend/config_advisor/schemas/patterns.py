"""Pydantic schemas for org metadata patterns."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from config_advisor.models.enums import (
    AutomationKind,
    FieldSemantic,
    NamingConvention,
    RelationshipKind,
    ValidationKind,
)


class NamingPattern(BaseModel):
    type: Literal["field", "object"] = "field"
    pattern: NamingConvention
    frequency: int = 0
    examples: list[str] = Field(default_factory=list)
    confidence: float = 0.0


class FieldExample(BaseModel):
    field_name: str
    field_type: str
    object_name: str


class FieldTypePattern(BaseModel):
    field_name_pattern: FieldSemantic
    common_type: str
    frequency: int = 0
    examples: list[FieldExample] = Field(default_factory=list)
    confidence: float = 0.0


class RelationshipPattern(BaseModel):
    parent_object: str
    child_object: str
    relationship_type: RelationshipKind
    frequency: int = 0
    confidence: float = 0.0


class ValidationPattern(BaseModel):
    pattern: ValidationKind
    frequency: int = 0
    examples: list[str] = Field(default_factory=list)
    confidence: float = 0.0


class AutomationPattern(BaseModel):
    type: AutomationKind
    frequency: int = 0
    confidence: float = 0.0


class OrgPatterns(BaseModel):
    naming_patterns: list[NamingPattern] = Field(default_factory=list)
    field_type_patterns: list[FieldTypePattern] = Field(default_factory=list)
    relationship_patterns: list[RelationshipPattern] = Field(default_factory=list)
    validation_patterns: list[ValidationPattern] = Field(default_factory=list)
    automation_patterns: list[AutomationPattern] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.naming_patterns
            or self.field_type_patterns
            or self.relationship_patterns
            or self.validation_patterns
            or any(p.frequency > 0 for p in self.automation_patterns)
        )
