"""Lenient view over the opaque proposed change-set payload."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _ChangeModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ProposedObject(_ChangeModel):
    name: str = ""
    action: str | None = None


class ProposedField(_ChangeModel):
    name: str = ""
    label: str | None = None
    type: str | None = None
    action: str | None = None
    description: str | None = None
    changes: dict[str, Any] = Field(default_factory=dict)
    formula: str | None = None
    reference_to: list[str] = Field(default_factory=list, validation_alias=AliasChoices("reference_to", "referenceTo"))
    unique: bool = False

    @field_validator("reference_to", mode="before")
    @classmethod
    def _coerce_reference(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)

    @field_validator("changes", mode="before")
    @classmethod
    def _coerce_changes(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class ProposedRelationship(_ChangeModel):
    parent: str = Field(default="", validation_alias=AliasChoices("parent", "parentObject", "parent_object"))
    child: str = Field(default="", validation_alias=AliasChoices("child", "childObject", "child_object"))
    type: str = "lookup"


class ProposedValidationRule(_ChangeModel):
    name: str = ""
    error_condition_formula: str = Field(
        default="",
        validation_alias=AliasChoices("error_condition_formula", "errorConditionFormula", "formula"),
    )
    error_message: str = Field(default="", validation_alias=AliasChoices("error_message", "errorMessage"))


class ChangeSet(_ChangeModel):
    object_name: str | None = Field(default=None, validation_alias=AliasChoices("object_name", "objectName"))
    objects: list[ProposedObject] = Field(default_factory=list)
    fields: list[ProposedField] = Field(default_factory=list)
    relationships: list[ProposedRelationship] = Field(default_factory=list)
    validation_rules: list[ProposedValidationRule] = Field(
        default_factory=list,
        validation_alias=AliasChoices("validation_rules", "validationRules"),
    )
    validations: list[ProposedValidationRule] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "ChangeSet":
        if not payload:
            return cls()
        return cls.model_validate(payload)

    @property
    def all_validation_rules(self) -> list[ProposedValidationRule]:
        return [*self.validation_rules, *self.validations]

    @property
    def created_object_names(self) -> set[str]:
        return {obj.name for obj in self.objects if obj.action == "create" and obj.name}

    def has_object_creation(self) -> bool:
        return any(obj.action == "create" for obj in self.objects)

    def has_field_type_modification(self) -> bool:
        return any(f.action == "modify" and f.changes.get("type") for f in self.fields)

    def has_relationship_changes(self) -> bool:
        return len(self.relationships) > 0
