"""Org metadata pattern extraction."""

from __future__ import annotations

import logging
from typing import Any

from config_advisor.core.exceptions import ConfigAdvisorException, MetadataUnavailable
from config_advisor.integrations.salesforce.client import MetadataClient
from config_advisor.models.enums import (
    AutomationKind,
    FieldSemantic,
    NamingConvention,
    RelationshipKind,
    ValidationKind,
)
from config_advisor.schemas.patterns import (
    AutomationPattern,
    FieldExample,
    FieldTypePattern,
    NamingPattern,
    OrgPatterns,
    RelationshipPattern,
    ValidationPattern,
)
from config_advisor.services.store import RecommendationStore

logger = logging.getLogger(__name__)

NAMING_EXAMPLE_LIMIT = 5
FIELD_TYPE_EXAMPLE_LIMIT = 3
VALIDATION_EXAMPLE_LIMIT = 3

FIELD_SEMANTIC_HINTS: tuple[tuple[FieldSemantic, tuple[str, ...]], ...] = (
    (FieldSemantic.temporal, ("date", "time")),
    (FieldSemantic.monetary, ("amount", "price", "cost")),
    (FieldSemantic.numeric, ("count", "number", "qty")),
    (FieldSemantic.email, ("email",)),
    (FieldSemantic.phone, ("phone", "mobile")),
    (FieldSemantic.url, ("url", "link")),
    (FieldSemantic.text_long, ("description", "notes", "comments")),
    (FieldSemantic.picklist, ("status", "stage", "type")),
    (FieldSemantic.boolean, ("is", "has", "can")),
)

AUTOMATION_METADATA_TYPES: tuple[tuple[AutomationKind, str], ...] = (
    (AutomationKind.flow, "Flow"),
    (AutomationKind.apex, "ApexTrigger"),
    (AutomationKind.process, "Process"),
)


def calculate_confidence(frequency: int) -> float:
    if frequency >= 10:
        return 0.95
    if frequency >= 5:
        return 0.85
    if frequency >= 3:
        return 0.70
    if frequency >= 2:
        return 0.50
    return 0.30


def detect_naming_convention(field_name: str) -> NamingConvention:
    if field_name.endswith("__c"):
        base = field_name.replace("__c", "", 1)
        if "_" in base:
            return NamingConvention.snake_case
        if any(ch.isupper() for ch in base) and any(ch.islower() for ch in base):
            return NamingConvention.pascal_case
        if base == base.lower():
            return NamingConvention.lowercase
    return NamingConvention.standard


def field_semantic(field_name: str) -> FieldSemantic:
    """Bucket a field API name by the meaning its name suggests (first hint wins)."""
    base = field_name.replace("__c", "", 1).lower()
    for semantic, hints in FIELD_SEMANTIC_HINTS:
        if any(hint in base for hint in hints):
            return semantic
    return FieldSemantic.general


def classify_validation_formula(formula: str) -> ValidationKind:
    text = formula or ""
    if "ISBLANK" in text:
        return ValidationKind.required_field
    if "REGEX" in text:
        return ValidationKind.format_validation
    if "TODAY()" in text or "NOW()" in text:
        return ValidationKind.date_validation
    if ">" in text or "<" in text:
        return ValidationKind.range_validation
    if "CONTAINS" in text or "INCLUDES" in text:
        return ValidationKind.value_restriction
    if "AND(" in text or "OR(" in text:
        return ValidationKind.complex_logic
    return ValidationKind.custom


def dominant_naming_convention(patterns: OrgPatterns | None) -> NamingConvention | None:
    if patterns is None:
        return None
    candidates = [p for p in patterns.naming_patterns if p.pattern != NamingConvention.standard and p.frequency > 0]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.frequency).pattern


def pattern_score(patterns: OrgPatterns) -> float:
    present = [
        bool(patterns.naming_patterns),
        bool(patterns.field_type_patterns),
        bool(patterns.relationship_patterns),
        bool(patterns.validation_patterns),
        any(p.frequency > 0 for p in patterns.automation_patterns),
    ]
    return sum(1 for flag in present if flag) / len(present)


def overall_naming_confidence(patterns: OrgPatterns) -> float:
    confidences = [p.confidence for p in patterns.naming_patterns]
    if not confidences:
        return 0.5
    return sum(confidences) / len(confidences)


class PatternAnalyzer:
    def __init__(self, metadata: MetadataClient, store: RecommendationStore | None = None) -> None:
        self.metadata = metadata
        self.store = store

    def analyze_org_patterns(self, org_id: str, ticket_id: str) -> OrgPatterns:
        sobjects = self._describe_global(org_id)
        described = [(sobject, self._describe_object(org_id, sobject["name"])) for sobject in sobjects]

        patterns = OrgPatterns(
            naming_patterns=self._extract_naming(described),
            field_type_patterns=self._extract_field_types(described),
            relationship_patterns=self._extract_relationships(described),
            validation_patterns=self._extract_validations(described),
            automation_patterns=self._extract_automation(org_id),
        )
        if self.store is not None:
            self.store.save_analysis(
                ticket_id,
                org_id,
                patterns,
                score=pattern_score(patterns),
                confidence=overall_naming_confidence(patterns),
            )
        logger.info(
            "Analyzed org patterns org=%s ticket=%s objects=%d naming=%d field_types=%d",
            org_id,
            ticket_id,
            len(described),
            len(patterns.naming_patterns),
            len(patterns.field_type_patterns),
        )
        return patterns

    def _describe_global(self, org_id: str) -> list[dict[str, Any]]:
        try:
            payload = self.metadata.describe_global(org_id)
        except ConfigAdvisorException:
            raise
        except Exception as exc:  # noqa: BLE001
            raise MetadataUnavailable(org_id, f"describe_global failed: {exc}") from exc
        sobjects = payload.get("sobjects") if isinstance(payload, dict) else None
        if not isinstance(sobjects, list):
            raise MetadataUnavailable(org_id, "describe_global returned no sobjects")
        return [s for s in sobjects if isinstance(s, dict) and s.get("name")]

    def _describe_object(self, org_id: str, name: str) -> dict[str, Any]:
        try:
            return self.metadata.describe_object(org_id, name) or {}
        except ConfigAdvisorException:
            raise
        except Exception as exc:  # noqa: BLE001
            raise MetadataUnavailable(org_id, f"describe_object failed: {exc}", object_name=name) from exc

    @staticmethod
    def _extract_naming(described: list[tuple[dict[str, Any], dict[str, Any]]]) -> list[NamingPattern]:
        buckets: dict[NamingConvention, NamingPattern] = {}
        for sobject, meta in described:
            if not sobject.get("custom"):
                continue
            for field in meta.get("fields") or []:
                if not field.get("custom"):
                    continue
                name = str(field.get("name") or "")
                convention = detect_naming_convention(name)
                bucket = buckets.setdefault(convention, NamingPattern(type="field", pattern=convention))
                bucket.frequency += 1
                if len(bucket.examples) < NAMING_EXAMPLE_LIMIT:
                    bucket.examples.append(name)
        for bucket in buckets.values():
            bucket.confidence = calculate_confidence(bucket.frequency)
        return list(buckets.values())

    @staticmethod
    def _extract_field_types(described: list[tuple[dict[str, Any], dict[str, Any]]]) -> list[FieldTypePattern]:
        buckets: dict[tuple[FieldSemantic, str], FieldTypePattern] = {}
        for sobject, meta in described:
            for field in meta.get("fields") or []:
                name = str(field.get("name") or "")
                field_type = str(field.get("type") or "")
                semantic = field_semantic(name)
                bucket = buckets.setdefault(
                    (semantic, field_type),
                    FieldTypePattern(field_name_pattern=semantic, common_type=field_type),
                )
                bucket.frequency += 1
                if len(bucket.examples) < FIELD_TYPE_EXAMPLE_LIMIT:
                    bucket.examples.append(
                        FieldExample(field_name=name, field_type=field_type, object_name=sobject["name"])
                    )
        kept = [b for b in buckets.values() if b.frequency > 1]
        for bucket in kept:
            bucket.confidence = calculate_confidence(bucket.frequency)
        return sorted(kept, key=lambda b: b.frequency, reverse=True)

    @staticmethod
    def _extract_relationships(described: list[tuple[dict[str, Any], dict[str, Any]]]) -> list[RelationshipPattern]:
        buckets: dict[tuple[str, str], RelationshipPattern] = {}
        for sobject, meta in described:
            for field in meta.get("fields") or []:
                targets = field.get("referenceTo") or []
                if field.get("type") != "reference" or not targets:
                    continue
                parent = str(targets[0])
                kind = RelationshipKind.master_detail if field.get("cascadeDelete") else RelationshipKind.lookup
                bucket = buckets.setdefault(
                    (sobject["name"], parent),
                    RelationshipPattern(parent_object=parent, child_object=sobject["name"], relationship_type=kind),
                )
                bucket.frequency += 1
        for bucket in buckets.values():
            bucket.confidence = calculate_confidence(bucket.frequency)
        return list(buckets.values())

    @staticmethod
    def _extract_validations(described: list[tuple[dict[str, Any], dict[str, Any]]]) -> list[ValidationPattern]:
        buckets: dict[ValidationKind, ValidationPattern] = {}
        for _sobject, meta in described:
            for rule in meta.get("validationRules") or []:
                kind = classify_validation_formula(str(rule.get("errorConditionFormula") or ""))
                bucket = buckets.setdefault(kind, ValidationPattern(pattern=kind))
                bucket.frequency += 1
                message = rule.get("errorMessage")
                if message and len(bucket.examples) < VALIDATION_EXAMPLE_LIMIT:
                    bucket.examples.append(str(message))
        for bucket in buckets.values():
            bucket.confidence = calculate_confidence(bucket.frequency)
        return list(buckets.values())

    def _extract_automation(self, org_id: str) -> list[AutomationPattern]:
        counts = {kind: 0 for kind, _ in AUTOMATION_METADATA_TYPES}
        try:
            for kind, metadata_type in AUTOMATION_METADATA_TYPES:
                counts[kind] = len(self.metadata.list_metadata(org_id, metadata_type) or [])
        except Exception as exc:  # noqa: BLE001
            logger.warning("Automation metadata listing failed for org %s: %s", org_id, exc)
            counts = {kind: 0 for kind, _ in AUTOMATION_METADATA_TYPES}
        return [
            AutomationPattern(type=kind, frequency=counts.get(kind, 0), confidence=calculate_confidence(counts.get(kind, 0)))
            for kind, _ in AUTOMATION_METADATA_TYPES
        ]
