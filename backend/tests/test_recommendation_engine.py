from __future__ import annotations

import json

from config_advisor.models.enums import (
    FieldSemantic,
    NamingConvention,
    RecommendationCategory,
    RecommendationImpact,
    RecommendationType,
)
from config_advisor.schemas.patterns import FieldTypePattern, NamingPattern, OrgPatterns
from config_advisor.services.ai import extract_json
from config_advisor.services.engine import RecommendationEngine

PATTERNS = OrgPatterns(
    naming_patterns=[NamingPattern(pattern=NamingConvention.snake_case, frequency=6, confidence=0.85)],
    field_type_patterns=[
        FieldTypePattern(field_name_pattern=FieldSemantic.temporal, common_type="date", frequency=4, confidence=0.7)
    ],
)


class _ScriptedGenerator:
    """Answers by prompt kind; values may be strings, dicts or exceptions."""

    def __init__(self, *, naming=None, field_type=None, related=None) -> None:
        self.answers = {"naming": naming, "field_type": field_type, "related": related}
        self.prompts: list[str] = []

    def generate(self, prompt: str, *, json_mode: bool = False) -> str:
        self.prompts.append(prompt)
        if "field names" in prompt:
            answer = self.answers["naming"]
        elif "field type choices" in prompt:
            answer = self.answers["field_type"]
        else:
            answer = self.answers["related"]
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, dict):
            return json.dumps(answer)
        return answer or ""


PROPOSED = {
    "object_name": "Invoice__c",
    "fields": [{"name": "DueDate__c", "type": "text", "description": "When payment is due"}],
}


def test_generates_naming_field_type_and_related_changes() -> None:
    generator = _ScriptedGenerator(
        naming={"recommendedName": "Due_Date__c", "rationale": "snake case dominates", "confidence": 0.9},
        field_type={
            "recommendedType": "date",
            "rationale": "dates elsewhere",
            "confidence": "0.8",
            "similarFields": [{"name": "Invoice_Date__c", "type": "date"}],
        },
        related={
            "relatedChanges": [
                {"type": "layout", "description": "Add the field to the invoice layout", "priority": "required"},
                {"type": "report", "description": "Update the aging report", "priority": "optional"},
                {"type": "other"},
            ]
        },
    )

    recs = RecommendationEngine(generator).generate_recommendations("TCK-1", "org", PROPOSED, PATTERNS)

    by_id = {r.id: r for r in recs}
    naming = by_id["naming-DueDate__c"]
    assert naming.type == RecommendationType.naming
    assert "Due_Date__c" in naming.description
    assert naming.confidence == 0.9

    field_type = by_id["fieldtype-DueDate__c"]
    assert field_type.type == RecommendationType.field_type
    assert field_type.confidence == 0.8
    assert field_type.examples == ["Invoice_Date__c (date)"]

    related = [r for r in recs if r.id.startswith("related-")]
    assert len(related) == 2
    required = next(r for r in related if r.category == RecommendationCategory.warning)
    assert required.confidence == 0.9
    assert required.impact == RecommendationImpact.high
    assert required.type == RecommendationType.automation
    assert all(r.related_changes == [] for r in related)


def test_related_change_ids_are_stable_across_runs() -> None:
    answer = {"relatedChanges": [{"type": "permission", "description": "Grant field access"}]}
    first = RecommendationEngine(_ScriptedGenerator(related=answer)).generate_recommendations("T", "o", {}, PATTERNS)
    second = RecommendationEngine(_ScriptedGenerator(related=answer)).generate_recommendations("T", "o", {}, PATTERNS)

    assert [r.id for r in first] == [r.id for r in second]


def test_field_type_skipped_without_matching_semantic_patterns() -> None:
    generator = _ScriptedGenerator(field_type={"recommendedType": "currency", "confidence": 0.9})
    proposed = {"fields": [{"name": "Region__c", "type": "text"}]}

    recs = RecommendationEngine(generator).generate_recommendations("TCK-1", "org", proposed, PATTERNS)

    assert not any(r.type == RecommendationType.field_type for r in recs)
    assert not any("field type choices" in p for p in generator.prompts)


def test_unchanged_name_produces_no_naming_recommendation() -> None:
    generator = _ScriptedGenerator(naming={"recommendedName": "DueDate__c", "confidence": 0.7})

    recs = RecommendationEngine(generator).generate_recommendations("TCK-1", "org", PROPOSED, PATTERNS)

    assert "naming-DueDate__c" not in {r.id for r in recs}


def test_generator_failures_and_bad_output_are_skipped_per_item() -> None:
    generator = _ScriptedGenerator(
        naming=RuntimeError("model offline"),
        field_type="I think a date would be best!",
        related="{not json",
    )

    recs = RecommendationEngine(generator).generate_recommendations("TCK-1", "org", PROPOSED, PATTERNS)

    assert recs == []
    assert len(generator.prompts) == 3


def test_confidence_is_clamped_or_defaulted() -> None:
    generator = _ScriptedGenerator(
        naming={"recommendedName": "Due_Date__c", "confidence": 7},
        field_type={"recommendedType": "date", "confidence": "very high"},
    )

    recs = RecommendationEngine(generator).generate_recommendations("TCK-1", "org", PROPOSED, PATTERNS)

    by_id = {r.id: r for r in recs}
    assert by_id["naming-DueDate__c"].confidence == 1.0
    assert by_id["fieldtype-DueDate__c"].confidence == 0.5


def test_extract_json_finds_object_in_chatter() -> None:
    assert extract_json('Sure! {"recommendedName": "A__c"} hope this helps') == {"recommendedName": "A__c"}
    assert extract_json("no json here") is None
    assert extract_json("[1, 2]") is None
