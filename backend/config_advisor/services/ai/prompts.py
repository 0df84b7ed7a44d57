"""Prompt builders for recommendation generation."""

from __future__ import annotations

import json
from typing import Any


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, default=str)


def build_naming_prompt(*, proposed_name: str, patterns: list[dict[str, Any]]) -> str:
    return (
        "You review Salesforce custom field names. Respond with valid JSON only.\n"
        "Compare the proposed API name with the naming conventions observed in the org.\n"
        "Schema:\n"
        "{\n"
        '  "recommendedName": "API name following the dominant convention",\n'
        '  "rationale": "short explanation",\n'
        '  "confidence": 0.0-1.0,\n'
        '  "examples": ["existing field names following the convention"]\n'
        "}\n"
        f"Observed naming patterns: {_dump(patterns)}\n"
        f"Proposed name: {proposed_name}\n"
    )


def build_field_type_prompt(
    *,
    field_name: str,
    field_purpose: str,
    current_type: str,
    patterns: list[dict[str, Any]],
) -> str:
    return (
        "You review Salesforce field type choices. Respond with valid JSON only.\n"
        "Use the field type patterns of similar fields in the org.\n"
        "Schema:\n"
        "{\n"
        '  "recommendedType": "Salesforce field type",\n'
        '  "rationale": "short explanation",\n'
        '  "confidence": 0.0-1.0,\n'
        '  "similarFields": [{"name": "Field__c", "type": "Currency"}]\n'
        "}\n"
        f"Matching patterns: {_dump(patterns)}\n"
        f"Field name: {field_name}\n"
        f"Field purpose: {field_purpose}\n"
        f"Current type: {current_type}\n"
    )


def build_related_changes_prompt(*, change: dict[str, Any], patterns: dict[str, Any]) -> str:
    return (
        "You plan Salesforce configuration work. Respond with valid JSON only.\n"
        "List follow-up changes implied by the proposed change (page layouts, permissions, automation, reports).\n"
        "Schema:\n"
        "{\n"
        '  "relatedChanges": [\n'
        '    {"type": "layout|permission|automation|report|other", "description": "...",\n'
        '     "rationale": "...", "priority": "required|recommended|optional"}\n'
        "  ]\n"
        "}\n"
        f"Org patterns: {_dump(patterns)}\n"
        f"Proposed change: {_dump(change)}\n"
    )
