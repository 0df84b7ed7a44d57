"""LLM-backed recommendation generation."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from pydantic import ValidationError

from config_advisor.models.enums import RecommendationCategory, RecommendationImpact, RecommendationType
from config_advisor.schemas.changes import ChangeSet, ProposedField
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import Recommendation, clamp
from config_advisor.services.ai import TextGenerator, extract_json
from config_advisor.services.ai.prompts import (
    build_field_type_prompt,
    build_naming_prompt,
    build_related_changes_prompt,
)
from config_advisor.services.patterns import field_semantic

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5


def _confidence(value: Any) -> float:
    try:
        return clamp(float(value))
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


class RecommendationEngine:
    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    def generate_recommendations(
        self,
        ticket_id: str,
        org_id: str,
        proposed_changes: dict[str, Any] | None,
        patterns: OrgPatterns,
    ) -> list[Recommendation]:
        changes = ChangeSet.from_payload(proposed_changes)
        recommendations: list[Recommendation] = []
        for field in changes.fields:
            if not field.name:
                continue
            naming = self._naming_recommendation(field, patterns)
            if naming is not None:
                recommendations.append(naming)
            field_type = self._field_type_recommendation(field, patterns)
            if field_type is not None:
                recommendations.append(field_type)
        recommendations.extend(self._related_change_recommendations(proposed_changes or {}, patterns))
        logger.info(
            "Generated %d recommendations ticket=%s org=%s", len(recommendations), ticket_id, org_id
        )
        return recommendations

    def _ask(self, prompt: str, *, item: str) -> dict[str, Any] | None:
        try:
            raw = self.generator.generate(prompt, json_mode=True)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Text generation failed for %s: %s", item, exc)
            return None
        data = extract_json(raw or "")
        if data is None:
            logger.warning("Unparseable generator output for %s", item)
        return data

    def _naming_recommendation(self, field: ProposedField, patterns: OrgPatterns) -> Recommendation | None:
        prompt = build_naming_prompt(
            proposed_name=field.name,
            patterns=[p.model_dump(mode="json") for p in patterns.naming_patterns],
        )
        data = self._ask(prompt, item=f"naming:{field.name}")
        if not data:
            return None
        recommended = str(data.get("recommendedName") or "").strip()
        if not recommended or recommended == field.name:
            return None
        try:
            return Recommendation(
                id=f"naming-{field.name}",
                type=RecommendationType.naming,
                category=RecommendationCategory.suggestion,
                title=f"Naming Convention: {field.name}",
                description=f"Consider renaming to '{recommended}' to follow organization patterns",
                rationale=str(data.get("rationale") or ""),
                confidence=_confidence(data.get("confidence")),
                examples=_string_list(data.get("examples")),
                impact=RecommendationImpact.low,
            )
        except ValidationError as exc:
            logger.warning("Discarding naming recommendation for %s: %s", field.name, exc)
            return None

    def _field_type_recommendation(self, field: ProposedField, patterns: OrgPatterns) -> Recommendation | None:
        semantic = field_semantic(field.name)
        matching = [p for p in patterns.field_type_patterns if p.field_name_pattern == semantic]
        if not matching:
            return None
        prompt = build_field_type_prompt(
            field_name=field.name,
            field_purpose=field.description or "Not specified",
            current_type=field.type or "Not specified",
            patterns=[p.model_dump(mode="json") for p in matching],
        )
        data = self._ask(prompt, item=f"fieldType:{field.name}")
        if not data:
            return None
        recommended = str(data.get("recommendedType") or "").strip()
        if not recommended or recommended == field.type:
            return None
        examples: list[str] = []
        for similar in data.get("similarFields") or []:
            if isinstance(similar, dict) and similar.get("name"):
                examples.append(f"{similar['name']} ({similar.get('type', '?')})")
        try:
            return Recommendation(
                id=f"fieldtype-{field.name}",
                type=RecommendationType.field_type,
                category=RecommendationCategory.suggestion,
                title=f"Field Type: {field.name}",
                description=f"Consider using '{recommended}' type based on similar fields",
                rationale=str(data.get("rationale") or ""),
                confidence=_confidence(data.get("confidence")),
                examples=examples,
                impact=RecommendationImpact.medium,
            )
        except ValidationError as exc:
            logger.warning("Discarding field type recommendation for %s: %s", field.name, exc)
            return None

    def _related_change_recommendations(
        self, proposed_changes: dict[str, Any], patterns: OrgPatterns
    ) -> list[Recommendation]:
        prompt = build_related_changes_prompt(change=proposed_changes, patterns=patterns.model_dump(mode="json"))
        data = self._ask(prompt, item="relatedChanges")
        if not data:
            return []
        items = data.get("relatedChanges")
        if not isinstance(items, list):
            return []

        recommendations: list[Recommendation] = []
        for change in items:
            if not isinstance(change, dict) or not change.get("description"):
                continue
            required = change.get("priority") == "required"
            change_type = str(change.get("type") or "other")
            description = str(change["description"])
            digest = hashlib.sha1(f"{change_type}|{description}".encode("utf-8")).hexdigest()[:12]
            rec_id = f"related-{digest}"
            try:
                recommendations.append(
                    Recommendation(
                        id=rec_id,
                        type=RecommendationType.automation,
                        category=RecommendationCategory.warning if required else RecommendationCategory.suggestion,
                        title=f"Related Change: {change_type}",
                        description=description,
                        rationale=str(change.get("rationale") or ""),
                        confidence=0.9 if required else 0.7,
                        impact=RecommendationImpact.high if required else RecommendationImpact.medium,
                    )
                )
            except ValidationError as exc:
                logger.warning("Discarding related change recommendation: %s", exc)
        return recommendations
