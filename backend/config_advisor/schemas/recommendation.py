"""Pydantic schemas for recommendations, conflicts and recalculation cycles."""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config_advisor.models.enums import (
    ConflictSeverity,
    ConflictType,
    RecommendationCategory,
    RecommendationImpact,
    RecommendationType,
    TriggerType,
)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, float(value)))


class Recommendation(BaseModel):
    """Immutable scored suggestion; re-scoring goes through ``model_copy``."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: RecommendationType
    category: RecommendationCategory
    title: str
    description: str
    rationale: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    impact: RecommendationImpact | None = None
    examples: list[str] = Field(default_factory=list)
    # Ids of related recommendations; references only, never owned.
    related_changes: list[str] = Field(default_factory=list)
    # Set once feedback learning has rescored this recommendation.
    learning_applied: bool = False


class Conflict(BaseModel):
    type: ConflictType
    severity: ConflictSeverity
    message: str = Field(min_length=1)
    details: str = ""
    resolution: str
    affected_components: list[str] = Field(default_factory=list)
    suggested_actions: list[str] = Field(default_factory=list)
    risk_score: int = 0

    @field_validator("resolution")
    @classmethod
    def _resolution_required(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("conflict resolution must not be empty")
        return cleaned


class RecalculationContext(BaseModel):
    ticket_id: str
    org_id: str
    proposed_changes: dict[str, Any] | None = None
    trigger_type: TriggerType = TriggerType.manual
    previous_recommendations: list[Recommendation] | None = None
    queued_at: dt.datetime = Field(default_factory=utcnow)


class RecommendationChanges(BaseModel):
    added: list[Recommendation] = Field(default_factory=list)
    removed: list[Recommendation] = Field(default_factory=list)
    modified: list[Recommendation] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)


class ConfidenceSummary(BaseModel):
    overall: float = Field(ge=0.0, le=1.0)
    factors: list[str] = Field(default_factory=list)


class RecalculationResult(BaseModel):
    ticket_id: str
    recommendations: list[Recommendation]
    changes: RecommendationChanges
    confidence: ConfidenceSummary
    patterns_reanalyzed: bool = False
    conflict_count: int = 0


class RecalculationHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    trigger_type: TriggerType
    added_count: int
    removed_count: int
    modified_count: int
    overall_confidence: float = 0.0
    created_at: dt.datetime = Field(default_factory=utcnow)


class RecommendationsResponse(BaseModel):
    ticket_id: str
    recommendations: list[Recommendation]
    from_cache: bool = False


class ConflictCheckResult(BaseModel):
    conflicts: list[Conflict]
    has_conflicts: bool
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0


class RecommendationStats(BaseModel):
    org_id: str
    total_recommendations: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    average_confidence: float = 0.0
    acceptance_rate: float = 0.0
