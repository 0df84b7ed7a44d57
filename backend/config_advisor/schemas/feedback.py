"""Pydantic schemas for recommendation feedback and learning data."""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from config_advisor.models.enums import FeedbackAction, FeedbackStatus, TrendDirection
from config_advisor.schemas.recommendation import utcnow


class FeedbackSubmission(BaseModel):
    ticket_id: str
    recommendation_id: str
    action: FeedbackAction
    modified_value: Any = None
    reason: str | None = Field(default=None, max_length=2000)
    timestamp: dt.datetime = Field(default_factory=utcnow)


class FeedbackRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    ticket_id: str
    item_id: str
    item_type: str
    status: FeedbackStatus
    reason: str | None = None
    modified_data: str | None = None
    created_at: dt.datetime = Field(default_factory=utcnow)


class Modification(BaseModel):
    original: Any = None
    modified: Any = None
    reason: str | None = None


class LearningData(BaseModel):
    pattern_id: str
    feedback_count: int = 0
    acceptance_rate: float = 0.0
    modifications: list[Modification] = Field(default_factory=list)


class FeedbackTrend(BaseModel):
    recommendation_type: str
    sample_size: int = 0
    first_half_acceptance: float = 0.0
    second_half_acceptance: float = 0.0
    acceptance_change: float = 0.0
    significant_change: bool = False
    trend: TrendDirection = TrendDirection.stable
