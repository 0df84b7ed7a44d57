"""Pydantic schemas for analytics and dashboard metrics."""

from __future__ import annotations

from pydantic import BaseModel, Field

from config_advisor.models.enums import TrendDirection


class AcceptanceMetrics(BaseModel):
    total: int = 0
    accepted: int = 0
    rejected: int = 0
    modified: int = 0
    acceptance_rate: float = 0.0
    rejection_rate: float = 0.0
    modification_rate: float = 0.0


class CommonModification(BaseModel):
    original: str
    modified: str
    frequency: int


class FeedbackMetrics(BaseModel):
    total_feedback: int = 0
    acceptance_rate: float = 0.0
    rejection_rate: float = 0.0
    modification_rate: float = 0.0
    pattern_accuracy: dict[str, float] = Field(default_factory=dict)
    common_modifications: list[CommonModification] = Field(default_factory=list)


class PatternAccuracy(BaseModel):
    pattern_type: str
    predicted_count: int
    actual_count: int
    accuracy: float
    precision: float
    recall: float


class LearningMetrics(BaseModel):
    iteration_count: int = 0
    improvement_rate: float = 0.0
    feedback_incorporated: int = 0
    pattern_refinements: int = 0
    confidence_adjustments: int = 0


class DashboardOverview(BaseModel):
    total_recommendations: int = 0
    active_tickets: int = 0
    average_confidence: float = 0.0
    overall_acceptance: float = 0.0


class TimeRangeMetrics(BaseModel):
    today: AcceptanceMetrics
    this_week: AcceptanceMetrics
    this_month: AcceptanceMetrics


class TrendSummary(BaseModel):
    type: str
    trend: TrendDirection
    change: float


class DashboardMetrics(BaseModel):
    overview: DashboardOverview
    by_type: dict[str, AcceptanceMetrics] = Field(default_factory=dict)
    by_time_range: TimeRangeMetrics
    trending: list[TrendSummary] = Field(default_factory=list)
    pattern_accuracy: list[PatternAccuracy] = Field(default_factory=list)
    learning_progress: LearningMetrics = Field(default_factory=LearningMetrics)
