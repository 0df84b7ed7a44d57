"""Typed live-update events and inbound subscription messages."""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from config_advisor.models.enums import ConflictSeverity
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import Conflict, Recommendation, utcnow


class _Event(BaseModel):
    timestamp: dt.datetime = Field(default_factory=utcnow)


class ConnectedEvent(_Event):
    type: Literal["connected"] = "connected"
    client_id: str


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    message: str


class RecommendationUpdateEvent(_Event):
    type: Literal["recommendation-update"] = "recommendation-update"
    ticket_id: str
    update_type: Literal["full", "partial", "conflict"] = "full"
    data: list[Recommendation]
    from_cache: bool = False


class ConfidenceUpdateEvent(_Event):
    type: Literal["confidence-update"] = "confidence-update"
    ticket_id: str
    recommendation_id: str | None = None
    confidence: float
    factors: list[str] = Field(default_factory=list)


class PatternUpdateEvent(_Event):
    type: Literal["pattern-update"] = "pattern-update"
    org_id: str
    patterns: OrgPatterns
    affected_tickets: list[str] = Field(default_factory=list)


class ConflictDetectedEvent(_Event):
    type: Literal["conflict-detected"] = "conflict-detected"
    ticket_id: str
    conflicts: list[Conflict]
    severity: ConflictSeverity


class InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["subscribe", "unsubscribe", "update", "recalculate"]
    ticket_id: str | None = Field(default=None, validation_alias=AliasChoices("ticket_id", "ticketId"))
    org_id: str | None = Field(default=None, validation_alias=AliasChoices("org_id", "orgId"))
    data: Any = None
