"""Shared enum values used by the database models and schemas."""

from __future__ import annotations

import enum


class RecommendationType(str, enum.Enum):
    naming = "naming"
    field_type = "fieldType"
    relationship = "relationship"
    validation = "validation"
    automation = "automation"
    conflict = "conflict"


class RecommendationCategory(str, enum.Enum):
    suggestion = "suggestion"
    warning = "warning"
    error = "error"


class RecommendationImpact(str, enum.Enum):
    high = "high"
    medium = "medium"
    low = "low"


class ConflictSeverity(str, enum.Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class ConflictType(str, enum.Enum):
    duplicate = "duplicate"
    dependency = "dependency"
    circular = "circular"
    naming = "naming"
    reserved = "reserved"


class FeedbackStatus(str, enum.Enum):
    approved = "APPROVED"
    rejected = "REJECTED"
    modified = "MODIFIED"


class FeedbackAction(str, enum.Enum):
    accepted = "accepted"
    rejected = "rejected"
    modified = "modified"

    @property
    def status(self) -> FeedbackStatus:
        return {
            FeedbackAction.accepted: FeedbackStatus.approved,
            FeedbackAction.rejected: FeedbackStatus.rejected,
            FeedbackAction.modified: FeedbackStatus.modified,
        }[self]


class TriggerType(str, enum.Enum):
    manual = "manual"
    auto = "auto"
    context_change = "context_change"


class TicketRecalcState(str, enum.Enum):
    idle = "idle"
    queued = "queued"
    processing = "processing"


class TrendDirection(str, enum.Enum):
    improving = "improving"
    declining = "declining"
    stable = "stable"


class NamingConvention(str, enum.Enum):
    snake_case = "snake_case__c"
    pascal_case = "PascalCase__c"
    lowercase = "lowercase__c"
    standard = "standard"


class FieldSemantic(str, enum.Enum):
    temporal = "temporal"
    monetary = "monetary"
    numeric = "numeric"
    email = "email"
    phone = "phone"
    url = "url"
    text_long = "text_long"
    picklist = "picklist"
    boolean = "boolean"
    general = "general"


class ValidationKind(str, enum.Enum):
    required_field = "required_field"
    format_validation = "format_validation"
    date_validation = "date_validation"
    range_validation = "range_validation"
    value_restriction = "value_restriction"
    complex_logic = "complex_logic"
    custom = "custom"


class AutomationKind(str, enum.Enum):
    flow = "flow"
    apex = "apex"
    process = "process"


class RelationshipKind(str, enum.Enum):
    lookup = "lookup"
    master_detail = "master-detail"
