"""Convenience imports for Alembic metadata discovery."""

from config_advisor.models.analysis import Analysis
from config_advisor.models.approval_item import ApprovalItem
from config_advisor.models.recalculation_history import RecalculationHistory
from config_advisor.models.recommendation_set import RecommendationSet  # noqa: F401
