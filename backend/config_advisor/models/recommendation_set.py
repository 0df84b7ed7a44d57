"""Latest recommendation set per ticket, replaced wholesale on every store."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from config_advisor.db.base import Base, JSONType
from config_advisor.models.analysis import utcnow


class RecommendationSet(Base):
    __tablename__ = "recommendation_sets"

    ticket_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    recommendations: Mapped[list[dict]] = mapped_column(JSONType, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
