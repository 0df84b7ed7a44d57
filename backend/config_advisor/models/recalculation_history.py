"""Audit trail of recalculation cycles."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Enum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from config_advisor.db.base import Base
from config_advisor.models.analysis import utcnow
from config_advisor.models.enums import TriggerType


class RecalculationHistory(Base):
    __tablename__ = "recalculation_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    trigger_type: Mapped[TriggerType] = mapped_column(
        Enum(TriggerType, name="recalculation_trigger", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    added_count: Mapped[int] = mapped_column(Integer, default=0)
    removed_count: Mapped[int] = mapped_column(Integer, default=0)
    modified_count: Mapped[int] = mapped_column(Integer, default=0)
    overall_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
