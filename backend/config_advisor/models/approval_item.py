"""Append-only feedback records (approval items) for recommendations."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from config_advisor.db.base import Base
from config_advisor.models.analysis import utcnow
from config_advisor.models.enums import FeedbackStatus


class ApprovalItem(Base):
    __tablename__ = "approval_items"

    # Autoincrement id doubles as arrival order for trend analysis.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    item_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    item_type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    status: Mapped[FeedbackStatus] = mapped_column(
        Enum(FeedbackStatus, name="feedback_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    modified_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
