"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    feedback_status = postgresql.ENUM("APPROVED", "REJECTED", "MODIFIED", name="feedback_status")
    trigger_type = postgresql.ENUM("manual", "auto", "context_change", name="recalculation_trigger")

    feedback_status_col = postgresql.ENUM("APPROVED", "REJECTED", "MODIFIED", name="feedback_status", create_type=False)
    trigger_type_col = postgresql.ENUM("manual", "auto", "context_change", name="recalculation_trigger", create_type=False)

    bind = op.get_bind()
    feedback_status.create(bind, checkfirst=True)
    trigger_type.create(bind, checkfirst=True)

    op.create_table(
        "pattern_analyses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=64), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("findings", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("pattern_weights", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_pattern_analyses_ticket_id", "pattern_analyses", ["ticket_id"])
    op.create_index("ix_pattern_analyses_org_id", "pattern_analyses", ["org_id"])
    op.create_index("ix_pattern_analyses_created_at", "pattern_analyses", ["created_at"])

    op.create_table(
        "recommendation_sets",
        sa.Column("ticket_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("recommendations", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_recommendation_sets_org_id", "recommendation_sets", ["org_id"])

    op.create_table(
        "approval_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=64), nullable=False),
        sa.Column("item_id", sa.String(length=255), nullable=False),
        sa.Column("item_type", sa.String(length=32), nullable=False),
        sa.Column("status", feedback_status_col, nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("modified_data", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_approval_items_ticket_id", "approval_items", ["ticket_id"])
    op.create_index("ix_approval_items_item_id", "approval_items", ["item_id"])
    op.create_index("ix_approval_items_item_type", "approval_items", ["item_type"])
    op.create_index("ix_approval_items_created_at", "approval_items", ["created_at"])

    op.create_table(
        "recalculation_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=64), nullable=False),
        sa.Column("trigger_type", trigger_type_col, nullable=False),
        sa.Column("added_count", sa.Integer(), nullable=True),
        sa.Column("removed_count", sa.Integer(), nullable=True),
        sa.Column("modified_count", sa.Integer(), nullable=True),
        sa.Column("overall_confidence", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_recalculation_history_ticket_id", "recalculation_history", ["ticket_id"])
    op.create_index("ix_recalculation_history_created_at", "recalculation_history", ["created_at"])


def downgrade() -> None:
    op.drop_table("recalculation_history")
    op.drop_table("approval_items")
    op.drop_table("recommendation_sets")
    op.drop_table("pattern_analyses")
    bind = op.get_bind()
    sa.Enum("manual", "auto", "context_change", name="recalculation_trigger").drop(bind, checkfirst=True)
    sa.Enum("APPROVED", "REJECTED", "MODIFIED", name="feedback_status").drop(bind, checkfirst=True)
