"""create admissions tables

Revision ID: a7c3e9d1b2f4
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates the admission namespace:
1. academic_periods and the per-period applicant_counters
2. persons and applicants (unique applicant number)
3. requirements (requirement definitions with stable short labels)
4. document_slots (one per applicant + requirement, cascades with the applicant)
5. audit_events (append-only, keyed by applicant number)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c3e9d1b2f4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


campus_enum = postgresql.ENUM("main", "satellite", name="campus", create_type=False)
slot_status_enum = postgresql.ENUM(
    "empty",
    "uploaded",
    "under_review",
    "verified",
    "rejected",
    "registrar_confirmed",
    name="slot_status",
    create_type=False,
)
audit_event_type_enum = postgresql.ENUM(
    "register",
    "upload",
    "delete",
    "submit",
    "unsubmit",
    "status-change",
    name="audit_event_type",
    create_type=False,
)


def upgrade() -> None:
    """Create admissions tables."""
    bind = op.get_bind()
    campus_enum.create(bind, checkfirst=True)
    slot_status_enum.create(bind, checkfirst=True)
    audit_event_type_enum.create(bind, checkfirst=True)

    op.create_table(
        "academic_periods",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("semester_code", sa.String(length=4), nullable=False),
        sa.Column("semester_description", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("year", "semester_code", name="uq_academic_periods_year_semester"),
    )

    op.create_table(
        "applicant_counters",
        sa.Column("period_key", sa.String(length=12), nullable=False),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("period_key"),
    )

    op.create_table(
        "persons",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("middle_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("mobile", sa.String(length=20), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "applicants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("person_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_number", sa.String(length=20), nullable=False),
        sa.Column("campus", campus_enum, nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["period_id"], ["academic_periods.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("person_id"),
        sa.UniqueConstraint("applicant_number", name="uq_applicants_applicant_number"),
    )

    op.create_table(
        "requirements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("short_label", sa.String(length=50), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False, server_default="regular"),
        sa.Column("is_verifiable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("short_label"),
    )

    op.create_table(
        "document_slots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requirement_id", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.String(length=255), nullable=True),
        sa.Column("original_name", sa.String(length=255), nullable=True),
        sa.Column("status", slot_status_enum, nullable=False, server_default="empty"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("document_status", sa.String(length=50), nullable=True),
        sa.Column("registrar_status", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "submitted_documents", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "missing_documents",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("last_updated_by", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["applicant_id"], ["applicants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requirement_id"], ["requirements.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "applicant_id", "requirement_id", name="uq_document_slots_applicant_req"
        ),
    )
    op.create_index("ix_document_slots_applicant_id", "document_slots", ["applicant_id"])
    op.create_index("ix_document_slots_file_path", "document_slots", ["file_path"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_type", audit_event_type_enum, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("applicant_number", sa.String(length=20), nullable=True),
        sa.Column("actor_name", sa.String(length=200), nullable=False),
        sa.Column("actor_email", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_events_applicant_number", "audit_events", ["applicant_number"])


def downgrade() -> None:
    """Drop admissions tables."""
    op.drop_index("ix_audit_events_applicant_number", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_document_slots_file_path", table_name="document_slots")
    op.drop_index("ix_document_slots_applicant_id", table_name="document_slots")
    op.drop_table("document_slots")
    op.drop_table("requirements")
    op.drop_table("applicants")
    op.drop_table("persons")
    op.drop_table("applicant_counters")
    op.drop_table("academic_periods")

    bind = op.get_bind()
    audit_event_type_enum.drop(bind, checkfirst=True)
    slot_status_enum.drop(bind, checkfirst=True)
    campus_enum.drop(bind, checkfirst=True)
