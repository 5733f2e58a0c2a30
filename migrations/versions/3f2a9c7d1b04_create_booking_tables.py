"""create booking tables

Revision ID: 3f2a9c7d1b04
Revises:
Create Date: 2026-10-19

Offerings and their monthly recurrence (dates and time windows), appointments,
slot locks and waitlist entries.

slot_locks carries a unique constraint on the slot key
(offering_id, lock_date, start_time, end_time): lock acquisition is an
INSERT ... ON CONFLICT DO NOTHING against it.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f2a9c7d1b04"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all booking tables."""
    op.create_table(
        "offerings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("service_id", sa.String(length=36), nullable=False),
        sa.Column("vendor_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_offerings_id"), "offerings", ["id"])
    op.create_index(op.f("ix_offerings_service_id"), "offerings", ["service_id"])
    op.create_index(op.f("ix_offerings_vendor_id"), "offerings", ["vendor_id"])

    op.create_table(
        "recurrence_definitions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("offering_id", sa.String(length=36), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("default_capacity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["offering_id"], ["offerings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("offering_id", "year", "month", name="uq_recurrence_offering_month"),
    )
    op.create_index(
        op.f("ix_recurrence_definitions_offering_id"), "recurrence_definitions", ["offering_id"]
    )

    op.create_table(
        "recurrence_dates",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("definition_id", sa.String(length=36), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("default_capacity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["definition_id"], ["recurrence_definitions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("definition_id", "entry_date", name="uq_recurrence_date"),
    )
    op.create_index(op.f("ix_recurrence_dates_definition_id"), "recurrence_dates", ["definition_id"])
    op.create_index(op.f("ix_recurrence_dates_entry_date"), "recurrence_dates", ["entry_date"])

    op.create_table(
        "recurrence_windows",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recurrence_date_id", sa.String(length=36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(
            ["recurrence_date_id"], ["recurrence_dates.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_recurrence_windows_recurrence_date_id"), "recurrence_windows", ["recurrence_date_id"]
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("offering_id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("status_changed_by", sa.String(length=64), nullable=True),
        sa.Column("payment_mode", sa.String(length=20), nullable=False),
        sa.Column("payment_status", sa.String(length=30), nullable=False),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("refund_id", sa.String(length=255), nullable=True),
        sa.Column("refund_status", sa.String(length=30), nullable=True),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("refund_percentage", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["offering_id"], ["offerings.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_appointments_id"), "appointments", ["id"])
    op.create_index(op.f("ix_appointments_offering_id"), "appointments", ["offering_id"])
    op.create_index(op.f("ix_appointments_customer_id"), "appointments", ["customer_id"])
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"])
    op.create_index(op.f("ix_appointments_payment_intent_id"), "appointments", ["payment_intent_id"])
    op.create_index(
        "ix_appointments_slot_key",
        "appointments",
        ["offering_id", "appointment_date", "start_time", "end_time"],
    )

    op.create_table(
        "slot_locks",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("offering_id", sa.String(length=36), nullable=False),
        sa.Column("lock_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("holder_id", sa.String(length=64), nullable=False),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "offering_id", "lock_date", "start_time", "end_time", name="uq_slot_locks_slot_key"
        ),
    )
    op.create_index(op.f("ix_slot_locks_holder_id"), "slot_locks", ["holder_id"])
    op.create_index(op.f("ix_slot_locks_payment_intent_id"), "slot_locks", ["payment_intent_id"])
    op.create_index(op.f("ix_slot_locks_expires_at"), "slot_locks", ["expires_at"])

    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("offering_id", sa.String(length=36), nullable=False),
        sa.Column("preferred_date", sa.Date(), nullable=False),
        sa.Column("preferred_time", sa.String(length=5), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notified_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["offering_id"], ["offerings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_waitlist_entries_customer_id"), "waitlist_entries", ["customer_id"])
    op.create_index(op.f("ix_waitlist_entries_offering_id"), "waitlist_entries", ["offering_id"])
    op.create_index(op.f("ix_waitlist_entries_preferred_date"), "waitlist_entries", ["preferred_date"])
    op.create_index(op.f("ix_waitlist_entries_status"), "waitlist_entries", ["status"])


def downgrade() -> None:
    """Drop all booking tables."""
    op.drop_table("waitlist_entries")
    op.drop_table("slot_locks")
    op.drop_table("appointments")
    op.drop_table("recurrence_windows")
    op.drop_table("recurrence_dates")
    op.drop_table("recurrence_definitions")
    op.drop_table("offerings")
