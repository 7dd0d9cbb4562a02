"""Create appointments table with the active-slot unique index.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 00:10:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "appointments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("doctor_id", sa.String(64), nullable=False),
        sa.Column("patient_id", sa.String(64), nullable=False),
        # Booking-time snapshots
        sa.Column("doctor_name", sa.Text(), nullable=True),
        sa.Column("doctor_email", sa.Text(), nullable=True),
        sa.Column("doctor_specialization", sa.Text(), nullable=True),
        sa.Column("patient_name", sa.Text(), nullable=True),
        sa.Column("patient_email", sa.Text(), nullable=True),
        sa.Column("patient_phone", sa.String(20), nullable=True),
        # Scheduling
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(5), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default="consultation"),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("notes", sa.Text(), nullable=True),
        # Payment
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_transaction_id", sa.Text(), nullable=True),
        sa.Column("payment_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("payment_currency", sa.String(3), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        # Provenance
        sa.Column("original_appointment_id", sa.String(64), nullable=True),
        sa.Column("rescheduled_from", sa.JSON(), nullable=True),
        # Transition audit
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(64), nullable=True),
        sa.Column("cancelled_by_role", sa.String(20), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("no_show_marked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("no_show_marked_by", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status IN ('scheduled', 'rescheduled', 'cancelled', 'completed', 'missed')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid')",
            name="appointments_payment_status_check",
        ),
        sa.CheckConstraint(
            "status <> 'scheduled' OR payment_status = 'paid'",
            name="appointments_scheduled_requires_payment",
        ),
    )

    op.create_index("ix_appointments_doctor_id", "appointments", ["doctor_id"])
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index(
        "ix_appointments_original_appointment_id",
        "appointments",
        ["original_appointment_id"],
    )
    op.create_index("ix_appointments_doctor_date", "appointments", ["doctor_id", "date"])

    # One scheduled appointment per doctor slot
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["doctor_id", "date", "time"],
        unique=True,
        postgresql_where=sa.text("status = 'scheduled'"),
        sqlite_where=sa.text("status = 'scheduled'"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_index("ix_appointments_doctor_date", table_name="appointments")
    op.drop_index("ix_appointments_original_appointment_id", table_name="appointments")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_index("ix_appointments_doctor_id", table_name="appointments")
    op.drop_table("appointments")
