"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Numeric,
    String,
    Table,
    Text,
    func,
    text,
)

from clinicflow.models.base import metadata

ACTIVE_SLOT_PREDICATE = text("status = 'scheduled'")

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", String(64), primary_key=True),
    # Ownership / references
    Column("doctor_id", String(64), nullable=False, index=True),
    Column("patient_id", String(64), nullable=False, index=True),
    # Snapshot fields (denormalized for history)
    Column("doctor_name", Text, nullable=True),
    Column("doctor_email", Text, nullable=True),
    Column("doctor_specialization", Text, nullable=True),
    Column("patient_name", Text, nullable=True),
    Column("patient_email", Text, nullable=True),
    Column("patient_phone", String(20), nullable=True),
    # Scheduling
    Column("date", Date, nullable=False),
    Column("time", String(5), nullable=False),
    Column("type", Text, nullable=False, server_default="consultation"),
    Column("status", String(20), nullable=False, server_default="scheduled", index=True),
    Column("notes", Text, nullable=True),
    # Payment
    Column("payment_status", String(20), nullable=False, server_default="pending"),
    Column("payment_method", String(20), nullable=True),
    Column("payment_transaction_id", Text, nullable=True),
    Column("payment_amount", Numeric(10, 2), nullable=True),
    Column("payment_currency", String(3), nullable=True),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    # Provenance
    Column("original_appointment_id", String(64), nullable=True, index=True),
    Column("rescheduled_from", JSON, nullable=True),
    # Transition audit
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_by", String(64), nullable=True),
    Column("cancelled_by_role", String(20), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("no_show_marked_at", DateTime(timezone=True), nullable=True),
    Column("no_show_marked_by", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'rescheduled', 'cancelled', 'completed', 'missed')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "payment_status IN ('pending', 'paid')",
        name="appointments_payment_status_check",
    ),
    CheckConstraint(
        "status <> 'scheduled' OR payment_status = 'paid'",
        name="appointments_scheduled_requires_payment",
    ),
    # At most one active appointment per doctor slot
    Index(
        "uq_appointments_active_slot",
        "doctor_id",
        "date",
        "time",
        unique=True,
        postgresql_where=ACTIVE_SLOT_PREDICATE,
        sqlite_where=ACTIVE_SLOT_PREDICATE,
    ),
    Index("ix_appointments_doctor_date", "doctor_id", "date"),
)
