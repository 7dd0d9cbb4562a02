"""Patient directory table using SQLAlchemy Core."""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    String,
    Table,
    Text,
    func,
)

from clinicflow.models.base import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("full_name", Text, nullable=False),
    Column("email", Text, nullable=True),
    Column("phone", String(20), nullable=True),
    Column("gender", String(20), nullable=True),
    Column("date_of_birth", Date, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
