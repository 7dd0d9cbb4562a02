"""Doctor directory table using SQLAlchemy Core.

Profiles are maintained by the profile service; the scheduling engine only reads them
for booking snapshots and alternative-doctor suggestions.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
    text,
)

from clinicflow.models.base import metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("full_name", Text, nullable=False),
    Column("email", Text, nullable=True),
    Column("phone", String(20), nullable=True),
    Column("specialization", String(200), nullable=True, index=True),
    Column("experience_years", Integer, nullable=True),
    Column("rating", Numeric(3, 2), nullable=True),
    Column("consultation_fee", Numeric(10, 2), nullable=True),
    Column("image_url", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true"), index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
