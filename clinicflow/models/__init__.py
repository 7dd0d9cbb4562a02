"""Database models."""

from clinicflow.models.appointments import appointments
from clinicflow.models.base import metadata
from clinicflow.models.doctors import doctors
from clinicflow.models.patients import patients

__all__ = [
    "appointments",
    "doctors",
    "metadata",
    "patients",
]
