"""Appointment schemas for request/response validation."""

import datetime as dt
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, computed_field

from clinicflow.utils.scheduling import status_message


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    MISSED = "missed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is permitted from this status."""
        return self is not AppointmentStatus.SCHEDULED


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PAID = "paid"


class ActorRole(str, Enum):
    """Roles carried by the verified actor identity."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class AppointmentCreate(BaseModel):
    """Booking request.

    Scheduling and payment fields are deliberately loose here; they are checked by
    the lifecycle manager so that every input failure is reported the same way.
    """

    doctor_id: str | None = None
    date: str | None = None
    time: str | None = None
    type: str = Field(default="consultation", max_length=50)
    specialization: str | None = Field(None, max_length=200)
    payment_status: str | None = None
    payment_method: str | None = None
    payment_id: str | None = Field(None, max_length=200)
    payment_amount: Decimal | None = Field(None, ge=0)
    transaction_time: dt.datetime | None = None
    notes: str | None = Field(None, max_length=1000)


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to a new slot."""

    new_date: str | None = None
    new_time: str | None = None


class CancelRequest(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class RescheduledFrom(BaseModel):
    """Snapshot of the slot an appointment was moved away from."""

    appointment_id: str
    original_date: str
    original_time: str
    rescheduled_at: str
    rescheduled_by: str | None = None
    rescheduled_by_role: str | None = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: str
    doctor_id: str
    patient_id: str
    doctor_name: str | None = None
    doctor_email: str | None = None
    doctor_specialization: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None
    patient_phone: str | None = None
    date: dt.date
    time: str
    type: str
    status: AppointmentStatus
    notes: str | None = None
    payment_status: PaymentStatus
    payment_method: str | None = None
    payment_transaction_id: str | None = None
    payment_amount: Decimal | None = None
    payment_currency: str | None = None
    paid_at: dt.datetime | None = None
    original_appointment_id: str | None = None
    rescheduled_from: RescheduledFrom | None = None
    cancellation_reason: str | None = None
    cancelled_at: dt.datetime | None = None
    cancelled_by: str | None = None
    cancelled_by_role: str | None = None
    completed_at: dt.datetime | None = None
    no_show_marked_at: dt.datetime | None = None
    no_show_marked_by: str | None = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_message(self) -> str:
        """Human-readable description of the status."""
        return status_message(self.status.value)


class RescheduleResponse(BaseModel):
    """Both sides of a reschedule."""

    old_appointment: AppointmentResponse
    new_appointment: AppointmentResponse


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    from_date: dt.date | None = None
    to_date: dt.date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AppointmentRef(BaseModel):
    """Minimal reference to the appointment occupying a slot."""

    id: str
    doctor_id: str
    date: dt.date
    time: str
    status: AppointmentStatus


class AvailabilityResult(BaseModel):
    """Outcome of a single slot check."""

    available: bool
    conflict: AppointmentRef | None = None


class NextAvailableSlot(BaseModel):
    """First free slot found after a requested one."""

    available_date: dt.date | None = None
    available_time: str | None = None
    message: str


class DoctorSummary(BaseModel):
    """Doctor suggested as an alternative for a taken slot."""

    id: str
    full_name: str
    specialization: str | None = None
    experience_years: int | None = None
    rating: float | None = None
    image_url: str | None = None


class AvailabilityResponse(BaseModel):
    """Availability check response with remediation when the slot is taken."""

    doctor_id: str
    date: dt.date
    time: str
    available: bool
    conflict_appointment_id: str | None = None
    next_available: NextAvailableSlot | None = None
    alternatives: list[DoctorSummary] = []


class FreeSlotsResponse(BaseModel):
    """Free slots of a doctor on one day."""

    doctor_id: str
    date: dt.date
    slots: list[str]
