"""Scheduling helpers: time parsing, slot grids and request validation.

Everything here is pure (no I/O). Functions that depend on "now" accept it as an
argument so that callers and tests control the clock.
"""

import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any, NamedTuple
from zoneinfo import ZoneInfo

from clinicflow.config import settings

TIME_24H_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
TIME_12H_RE = re.compile(r"^(\d{1,2}):([0-5]\d)\s*(AM|PM)$", re.IGNORECASE)
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TERMINAL_STATUSES = frozenset({"rescheduled", "cancelled", "completed", "missed"})

STATUS_MESSAGES = {
    "scheduled": "Appointment scheduled",
    "rescheduled": "Appointment moved to a new slot",
    "cancelled": "Appointment cancelled",
    "completed": "Appointment completed",
    "missed": "Patient did not show up",
}


class ValidationResult(NamedTuple):
    """Outcome of a structural validation."""

    valid: bool
    error: str | None = None


class RescheduleCheck(NamedTuple):
    """Outcome of the reschedule eligibility policy."""

    allowed: bool
    reason: str | None = None


def clinic_tz() -> ZoneInfo:
    """Timezone in which appointment dates and times are expressed."""
    return ZoneInfo(settings.clinic_timezone)


def clinic_now() -> datetime:
    """Current time in the clinic timezone."""
    return datetime.now(clinic_tz())


def normalize_time(value: str | None) -> str | None:
    """
    Convert a time string to 24-hour ``HH:MM``.

    Accepts ``HH:MM`` and ``h:MM AM/PM``; returns None when the value is not a time.
    """
    if not value:
        return None

    value = value.strip()
    if TIME_24H_RE.match(value):
        return value

    match = TIME_12H_RE.match(value)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = match.group(2)
    period = match.group(3).upper()
    if hours < 1 or hours > 12:
        return None

    if period == "PM" and hours != 12:
        hours += 12
    elif period == "AM" and hours == 12:
        hours = 0

    return f"{hours:02d}:{minutes}"


def parse_date(value: str | date | None) -> date | None:
    """Parse a ``YYYY-MM-DD`` string; returns None when invalid."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if not DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def time_to_minutes(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    """``HH:MM`` string for minutes since midnight."""
    return f"{total // 60:02d}:{total % 60:02d}"


def appointment_datetime(day: date, time_str: str) -> datetime:
    """Aware datetime of a slot in the clinic timezone."""
    hours, minutes = divmod(time_to_minutes(time_str), 60)
    return datetime(day.year, day.month, day.day, hours, minutes, tzinfo=clinic_tz())


def generate_time_slots(
    start: str | None = None,
    end: str | None = None,
    interval: int | None = None,
) -> list[str]:
    """Bookable slot starts in ``[start, end)`` on an ``interval``-minute grid."""
    start_minutes = time_to_minutes(start or settings.working_day_start)
    end_minutes = time_to_minutes(end or settings.working_day_end)
    step = interval or settings.slot_interval_minutes

    return [minutes_to_time(m) for m in range(start_minutes, end_minutes, step)]


def is_within_working_hours(time_str: str) -> bool:
    """Whether ``time_str`` starts inside the working day."""
    minutes = time_to_minutes(time_str)
    return (
        time_to_minutes(settings.working_day_start)
        <= minutes
        < time_to_minutes(settings.working_day_end)
    )


def is_on_slot_grid(time_str: str) -> bool:
    """Whether ``time_str`` falls on a slot boundary."""
    offset = time_to_minutes(time_str) - time_to_minutes(settings.working_day_start)
    return offset % settings.slot_interval_minutes == 0


def validate_slot(
    date_value: str | date | None,
    time_value: str | None,
    now: datetime | None = None,
) -> ValidationResult:
    """Validate a date/time pair as a bookable future slot."""
    if not date_value or not time_value:
        return ValidationResult(False, "Date and time are required")

    day = parse_date(date_value)
    if day is None:
        return ValidationResult(False, "Invalid date format. Use YYYY-MM-DD")

    time_str = normalize_time(time_value)
    if time_str is None:
        return ValidationResult(False, "Invalid time format. Use HH:MM or HH:MM AM/PM")

    if not is_within_working_hours(time_str):
        return ValidationResult(
            False,
            f"Time must be within working hours "
            f"({settings.working_day_start} - {settings.working_day_end})",
        )

    if not is_on_slot_grid(time_str):
        return ValidationResult(
            False,
            f"Time must fall on a {settings.slot_interval_minutes}-minute slot boundary",
        )

    now = now or clinic_now()
    if day < now.date() or appointment_datetime(day, time_str) <= now:
        return ValidationResult(False, "Cannot book appointments in the past")

    return ValidationResult(True)


def validate_appointment_data(
    data: Mapping[str, Any],
    now: datetime | None = None,
) -> ValidationResult:
    """
    Structural checks for a booking request.

    Args:
        data: Request fields (``doctor_id``, ``date``, ``time`` at minimum)
        now: Reference time, defaults to the clinic clock

    Returns:
        ValidationResult with the first problem found
    """
    if not data.get("doctor_id") or not data.get("date") or not data.get("time"):
        return ValidationResult(False, "Doctor, date, and time are required")

    return validate_slot(data["date"], data["time"], now=now)


def validate_payment(
    payment_status: str | None,
    payment_method: str | None,
    payment_id: str | None,
    allowed_methods: list[str] | None = None,
) -> ValidationResult:
    """Payment must be confirmed before a booking is accepted."""
    if payment_status != "paid":
        return ValidationResult(False, "Payment required before confirming appointment")

    if not payment_method or not payment_id:
        return ValidationResult(False, "Payment method and payment ID are required")

    allowed = allowed_methods if allowed_methods is not None else settings.allowed_payment_methods
    if payment_method.lower() not in allowed:
        return ValidationResult(
            False,
            f"Invalid payment method. Must be one of: {', '.join(allowed)}",
        )

    return ValidationResult(True)


def can_reschedule(
    appointment: Mapping[str, Any],
    now: datetime | None = None,
    cutoff_hours: float | None = None,
) -> RescheduleCheck:
    """
    Reschedule eligibility policy.

    A record can be moved only while it is active and the appointment is at least
    ``cutoff_hours`` away.
    """
    status = getattr(appointment["status"], "value", appointment["status"])
    if status in TERMINAL_STATUSES:
        return RescheduleCheck(False, f"Cannot reschedule a {status} appointment")

    cutoff = settings.reschedule_cutoff_hours if cutoff_hours is None else cutoff_hours
    now = now or clinic_now()
    starts_at = appointment_datetime(appointment["date"], appointment["time"])

    if starts_at - now < timedelta(hours=cutoff):
        return RescheduleCheck(
            False,
            f"Cannot reschedule within {cutoff:g} hours of the appointment time",
        )

    return RescheduleCheck(True)


def has_started(appointment: Mapping[str, Any], now: datetime | None = None) -> bool:
    """Whether the appointment's scheduled time has been reached."""
    now = now or clinic_now()
    return appointment_datetime(appointment["date"], appointment["time"]) <= now


def status_message(status: str) -> str:
    """Human-readable status message."""
    return STATUS_MESSAGES.get(status, "Unknown status")
