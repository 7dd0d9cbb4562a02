"""Lifecycle event publication.

Events go to Redis pub/sub channels named ``<exchange>:<routing key>`` (for example
``appointment_events:appointment.created``). Consumers bind with a pattern
subscription such as ``appointment_events:*``.

Publishing is best-effort: the appointment row is the source of truth, so a failed
publish is logged and reported as ``False``, never raised. Delivery is at most once
and consumers must tolerate duplicates and gaps.
"""

import asyncio
import json
from collections.abc import Mapping
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

import structlog
from redis import asyncio as aioredis

from clinicflow.config import settings

logger = structlog.get_logger(__name__)


class LifecycleEvent(str, Enum):
    """Routing keys of appointment lifecycle events."""

    CREATED = "appointment.created"
    RESCHEDULED = "appointment.rescheduled"
    CANCELLED = "appointment.cancelled"
    COMPLETED = "appointment.completed"
    MISSED = "appointment.missed"


def _iso(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def build_event(
    event_type: LifecycleEvent,
    appointment: Mapping[str, Any],
    **fields: Any,
) -> dict[str, Any]:
    """
    Build an event payload for an appointment.

    Args:
        event_type: Lifecycle event
        appointment: Appointment row the event describes
        **fields: Transition-specific fields

    Returns:
        JSON-ready payload
    """
    payload = {
        "event_type": event_type.value,
        "appointment_id": appointment["id"],
        "doctor_id": appointment["doctor_id"],
        "patient_id": appointment["patient_id"],
        "date": _iso(appointment["date"]),
        "time": appointment["time"],
        "timestamp": datetime.now(UTC).isoformat(),
    }
    payload.update({key: _iso(value) for key, value in fields.items()})
    return payload


class EventPublisher:
    """Publishes lifecycle events to the event bus."""

    def __init__(
        self,
        redis_client: aioredis.Redis | None,
        exchange: str | None = None,
        timeout: float | None = None,
        enabled: bool | None = None,
    ):
        """Initialize publisher with its transport."""
        self.redis = redis_client
        self.exchange = exchange or settings.event_exchange
        self.timeout = settings.event_publish_timeout_seconds if timeout is None else timeout
        self.enabled = settings.events_enabled if enabled is None else enabled

    def channel_for(self, topic: str) -> str:
        """Channel name for a routing key."""
        return f"{self.exchange}:{topic}"

    async def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        """
        Publish an event.

        Args:
            topic: Routing key (``appointment.<transition>``)
            payload: Event body

        Returns:
            True if the bus accepted the event, False otherwise
        """
        if not self.enabled:
            return False

        if self.redis is None:
            logger.warning("event_bus_unavailable", topic=topic)
            return False

        try:
            message = json.dumps(payload, default=str)
            receivers = await asyncio.wait_for(
                self.redis.publish(self.channel_for(topic), message),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(
                "event_publish_failed",
                topic=topic,
                appointment_id=payload.get("appointment_id"),
                error=str(e) or e.__class__.__name__,
            )
            return False

        logger.info(
            "event_published",
            topic=topic,
            appointment_id=payload.get("appointment_id"),
            receivers=receivers,
        )
        return True
