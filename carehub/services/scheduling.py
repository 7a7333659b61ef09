"""Queries over a patient's scheduled events."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from carehub.errors import ConflictError, NotFoundError
from carehub.models.database import utcnow
from carehub.models.enums import EventStatus, EventType
from carehub.models.medication import AdherenceRecord, ScheduledEvent
from carehub.services.medications import serialize_event

logger = logging.getLogger(__name__)

MISSED_EVENTS_LIMIT = 50
UPCOMING_EVENTS_LIMIT = 20
EXPIRY_GRACE = timedelta(hours=24)

MISSED_GROUPS = {
    EventType.MEDICATION.value: "medications",
    EventType.APPOINTMENT.value: "appointments",
    EventType.VITAL_CHECK.value: "vitals",
}


def get_missed_events(
    db: Session, patient_id: UUID, event_type: str | None = None, now: datetime | None = None
) -> dict[str, Any]:
    now = now or utcnow()
    query = db.query(ScheduledEvent).filter(
        ScheduledEvent.patient_id == patient_id,
        ScheduledEvent.status.in_([EventStatus.EXPIRED.value, EventStatus.MISSED.value]),
        ScheduledEvent.start_time < now,
    )
    if event_type:
        query = query.filter(ScheduledEvent.event_type == event_type)
    events = query.order_by(ScheduledEvent.start_time.desc()).limit(MISSED_EVENTS_LIMIT).all()

    grouped: dict[str, list] = defaultdict(list)
    for event in events:
        grouped[MISSED_GROUPS.get(event.event_type, "other")].append(serialize_event(event))

    return {
        "medications": grouped["medications"],
        "appointments": grouped["appointments"],
        "vitals": grouped["vitals"],
        "other": grouped["other"],
        "statistics": {
            "total_missed": len(events),
            "medications": len(grouped["medications"]),
            "appointments": len(grouped["appointments"]),
            "vitals": len(grouped["vitals"]),
        },
    }


def get_event(db: Session, event_id: UUID) -> ScheduledEvent:
    event = db.query(ScheduledEvent).filter(ScheduledEvent.id == event_id).first()
    if not event:
        raise NotFoundError("Scheduled event not found")
    return event


def complete_event(
    db: Session, event_id: UUID, notes: str | None = None, response_data: dict | None = None
) -> ScheduledEvent:
    event = get_event(db, event_id)
    if event.status != EventStatus.PENDING.value:
        raise ConflictError(f"Event is {event.status}, only PENDING events can be completed")

    now = utcnow()
    event.status = EventStatus.COMPLETED.value
    event.details = {
        **(event.details or {}),
        "completion_time": now.isoformat(),
        "notes": notes,
        "response_data": response_data or {},
    }
    record = (
        db.query(AdherenceRecord)
        .filter(AdherenceRecord.scheduled_event_id == event.id)
        .first()
    )
    if record is not None:
        record.mark_completed(response_data, notes, at=now)
    db.flush()
    return event


def get_upcoming_events(
    db: Session, patient_id: UUID, days: int = 7, now: datetime | None = None
) -> list[ScheduledEvent]:
    now = now or utcnow()
    return (
        db.query(ScheduledEvent)
        .filter(
            ScheduledEvent.patient_id == patient_id,
            ScheduledEvent.status == EventStatus.PENDING.value,
            ScheduledEvent.start_time >= now,
            ScheduledEvent.start_time <= now + timedelta(days=days),
        )
        .order_by(ScheduledEvent.start_time.asc())
        .limit(UPCOMING_EVENTS_LIMIT)
        .all()
    )


def expire_stale_events(db: Session, now: datetime | None = None) -> int:
    """PENDING events more than a day past their start become EXPIRED."""
    now = now or utcnow()
    expired = (
        db.query(ScheduledEvent)
        .filter(
            ScheduledEvent.status == EventStatus.PENDING.value,
            ScheduledEvent.start_time < now - EXPIRY_GRACE,
        )
        .update({ScheduledEvent.status: EventStatus.EXPIRED.value}, synchronize_session=False)
    )
    db.flush()
    logger.info("Expired %d stale events", expired)
    return expired


def mark_missed_adherence(db: Session) -> int:
    """Adherence records of expired events that were never logged become missed."""
    expired_ids = select(ScheduledEvent.id).where(
        ScheduledEvent.status == EventStatus.EXPIRED.value
    )
    records = (
        db.query(AdherenceRecord)
        .filter(
            AdherenceRecord.scheduled_event_id.in_(expired_ids),
            AdherenceRecord.is_completed.is_(False),
            AdherenceRecord.is_partial.is_(False),
            AdherenceRecord.is_missed.is_(False),
        )
        .all()
    )
    for record in records:
        record.mark_missed("Dose window expired")
    db.flush()
    logger.info("Marked %d adherence records missed", len(records))
    return len(records)
