"""
Medication scheduling and adherence tracking.

Creating a medication expands its course into one PENDING ScheduledEvent
per day, each paired with an AdherenceRecord. Recurrence strings are
stored for display only; the daily expansion is a plain date loop.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carehub.config import settings
from carehub.errors import BusinessRuleError, ConflictError, NotFoundError, PermissionDeniedError
from carehub.models.accounts import HSP, Doctor, Patient
from carehub.models.database import utcnow
from carehub.models.enums import EventStatus, EventType
from carehub.models.medication import AdherenceRecord, Medication, Medicine, ScheduledEvent

logger = logging.getLogger(__name__)

RRULES = {
    "daily": "FREQ=DAILY;INTERVAL=1",
    "weekly": "FREQ=WEEKLY;INTERVAL=1",
    "monthly": "FREQ=MONTHLY;INTERVAL=1",
}

DOSE_WINDOW = timedelta(minutes=30)
TIMELINE_LENGTH = 30
MAX_COURSE_DAYS = 365
ADHERENCE_STATUSES = ("completed", "partial", "missed")


def rr_rule_for(repeat_type: str | None) -> str:
    return RRULES.get((repeat_type or "").lower(), RRULES["daily"])


def _percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0


# ---------------------------------------------------------------------------
# Medicine catalog
# ---------------------------------------------------------------------------

def create_medicine(
    db: Session,
    *,
    name: str,
    type: str = "tablet",
    description: str | None = None,
    details: dict | None = None,
    creator_id: UUID | None = None,
    public_medicine: bool = True,
) -> Medicine:
    medicine = Medicine(
        name=name.strip(),
        type=type,
        description=description,
        details=details or {},
        creator_id=creator_id,
        public_medicine=public_medicine,
    )
    db.add(medicine)
    db.flush()
    return medicine


def list_medicines(db: Session, search: str | None = None, limit: int = 50) -> list[Medicine]:
    query = db.query(Medicine).filter(Medicine.public_medicine.is_(True))
    if search:
        query = query.filter(Medicine.name.ilike(f"%{search}%"))
    return query.order_by(Medicine.name).limit(limit).all()


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------

def create_medication(
    db: Session,
    *,
    patient: Patient,
    organizer: Doctor | HSP,
    medicine_id: UUID,
    start_date: date,
    end_date: date,
    quantity: float | int = 1,
    strength: str = "",
    unit: str = "",
    when_to_take: list[str] | None = None,
    repeat_type: str = "daily",
    instructions: str | None = None,
    care_plan_id: UUID | None = None,
) -> Medication:
    """Prescribe a medication and expand it into daily events."""
    if not organizer.can_prescribe():
        raise PermissionDeniedError("Provider is not permitted to prescribe medications")
    if end_date < start_date:
        raise BusinessRuleError("end_date must not be before start_date")
    if (end_date - start_date).days >= MAX_COURSE_DAYS:
        raise BusinessRuleError(f"A medication course cannot exceed {MAX_COURSE_DAYS} days")
    medicine = db.query(Medicine).filter(Medicine.id == medicine_id).first()
    if not medicine:
        raise NotFoundError("Medicine not found")

    medication = Medication(
        patient_id=patient.id,
        medicine_id=medicine.id,
        care_plan_id=care_plan_id,
        organizer_id=organizer.user_id,
        organizer_type="doctor" if isinstance(organizer, Doctor) else "hsp",
        description=f"{quantity} {unit} {strength}".strip(),
        start_date=start_date,
        end_date=end_date,
        rr_rule=rr_rule_for(repeat_type),
        details={
            "medicine_name": medicine.name,
            "quantity": quantity,
            "strength": strength,
            "unit": unit,
            "when_to_take": when_to_take or [],
            "repeat_type": repeat_type,
            "instructions": instructions,
        },
    )
    db.add(medication)
    db.flush()

    count = _schedule_daily_events(db, medication)
    logger.info("Medication %s scheduled: %d events for patient %s", medication.id, count, patient.id)
    return medication


def _schedule_daily_events(db: Session, medication: Medication) -> int:
    dose_time = time(hour=settings.DEFAULT_MEDICATION_HOUR)
    day = medication.start_date
    events = []
    while day <= medication.end_date:
        due = datetime.combine(day, dose_time)
        event = ScheduledEvent(
            patient_id=medication.patient_id,
            event_type=EventType.MEDICATION.value,
            source_id=medication.id,
            status=EventStatus.PENDING.value,
            date=day,
            start_time=due,
            end_time=due + DOSE_WINDOW,
            details={"medication_id": str(medication.id), "description": medication.description},
        )
        events.append(event)
        day += timedelta(days=1)
    db.add_all(events)
    db.flush()
    db.add_all(
        AdherenceRecord(
            patient_id=event.patient_id,
            scheduled_event_id=event.id,
            adherence_type="medication",
            due_at=event.start_time,
        )
        for event in events
    )
    db.flush()
    return len(events)


def get_medication(db: Session, medication_id: UUID) -> Medication:
    medication = (
        db.query(Medication)
        .filter(Medication.id == medication_id, Medication.deleted_at.is_(None))
        .first()
    )
    if not medication:
        raise NotFoundError("Medication not found")
    return medication


def get_patient_medications(db: Session, patient_id: UUID, today: date | None = None) -> list[dict[str, Any]]:
    today = today or date.today()
    medications = (
        db.query(Medication)
        .filter(Medication.patient_id == patient_id, Medication.deleted_at.is_(None))
        .order_by(Medication.created_at.desc())
        .all()
    )
    results = []
    for medication in medications:
        latest_pending = (
            db.query(ScheduledEvent.id)
            .filter(
                ScheduledEvent.source_id == medication.id,
                ScheduledEvent.event_type == EventType.MEDICATION.value,
                ScheduledEvent.status == EventStatus.PENDING.value,
            )
            .order_by(ScheduledEvent.start_time.asc())
            .first()
        )
        results.append({
            **serialize_medication(medication),
            "remaining": max(0, math.ceil((medication.end_date - today).days)),
            "total": (medication.end_date - medication.start_date).days,
            "latest_pending_event_id": latest_pending[0] if latest_pending else None,
        })
    return results


def get_medication_timeline(db: Session, medication_id: UUID) -> dict[str, Any]:
    medication = get_medication(db, medication_id)
    events = (
        db.query(ScheduledEvent)
        .filter(
            ScheduledEvent.source_id == medication.id,
            ScheduledEvent.event_type == EventType.MEDICATION.value,
        )
        .order_by(ScheduledEvent.start_time.desc())
        .limit(TIMELINE_LENGTH)
        .all()
    )
    completed = sum(1 for e in events if e.status == EventStatus.COMPLETED.value)
    missed = sum(
        1 for e in events if e.status in (EventStatus.EXPIRED.value, EventStatus.MISSED.value)
    )
    return {
        "medication": serialize_medication(medication),
        "timeline": [serialize_event(e) for e in events],
        "statistics": {
            "total_scheduled": len(events),
            "completed": completed,
            "missed": missed,
            "adherence_percentage": _percentage(completed, len(events)),
        },
    }


def soft_delete_medication(db: Session, medication: Medication, now: datetime | None = None) -> int:
    """Mark the medication deleted and cancel its pending future doses."""
    now = now or utcnow()
    medication.deleted_at = now
    cancelled = (
        db.query(ScheduledEvent)
        .filter(
            ScheduledEvent.source_id == medication.id,
            ScheduledEvent.event_type == EventType.MEDICATION.value,
            ScheduledEvent.status == EventStatus.PENDING.value,
            ScheduledEvent.start_time > now,
        )
        .update({ScheduledEvent.status: EventStatus.CANCELLED.value}, synchronize_session=False)
    )
    db.flush()
    logger.info("Medication %s deleted; %d pending events cancelled", medication.id, cancelled)
    return cancelled


# ---------------------------------------------------------------------------
# Adherence
# ---------------------------------------------------------------------------

def log_adherence(
    db: Session,
    event_id: UUID,
    status: str = "completed",
    notes: str | None = None,
    response_data: dict | None = None,
) -> AdherenceRecord | None:
    if status not in ADHERENCE_STATUSES:
        raise BusinessRuleError(f"Invalid adherence status: {status}", allowed=list(ADHERENCE_STATUSES))
    event = db.query(ScheduledEvent).filter(ScheduledEvent.id == event_id).first()
    if not event:
        raise NotFoundError("Scheduled event not found")
    if event.status != EventStatus.PENDING.value:
        raise ConflictError(f"Event is {event.status}, only PENDING events can be logged")

    now = utcnow()
    event.status = EventStatus.MISSED.value if status == "missed" else EventStatus.COMPLETED.value
    event.details = {**(event.details or {}), "completion_time": now.isoformat(), "notes": notes}

    record = (
        db.query(AdherenceRecord)
        .filter(AdherenceRecord.scheduled_event_id == event.id)
        .first()
    )
    if record is not None:
        if status == "completed":
            record.mark_completed(response_data, notes, at=now)
        elif status == "partial":
            record.mark_partial(response_data, notes, at=now)
        else:
            record.mark_missed(notes)
    db.flush()
    return record


def get_adherence_summary(
    db: Session, patient_id: UUID, days: int = 30, now: datetime | None = None
) -> dict[str, Any]:
    now = now or utcnow()
    records = (
        db.query(AdherenceRecord)
        .filter(
            AdherenceRecord.patient_id == patient_id,
            AdherenceRecord.due_at >= now - timedelta(days=days),
            AdherenceRecord.due_at <= now,
        )
        .all()
    )
    total = len(records)
    completed = sum(1 for r in records if r.is_completed)
    return {
        "period_days": days,
        "total": total,
        "completed": completed,
        "partial": sum(1 for r in records if r.is_partial),
        "missed": sum(1 for r in records if r.is_missed),
        "on_time": sum(1 for r in records if r.is_on_time()),
        "adherence_rate": _percentage(completed, total),
    }


def serialize_medication(medication: Medication) -> dict[str, Any]:
    return {
        "id": medication.id,
        "patient_id": medication.patient_id,
        "medicine_id": medication.medicine_id,
        "care_plan_id": medication.care_plan_id,
        "organizer_id": medication.organizer_id,
        "organizer_type": medication.organizer_type,
        "description": medication.description,
        "start_date": medication.start_date,
        "end_date": medication.end_date,
        "rr_rule": medication.rr_rule,
        "details": medication.details or {},
    }


def serialize_event(event: ScheduledEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "source_id": event.source_id,
        "status": event.status,
        "date": event.date,
        "start_time": event.start_time,
        "end_time": event.end_time,
        "details": event.details or {},
    }
