"""
Doctor calendars: weekly availability templates, generated slots and
appointments.

Slots are materialized lazily from the template the first time a date is
queried. Booking is a guarded UPDATE on the slot's counter; appointment
conflicts are a single overlapping-range query.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carehub.errors import BusinessRuleError, ConflictError, NotFoundError
from carehub.models.accounts import Doctor, Patient
from carehub.models.database import as_naive_utc, utcnow
from carehub.models.enums import AppointmentStatus, EventStatus, EventType
from carehub.models.medication import ScheduledEvent
from carehub.models.scheduling import Appointment, AppointmentSlot, DoctorAvailability

logger = logging.getLogger(__name__)

APPOINTMENT_STATUSES = {s.value for s in AppointmentStatus}


def day_of_week(day: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


# ---------------------------------------------------------------------------
# Availability and slots
# ---------------------------------------------------------------------------

def set_doctor_availability(
    db: Session,
    doctor_id: UUID,
    day: int,
    start_time: time,
    end_time: time,
    slot_duration: int = 30,
    max_appointments_per_slot: int = 1,
    break_start_time: time | None = None,
    break_end_time: time | None = None,
    is_available: bool = True,
) -> DoctorAvailability:
    if not 0 <= day <= 6:
        raise BusinessRuleError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if start_time >= end_time:
        raise BusinessRuleError("start_time must be before end_time")
    if slot_duration <= 0:
        raise BusinessRuleError("slot_duration must be positive")
    if db.query(Doctor).filter(Doctor.id == doctor_id).first() is None:
        raise NotFoundError("Doctor not found")

    availability = (
        db.query(DoctorAvailability)
        .filter(DoctorAvailability.doctor_id == doctor_id, DoctorAvailability.day_of_week == day)
        .first()
    )
    if availability is None:
        availability = DoctorAvailability(doctor_id=doctor_id, day_of_week=day)
        db.add(availability)
    availability.start_time = start_time
    availability.end_time = end_time
    availability.slot_duration = slot_duration
    availability.max_appointments_per_slot = max_appointments_per_slot
    availability.break_start_time = break_start_time
    availability.break_end_time = break_end_time
    availability.is_available = is_available
    db.flush()
    return availability


def _in_break(start: time, availability: DoctorAvailability) -> bool:
    if availability.break_start_time is None or availability.break_end_time is None:
        return False
    return availability.break_start_time <= start < availability.break_end_time


def generate_doctor_slots(db: Session, doctor_id: UUID, day: date) -> list[AppointmentSlot]:
    """Materialize the slots the weekly template defines for ``day``."""
    availability = (
        db.query(DoctorAvailability)
        .filter(
            DoctorAvailability.doctor_id == doctor_id,
            DoctorAvailability.day_of_week == day_of_week(day),
            DoctorAvailability.is_available.is_(True),
        )
        .first()
    )
    if availability is None:
        return []

    existing = {
        row.start_time
        for row in db.query(AppointmentSlot.start_time).filter(
            AppointmentSlot.doctor_id == doctor_id, AppointmentSlot.date == day
        )
    }

    step = timedelta(minutes=availability.slot_duration)
    cursor = datetime.combine(day, availability.start_time)
    day_end = datetime.combine(day, availability.end_time)
    created = []
    while cursor + step <= day_end:
        start = cursor.time()
        if not _in_break(start, availability) and start not in existing:
            slot = AppointmentSlot(
                doctor_id=doctor_id,
                date=day,
                start_time=start,
                end_time=(cursor + step).time(),
                max_appointments=availability.max_appointments_per_slot,
                booked_appointments=0,
                is_available=True,
                slot_type="regular",
            )
            db.add(slot)
            created.append(slot)
        cursor += step
    db.flush()
    if created:
        logger.info("Generated %d slots for doctor %s on %s", len(created), doctor_id, day)
    return created


def get_available_slots(db: Session, doctor_id: UUID, day: date) -> list[dict[str, Any]]:
    generate_doctor_slots(db, doctor_id, day)
    slots = (
        db.query(AppointmentSlot)
        .filter(
            AppointmentSlot.doctor_id == doctor_id,
            AppointmentSlot.date == day,
            AppointmentSlot.is_available.is_(True),
            AppointmentSlot.booked_appointments < AppointmentSlot.max_appointments,
        )
        .order_by(AppointmentSlot.start_time)
        .all()
    )
    return [
        {
            "slot_id": slot.id,
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "available_spots": slot.available_spots,
            "slot_type": slot.slot_type,
        }
        for slot in slots
    ]


def book_slot(db: Session, slot_id: UUID) -> AppointmentSlot:
    updated = (
        db.query(AppointmentSlot)
        .filter(
            AppointmentSlot.id == slot_id,
            AppointmentSlot.is_available.is_(True),
            AppointmentSlot.booked_appointments < AppointmentSlot.max_appointments,
        )
        .update(
            {AppointmentSlot.booked_appointments: AppointmentSlot.booked_appointments + 1},
            synchronize_session=False,
        )
    )
    if not updated:
        raise ConflictError("Slot is not available")
    slot = db.query(AppointmentSlot).filter(AppointmentSlot.id == slot_id).one()
    db.refresh(slot)
    slot.is_available = slot.booked_appointments < slot.max_appointments
    db.flush()
    return slot


def release_slot(db: Session, slot_id: UUID) -> AppointmentSlot:
    slot = db.query(AppointmentSlot).filter(AppointmentSlot.id == slot_id).first()
    if not slot:
        raise NotFoundError("Slot not found")
    slot.booked_appointments = max(0, slot.booked_appointments - 1)
    slot.is_available = True
    db.flush()
    return slot


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------

def check_conflicts(
    db: Session, doctor_id: UUID, start: datetime, end: datetime, exclude_id: UUID | None = None
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        Appointment.start_time < end,
        Appointment.end_time > start,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.all()


def get_appointment(db: Session, appointment_id: UUID) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise NotFoundError("Appointment not found")
    return appointment


def _linked_events(db: Session, appointment: Appointment):
    return db.query(ScheduledEvent).filter(
        ScheduledEvent.event_type == EventType.APPOINTMENT.value,
        ScheduledEvent.source_id == appointment.id,
    )


def create_appointment(
    db: Session,
    *,
    patient_id: UUID,
    doctor_id: UUID,
    start_time: datetime,
    end_time: datetime,
    organizer_id: UUID | None = None,
    slot_id: UUID | None = None,
    appointment_type: str = "consultation",
    description: str | None = None,
    care_plan_id: UUID | None = None,
    details: dict | None = None,
) -> Appointment:
    if db.query(Patient).filter(Patient.id == patient_id).first() is None:
        raise NotFoundError("Patient not found")
    if db.query(Doctor).filter(Doctor.id == doctor_id).first() is None:
        raise NotFoundError("Doctor not found")
    start, end = as_naive_utc(start_time), as_naive_utc(end_time)
    if start >= end:
        raise BusinessRuleError("start_time must be before end_time")

    conflicts = check_conflicts(db, doctor_id, start, end)
    if conflicts:
        raise ConflictError(
            "Doctor has a conflicting appointment",
            conflicting_ids=[str(a.id) for a in conflicts],
        )
    if slot_id is not None:
        book_slot(db, slot_id)

    appointment = Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        organizer_id=organizer_id,
        slot_id=slot_id,
        care_plan_id=care_plan_id,
        appointment_type=appointment_type,
        description=description,
        start_time=start,
        end_time=end,
        start_date=start.date(),
        end_date=end.date(),
        status=AppointmentStatus.SCHEDULED.value,
        details=details or {},
    )
    db.add(appointment)
    db.flush()

    db.add(
        ScheduledEvent(
            patient_id=patient_id,
            event_type=EventType.APPOINTMENT.value,
            source_id=appointment.id,
            status=EventStatus.PENDING.value,
            date=start.date(),
            start_time=start,
            end_time=end,
            details={"appointment_type": appointment_type, "doctor_id": str(doctor_id)},
        )
    )
    db.flush()
    logger.info("Appointment %s scheduled with doctor %s", appointment.id, doctor_id)
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: UUID,
    new_start: datetime,
    new_end: datetime,
    new_slot_id: UUID | None = None,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise BusinessRuleError("Cancelled appointments cannot be rescheduled")
    start, end = as_naive_utc(new_start), as_naive_utc(new_end)
    if start >= end:
        raise BusinessRuleError("start_time must be before end_time")
    if check_conflicts(db, appointment.doctor_id, start, end, exclude_id=appointment.id):
        raise ConflictError("Doctor has a conflicting appointment")

    if new_slot_id != appointment.slot_id:
        # a full new slot raises before the old booking is touched
        if new_slot_id is not None:
            book_slot(db, new_slot_id)
        if appointment.slot_id is not None:
            release_slot(db, appointment.slot_id)
        appointment.slot_id = new_slot_id

    previous_start = appointment.start_time
    appointment.start_time, appointment.end_time = start, end
    appointment.start_date, appointment.end_date = start.date(), end.date()
    appointment.status = AppointmentStatus.RESCHEDULED.value
    appointment.details = {
        **(appointment.details or {}),
        "rescheduled": True,
        "rescheduled_at": utcnow().isoformat(),
        "previous_start_time": previous_start.isoformat(),
    }
    for event in _linked_events(db, appointment):
        event.start_time, event.end_time, event.date = start, end, start.date()
    db.flush()
    logger.info("Appointment %s rescheduled from %s to %s", appointment.id, previous_start, start)
    return appointment


def cancel_appointment(db: Session, appointment_id: UUID, reason: str | None = None) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise BusinessRuleError("Appointment is already cancelled")
    if appointment.slot_id is not None:
        release_slot(db, appointment.slot_id)
    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.details = {
        **(appointment.details or {}),
        "cancellation_reason": reason,
        "cancelled_at": utcnow().isoformat(),
    }
    _linked_events(db, appointment).update(
        {ScheduledEvent.status: EventStatus.CANCELLED.value}, synchronize_session=False
    )
    db.flush()
    return appointment


def update_status(db: Session, appointment_id: UUID, status: str) -> Appointment:
    if status not in APPOINTMENT_STATUSES:
        raise BusinessRuleError(f"Invalid appointment status: {status}", allowed=sorted(APPOINTMENT_STATUSES))
    if status == AppointmentStatus.CANCELLED.value:
        return cancel_appointment(db, appointment_id)
    appointment = get_appointment(db, appointment_id)
    appointment.status = status
    db.flush()
    return appointment


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------

def get_doctor_calendar(db: Session, doctor_id: UUID, start: date, end: date) -> dict[str, Any]:
    range_start = datetime.combine(start, time.min)
    range_end = datetime.combine(end, time.max)
    appointments = (
        db.query(Appointment)
        .filter(
            Appointment.doctor_id == doctor_id,
            Appointment.start_time >= range_start,
            Appointment.start_time <= range_end,
        )
        .order_by(Appointment.start_time)
        .all()
    )
    availability = (
        db.query(DoctorAvailability)
        .filter(DoctorAvailability.doctor_id == doctor_id)
        .order_by(DoctorAvailability.day_of_week)
        .all()
    )
    slots = (
        db.query(AppointmentSlot)
        .filter(
            AppointmentSlot.doctor_id == doctor_id,
            AppointmentSlot.date >= start,
            AppointmentSlot.date <= end,
        )
        .order_by(AppointmentSlot.date, AppointmentSlot.start_time)
        .all()
    )
    return {
        "appointments": [serialize_appointment(a) for a in appointments],
        "availability": [
            {
                "day_of_week": a.day_of_week,
                "start_time": a.start_time,
                "end_time": a.end_time,
                "slot_duration": a.slot_duration,
                "max_appointments_per_slot": a.max_appointments_per_slot,
                "break_time": (
                    {"start": a.break_start_time, "end": a.break_end_time}
                    if a.break_start_time and a.break_end_time
                    else None
                ),
                "is_available": a.is_available,
            }
            for a in availability
        ],
        "slots": [
            {
                "slot_id": s.id,
                "date": s.date,
                "start_time": s.start_time,
                "end_time": s.end_time,
                "booked_appointments": s.booked_appointments,
                "max_appointments": s.max_appointments,
                "is_available": s.is_available,
            }
            for s in slots
        ],
    }


def get_patient_calendar(db: Session, patient_id: UUID, start: date, end: date) -> dict[str, Any]:
    range_start = datetime.combine(start, time.min)
    range_end = datetime.combine(end, time.max)
    appointments = (
        db.query(Appointment)
        .filter(
            Appointment.patient_id == patient_id,
            Appointment.start_time >= range_start,
            Appointment.start_time <= range_end,
        )
        .order_by(Appointment.start_time)
        .all()
    )
    events = (
        db.query(ScheduledEvent)
        .filter(
            ScheduledEvent.patient_id == patient_id,
            ScheduledEvent.start_time >= range_start,
            ScheduledEvent.start_time <= range_end,
        )
        .order_by(ScheduledEvent.start_time)
        .all()
    )
    return {
        "appointments": [serialize_appointment(a) for a in appointments],
        "events": [
            {
                "id": e.id,
                "event_type": e.event_type,
                "status": e.status,
                "start_time": e.start_time,
                "end_time": e.end_time,
                "details": e.details or {},
            }
            for e in events
        ],
    }


def serialize_appointment(appointment: Appointment) -> dict[str, Any]:
    return {
        "id": appointment.id,
        "doctor_id": appointment.doctor_id,
        "patient_id": appointment.patient_id,
        "slot_id": appointment.slot_id,
        "appointment_type": appointment.appointment_type,
        "description": appointment.description,
        "start_time": appointment.start_time,
        "end_time": appointment.end_time,
        "status": appointment.status,
        "details": appointment.details or {},
    }
