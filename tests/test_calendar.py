"""Tests for doctor availability, slots and appointments."""

from datetime import date, datetime, time

import pytest

from carehub.errors import BusinessRuleError, ConflictError
from carehub.models.medication import ScheduledEvent
from carehub.models.scheduling import AppointmentSlot
from carehub.services import calendar
from factories import make_doctor, make_patient

MONDAY = date(2026, 3, 2)


@pytest.fixture
def doctor(db):
    return make_doctor(db)


@pytest.fixture
def patient(db, doctor):
    return make_patient(db, primary_doctor=doctor)


def _monday_template(db, doctor, **kwargs):
    return calendar.set_doctor_availability(
        db, doctor.id, calendar.day_of_week(MONDAY), time(9), time(12), **kwargs
    )


def test_day_of_week_starts_on_sunday():
    assert calendar.day_of_week(date(2026, 3, 1)) == 0
    assert calendar.day_of_week(MONDAY) == 1


def test_availability_is_upserted(db, doctor):
    first = _monday_template(db, doctor)
    second = _monday_template(db, doctor, slot_duration=60)
    assert first.id == second.id
    assert second.slot_duration == 60


def test_availability_rejects_inverted_hours(db, doctor):
    with pytest.raises(BusinessRuleError):
        calendar.set_doctor_availability(db, doctor.id, 1, time(12), time(9))


def test_slots_skip_break_and_are_generated_once(db, doctor):
    _monday_template(db, doctor, break_start_time=time(10), break_end_time=time(10, 30))
    slots = calendar.get_available_slots(db, doctor.id, MONDAY)
    assert [s["start_time"] for s in slots] == [time(9), time(9, 30), time(10, 30), time(11), time(11, 30)]
    assert calendar.generate_doctor_slots(db, doctor.id, MONDAY) == []


def test_no_template_means_no_slots(db, doctor):
    assert calendar.get_available_slots(db, doctor.id, MONDAY) == []


def test_booking_fills_slot(db, doctor):
    _monday_template(db, doctor, max_appointments_per_slot=2)
    slot_id = calendar.get_available_slots(db, doctor.id, MONDAY)[0]["slot_id"]
    calendar.book_slot(db, slot_id)
    slot = calendar.book_slot(db, slot_id)
    assert slot.booked_appointments == 2
    assert slot.is_available is False
    with pytest.raises(ConflictError):
        calendar.book_slot(db, slot_id)

    calendar.release_slot(db, slot_id)
    assert len(calendar.get_available_slots(db, doctor.id, MONDAY)) == 6


def _book(db, doctor, patient, start_hour, end_hour, **kwargs):
    return calendar.create_appointment(
        db, patient_id=patient.id, doctor_id=doctor.id,
        start_time=datetime.combine(MONDAY, time(start_hour)),
        end_time=datetime.combine(MONDAY, time(end_hour)), **kwargs,
    )


def test_appointment_creates_pending_event(db, doctor, patient):
    appointment = _book(db, doctor, patient, 9, 10)
    event = db.query(ScheduledEvent).filter(ScheduledEvent.source_id == appointment.id).one()
    assert appointment.status == "SCHEDULED"
    assert event.event_type == "APPOINTMENT"
    assert event.status == "PENDING"


def test_overlapping_appointment_conflicts(db, doctor, patient):
    first = _book(db, doctor, patient, 9, 10)
    with pytest.raises(ConflictError) as exc_info:
        calendar.create_appointment(
            db, patient_id=patient.id, doctor_id=doctor.id,
            start_time=datetime.combine(MONDAY, time(9, 30)),
            end_time=datetime.combine(MONDAY, time(10, 30)),
        )
    assert exc_info.value.extra["conflicting_ids"] == [str(first.id)]
    # back-to-back is fine
    _book(db, doctor, patient, 10, 11)


def test_reschedule_moves_linked_event(db, doctor, patient):
    appointment = _book(db, doctor, patient, 9, 10)
    new_start = datetime.combine(MONDAY, time(14))
    calendar.reschedule_appointment(db, appointment.id, new_start, datetime.combine(MONDAY, time(15)))
    assert appointment.status == "RESCHEDULED"
    assert appointment.details["previous_start_time"] == datetime.combine(MONDAY, time(9)).isoformat()
    event = db.query(ScheduledEvent).filter(ScheduledEvent.source_id == appointment.id).one()
    assert event.start_time == new_start


def test_reschedule_ignores_own_slot_in_conflict_check(db, doctor, patient):
    appointment = _book(db, doctor, patient, 9, 10)
    calendar.reschedule_appointment(
        db, appointment.id, datetime.combine(MONDAY, time(9, 30)), datetime.combine(MONDAY, time(10, 30))
    )
    assert appointment.start_time.time() == time(9, 30)


def _booked(db, slot_id):
    db.expire_all()
    return db.get(AppointmentSlot, slot_id).booked_appointments


def test_reschedule_without_slot_releases_old_slot(db, doctor, patient):
    _monday_template(db, doctor)
    slot_id = calendar.get_available_slots(db, doctor.id, MONDAY)[0]["slot_id"]
    appointment = _book(db, doctor, patient, 9, 10, slot_id=slot_id)
    assert _booked(db, slot_id) == 1

    calendar.reschedule_appointment(
        db, appointment.id, datetime.combine(MONDAY, time(14)), datetime.combine(MONDAY, time(15))
    )
    assert _booked(db, slot_id) == 0
    assert appointment.slot_id is None


def test_reschedule_moves_booking_between_slots(db, doctor, patient):
    _monday_template(db, doctor)
    first, second = [s["slot_id"] for s in calendar.get_available_slots(db, doctor.id, MONDAY)[:2]]
    appointment = _book(db, doctor, patient, 9, 10, slot_id=first)

    calendar.reschedule_appointment(
        db, appointment.id, datetime.combine(MONDAY, time(9, 30)),
        datetime.combine(MONDAY, time(10)), new_slot_id=second,
    )
    assert _booked(db, first) == 0
    assert _booked(db, second) == 1
    assert appointment.slot_id == second

    # same slot again is a no-op for the counters
    calendar.reschedule_appointment(
        db, appointment.id, datetime.combine(MONDAY, time(9, 30)),
        datetime.combine(MONDAY, time(10)), new_slot_id=second,
    )
    assert _booked(db, second) == 1


def test_reschedule_into_full_slot_keeps_old_booking(db, doctor, patient):
    _monday_template(db, doctor, max_appointments_per_slot=1)
    first, second = [s["slot_id"] for s in calendar.get_available_slots(db, doctor.id, MONDAY)[:2]]
    calendar.book_slot(db, second)
    appointment = _book(db, doctor, patient, 9, 10, slot_id=first)

    with pytest.raises(ConflictError):
        calendar.reschedule_appointment(
            db, appointment.id, datetime.combine(MONDAY, time(9, 30)),
            datetime.combine(MONDAY, time(10)), new_slot_id=second,
        )
    assert _booked(db, first) == 1


def test_cancel_releases_slot_and_event(db, doctor, patient):
    _monday_template(db, doctor)
    slot_id = calendar.get_available_slots(db, doctor.id, MONDAY)[0]["slot_id"]
    appointment = _book(db, doctor, patient, 9, 10, slot_id=slot_id)

    calendar.cancel_appointment(db, appointment.id, reason="sick")
    db.expire_all()
    assert appointment.status == "CANCELLED"
    assert appointment.details["cancellation_reason"] == "sick"
    event = db.query(ScheduledEvent).filter(ScheduledEvent.source_id == appointment.id).one()
    assert event.status == "CANCELLED"
    assert calendar.get_available_slots(db, doctor.id, MONDAY)[0]["available_spots"] == 1

    with pytest.raises(BusinessRuleError):
        calendar.cancel_appointment(db, appointment.id)
    # the slot is free again for someone else
    _book(db, doctor, patient, 9, 10)


def test_doctor_and_patient_calendars(db, doctor, patient):
    _monday_template(db, doctor)
    _book(db, doctor, patient, 9, 10)
    doctor_view = calendar.get_doctor_calendar(db, doctor.id, MONDAY, MONDAY)
    assert len(doctor_view["appointments"]) == 1
    assert doctor_view["availability"][0]["break_time"] is None
    patient_view = calendar.get_patient_calendar(db, patient.id, MONDAY, MONDAY)
    assert [e["event_type"] for e in patient_view["events"]] == ["APPOINTMENT"]


def test_invalid_status_rejected(db, doctor, patient):
    appointment = _book(db, doctor, patient, 9, 10)
    calendar.update_status(db, appointment.id, "COMPLETED")
    assert appointment.status == "COMPLETED"
    with pytest.raises(BusinessRuleError):
        calendar.update_status(db, appointment.id, "LOST")


def test_status_cancelled_goes_through_cancellation(db, doctor, patient):
    _monday_template(db, doctor)
    slot_id = calendar.get_available_slots(db, doctor.id, MONDAY)[0]["slot_id"]
    appointment = _book(db, doctor, patient, 9, 10, slot_id=slot_id)

    calendar.update_status(db, appointment.id, "CANCELLED")
    assert appointment.status == "CANCELLED"
    assert _booked(db, slot_id) == 0
    event = db.query(ScheduledEvent).filter(ScheduledEvent.source_id == appointment.id).one()
    assert event.status == "CANCELLED"


def test_partial_trailing_slot_is_not_offered(db, doctor):
    calendar.set_doctor_availability(db, doctor.id, calendar.day_of_week(MONDAY), time(9), time(9, 45))
    slots = calendar.get_available_slots(db, doctor.id, MONDAY)
    assert [s["start_time"] for s in slots] == [time(9)]
