"""Tests for scheduled event queries and the expiry sweep."""

import uuid
from datetime import date, datetime, time, timedelta

import pytest

from carehub.errors import ConflictError, NotFoundError
from carehub.models.medication import AdherenceRecord, ScheduledEvent
from carehub.services import medications, scheduling
from factories import make_doctor, make_medicine, make_patient


@pytest.fixture
def patient(db):
    return make_patient(db)


def _prescribe(db, patient, start, end):
    return medications.create_medication(
        db, patient=patient, organizer=make_doctor(db), medicine_id=make_medicine(db).id,
        start_date=start, end_date=end,
    )


def _events(db, patient):
    return (
        db.query(ScheduledEvent)
        .filter(ScheduledEvent.patient_id == patient.id)
        .order_by(ScheduledEvent.start_time)
        .all()
    )


def test_expire_then_mark_missed(db, patient):
    today = date.today()
    _prescribe(db, patient, today - timedelta(days=3), today + timedelta(days=1))
    now = datetime.combine(today, time(12))

    assert scheduling.expire_stale_events(db, now=now) == 3
    db.expire_all()
    assert [e.status for e in _events(db, patient)] == ["EXPIRED"] * 3 + ["PENDING"] * 2

    assert scheduling.mark_missed_adherence(db) == 3
    assert scheduling.mark_missed_adherence(db) == 0
    missed = db.query(AdherenceRecord).filter(AdherenceRecord.is_missed.is_(True)).all()
    assert {r.notes for r in missed} == {"Dose window expired"}


def test_missed_events_grouped_by_type(db, patient):
    today = date.today()
    _prescribe(db, patient, today - timedelta(days=5), today - timedelta(days=3))
    scheduling.expire_stale_events(db)
    db.expire_all()

    missed = scheduling.get_missed_events(db, patient.id)
    assert len(missed["medications"]) == 3
    assert missed["appointments"] == []
    assert missed["statistics"]["total_missed"] == 3
    assert scheduling.get_missed_events(db, patient.id, event_type="APPOINTMENT")["statistics"]["total_missed"] == 0


def test_upcoming_events_window(db, patient):
    today = date.today()
    _prescribe(db, patient, today + timedelta(days=1), today + timedelta(days=20))
    upcoming = scheduling.get_upcoming_events(db, patient.id, days=7, now=datetime.combine(today, time(0)))
    assert len(upcoming) == 6
    assert upcoming == sorted(upcoming, key=lambda e: e.start_time)


def test_complete_event(db, patient):
    today = date.today()
    _prescribe(db, patient, today, today)
    event = _events(db, patient)[0]

    scheduling.complete_event(db, event.id, notes="taken with food", response_data={"dose": 1})
    assert event.status == "COMPLETED"
    assert event.details["notes"] == "taken with food"
    record = db.query(AdherenceRecord).filter(AdherenceRecord.scheduled_event_id == event.id).one()
    assert record.is_completed
    assert record.response_data == {"dose": 1}

    with pytest.raises(ConflictError):
        scheduling.complete_event(db, event.id)


def test_unknown_event(db):
    with pytest.raises(NotFoundError):
        scheduling.get_event(db, uuid.uuid4())
