"""Tests for vital readings and alerts."""

from datetime import timedelta

import pytest

from carehub.errors import ConflictError
from carehub.models.database import utcnow
from carehub.services import vitals
from factories import make_patient, make_vital_type


@pytest.mark.parametrize(
    "value, level",
    [(72, "normal"), (60, "normal"), (55, "warning"), (120, "warning"), (39, "critical"), (141, "critical")],
)
def test_classify_reading(db, value, level):
    assert vitals.classify_reading(make_vital_type(db), value) == level


def test_open_ended_thresholds(db):
    spo2 = vitals.create_vital_type(db, name="spo2", unit="%", normal_min=95, critical_min=90)
    assert vitals.classify_reading(spo2, 100) == "normal"
    assert vitals.classify_reading(spo2, 92) == "warning"
    assert vitals.classify_reading(spo2, 85) == "critical"


def test_duplicate_vital_type(db):
    vitals.create_vital_type(db, name="weight", unit="kg")
    with pytest.raises(ConflictError):
        vitals.create_vital_type(db, name="weight", unit="lb")


def test_reading_takes_unit_and_level(db):
    patient = make_patient(db)
    heart_rate = make_vital_type(db)
    reading = vitals.record_vital_reading(db, patient.id, heart_rate.id, 150, notes="after stairs")
    assert reading.unit == "bpm"
    assert reading.alert_level == "critical"


def test_critical_alerts_window(db):
    patient = make_patient(db)
    heart_rate = make_vital_type(db)
    recent = vitals.record_vital_reading(db, patient.id, heart_rate.id, 30)
    vitals.record_vital_reading(db, patient.id, heart_rate.id, 30, reading_time=utcnow() - timedelta(days=10))
    vitals.record_vital_reading(db, patient.id, heart_rate.id, 80)

    assert vitals.get_critical_alerts(db, [patient.id]) == [recent]
    assert vitals.get_critical_alerts(db, []) == []


def test_readings_newest_first(db):
    patient = make_patient(db)
    heart_rate = make_vital_type(db)
    older = vitals.record_vital_reading(db, patient.id, heart_rate.id, 70, reading_time=utcnow() - timedelta(hours=2))
    newer = vitals.record_vital_reading(db, patient.id, heart_rate.id, 75)
    assert vitals.list_patient_readings(db, patient.id) == [newer, older]
