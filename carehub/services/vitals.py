"""Vital sign readings and threshold alerts."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from carehub.errors import ConflictError, NotFoundError
from carehub.models.accounts import Patient
from carehub.models.database import as_naive_utc, utcnow
from carehub.models.enums import AlertLevel
from carehub.models.vitals import VitalReading, VitalType

logger = logging.getLogger(__name__)

CRITICAL_ALERT_WINDOW = timedelta(days=7)


def _outside(value: float, low: float | None, high: float | None) -> bool:
    return (low is not None and value < low) or (high is not None and value > high)


def classify_reading(vital_type: VitalType, value: float) -> str:
    if _outside(value, vital_type.critical_min, vital_type.critical_max):
        return AlertLevel.CRITICAL.value
    if _outside(value, vital_type.normal_min, vital_type.normal_max):
        return AlertLevel.WARNING.value
    return AlertLevel.NORMAL.value


def create_vital_type(
    db: Session,
    *,
    name: str,
    unit: str,
    normal_min: float | None = None,
    normal_max: float | None = None,
    critical_min: float | None = None,
    critical_max: float | None = None,
    description: str | None = None,
) -> VitalType:
    if db.query(VitalType).filter(VitalType.name == name).first():
        raise ConflictError(f"Vital type {name} already exists")
    vital_type = VitalType(
        name=name,
        unit=unit,
        normal_min=normal_min,
        normal_max=normal_max,
        critical_min=critical_min,
        critical_max=critical_max,
        description=description,
    )
    db.add(vital_type)
    db.flush()
    return vital_type


def list_vital_types(db: Session) -> list[VitalType]:
    return db.query(VitalType).order_by(VitalType.name).all()


def record_vital_reading(
    db: Session,
    patient_id: UUID,
    vital_type_id: UUID,
    value: float,
    reading_time: datetime | None = None,
    notes: str | None = None,
    recorded_by_user_id: UUID | None = None,
) -> VitalReading:
    if db.query(Patient).filter(Patient.id == patient_id).first() is None:
        raise NotFoundError("Patient not found")
    vital_type = db.query(VitalType).filter(VitalType.id == vital_type_id).first()
    if not vital_type:
        raise NotFoundError("Vital type not found")

    reading = VitalReading(
        patient_id=patient_id,
        vital_type_id=vital_type.id,
        value=value,
        unit=vital_type.unit,
        reading_time=as_naive_utc(reading_time) or utcnow(),
        alert_level=classify_reading(vital_type, value),
        notes=notes,
        recorded_by_user_id=recorded_by_user_id,
    )
    db.add(reading)
    db.flush()
    if reading.alert_level == AlertLevel.CRITICAL.value:
        logger.warning(
            "Critical %s reading %s %s for patient %s",
            vital_type.name, value, vital_type.unit, patient_id,
        )
    return reading


def list_patient_readings(
    db: Session, patient_id: UUID, vital_type_id: UUID | None = None, limit: int = 50
) -> list[VitalReading]:
    query = db.query(VitalReading).filter(VitalReading.patient_id == patient_id)
    if vital_type_id is not None:
        query = query.filter(VitalReading.vital_type_id == vital_type_id)
    return query.order_by(VitalReading.reading_time.desc()).limit(limit).all()


def get_critical_alerts(
    db: Session, patient_ids: list[UUID], now: datetime | None = None
) -> list[VitalReading]:
    if not patient_ids:
        return []
    now = now or utcnow()
    return (
        db.query(VitalReading)
        .filter(
            VitalReading.patient_id.in_(patient_ids),
            VitalReading.alert_level == AlertLevel.CRITICAL.value,
            VitalReading.reading_time >= now - CRITICAL_ALERT_WINDOW,
        )
        .order_by(VitalReading.reading_time.desc())
        .all()
    )
