"""Vital sign types and patient readings."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user, load_patient, require_admin, require_hipaa_consent
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.schemas.api import VitalReadingCreate, VitalReadingResponse, VitalTypeCreate, VitalTypeResponse
from carehub.services import vitals

router = APIRouter(prefix="/vitals", tags=["vitals"])


@router.post("/types", response_model=VitalTypeResponse, status_code=status.HTTP_201_CREATED)
def create_vital_type(
    body: VitalTypeCreate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    vital_type = vitals.create_vital_type(db, **body.model_dump())
    db.commit()
    return vital_type


@router.get("/types", response_model=list[VitalTypeResponse])
def list_vital_types(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return vitals.list_vital_types(db)


@router.post("/readings", response_model=VitalReadingResponse, status_code=status.HTTP_201_CREATED)
def record_reading(
    body: VitalReadingCreate,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    reading = vitals.record_vital_reading(
        db,
        patient.id,
        body.vital_type_id,
        body.value,
        reading_time=body.reading_time,
        notes=body.notes,
        recorded_by_user_id=user.id,
    )
    audit(db, request, user, action="create", resource_type="VitalReading",
          resource_id=reading.id, patient_id=patient.id, detail={"alert_level": reading.alert_level})
    db.commit()
    return reading


@router.get("/patients/{patient_id}", response_model=list[VitalReadingResponse])
def list_readings(
    patient_id: UUID,
    request: Request,
    vital_type_id: UUID | None = None,
    limit: int = 50,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    readings = vitals.list_patient_readings(db, patient.id, vital_type_id, limit=min(limit, 500))
    audit(db, request, user, action="list", resource_type="VitalReading", patient_id=patient.id)
    db.commit()
    return readings
