"""Medicines, prescriptions, adherence logging and the event feed."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user, load_patient, require_hipaa_consent, require_provider
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.schemas.api import AdherenceLog, EventCompletion, MedicationCreate, MedicineCreate, MedicineResponse
from carehub.services import medications, profiles, scheduling
from carehub.services.medications import serialize_event

router = APIRouter(tags=["medications"])


@router.post("/medicines", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
def create_medicine(
    body: MedicineCreate,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    medicine = medications.create_medicine(db, creator_id=user.id, **body.model_dump())
    db.commit()
    return medicine


@router.get("/medicines", response_model=list[MedicineResponse])
def search_medicines(
    search: str | None = None,
    limit: int = 50,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return medications.list_medicines(db, search=search, limit=min(limit, 200))


@router.post("/medications", status_code=status.HTTP_201_CREATED)
def create_medication(
    body: MedicationCreate,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    """Prescribe a medication; one dose event is scheduled per day of the course."""
    patient = load_patient(db, request, user, body.patient_id)
    organizer = profiles.provider_for_user(db, user)
    if organizer is None:
        raise HTTPException(status_code=404, detail="No provider profile for this account")
    medication = medications.create_medication(
        db, patient=patient, organizer=organizer, **body.model_dump(exclude={"patient_id"})
    )
    audit(db, request, user, action="create", resource_type="Medication",
          resource_id=medication.id, patient_id=patient.id)
    db.commit()
    return medications.serialize_medication(medication)


@router.get("/patients/{patient_id}/medications")
def list_patient_medications(
    patient_id: UUID,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    result = medications.get_patient_medications(db, patient.id)
    audit(db, request, user, action="list", resource_type="Medication", patient_id=patient.id)
    db.commit()
    return result


@router.get("/medications/{medication_id}/timeline")
def medication_timeline(
    medication_id: UUID,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    medication = medications.get_medication(db, medication_id)
    load_patient(db, request, user, medication.patient_id)
    timeline = medications.get_medication_timeline(db, medication.id)
    audit(db, request, user, action="read", resource_type="Medication",
          resource_id=medication.id, patient_id=medication.patient_id)
    db.commit()
    return timeline


@router.delete("/medications/{medication_id}")
def delete_medication(
    medication_id: UUID,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    medication = medications.get_medication(db, medication_id)
    load_patient(db, request, user, medication.patient_id)
    cancelled = medications.soft_delete_medication(db, medication)
    audit(db, request, user, action="delete", resource_type="Medication",
          resource_id=medication.id, patient_id=medication.patient_id,
          detail={"cancelled_events": cancelled})
    db.commit()
    return {"id": medication.id, "cancelled_events": cancelled}


# ---------------------------------------------------------------------------
# Events and adherence
# ---------------------------------------------------------------------------

@router.post("/events/{event_id}/adherence")
def log_adherence(
    event_id: UUID,
    body: AdherenceLog,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    event = scheduling.get_event(db, event_id)
    load_patient(db, request, user, event.patient_id)
    medications.log_adherence(db, event.id, body.status, body.notes, body.response_data)
    audit(db, request, user, action="update", resource_type="ScheduledEvent",
          resource_id=event.id, patient_id=event.patient_id, detail={"status": body.status})
    db.commit()
    return serialize_event(event)


@router.post("/events/{event_id}/complete")
def complete_event(
    event_id: UUID,
    body: EventCompletion,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    event = scheduling.get_event(db, event_id)
    load_patient(db, request, user, event.patient_id)
    scheduling.complete_event(db, event.id, body.notes, body.response_data)
    audit(db, request, user, action="update", resource_type="ScheduledEvent",
          resource_id=event.id, patient_id=event.patient_id)
    db.commit()
    return serialize_event(event)


@router.get("/patients/{patient_id}/adherence")
def adherence_summary(
    patient_id: UUID,
    request: Request,
    days: int = 30,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    return medications.get_adherence_summary(db, patient.id, days=max(1, min(days, 365)))


@router.get("/patients/{patient_id}/events/missed")
def missed_events(
    patient_id: UUID,
    request: Request,
    event_type: str | None = None,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    return scheduling.get_missed_events(db, patient.id, event_type=event_type)


@router.get("/patients/{patient_id}/events/upcoming")
def upcoming_events(
    patient_id: UUID,
    request: Request,
    days: int = 7,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    events = scheduling.get_upcoming_events(db, patient.id, days=max(1, min(days, 90)))
    return [serialize_event(e) for e in events]
