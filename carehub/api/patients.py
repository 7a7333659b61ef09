"""Patient profiles and the patient home screen."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from carehub.api.deps import audit, load_patient, require_hipaa_consent
from carehub.models.accounts import Patient, User
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.schemas.api import PatientUpdate
from carehub.services import dashboards, profiles
from carehub.services.hipaa import FULL_ACCESS, minimize_data

router = APIRouter(tags=["patients"])

# Fields any care-team member may see on top of the role allowlist.
DEMOGRAPHIC_FIELDS = (
    "user_id", "organization_id", "first_name", "last_name", "gender",
    "blood_type", "height_cm", "weight_kg", "date_of_birth",
    "primary_doctor_id", "emergency_contacts",
)


def shape_patient(patient: Patient, viewer: User) -> dict:
    data = profiles.serialize_patient(patient)
    allowed = (FULL_ACCESS,) if patient.user_id == viewer.id else DEMOGRAPHIC_FIELDS
    return minimize_data(data, allowed, viewer.role)


def _own_patient(db: Session, user: User) -> Patient:
    patient = profiles.patient_for_user(db, user)
    if patient is None:
        raise HTTPException(status_code=404, detail="No patient profile for this account")
    return patient


@router.get("/patients")
def list_patients(
    request: Request,
    limit: int = 100,
    offset: int = 0,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patients = profiles.list_patients(db, user, limit=min(limit, 500), offset=offset)
    audit(db, request, user, action="list", resource_type="Patient", detail={"count": len(patients)})
    db.commit()
    return [shape_patient(p, user) for p in patients]


@router.get("/patients/me")
def get_my_profile(user: User = Depends(require_hipaa_consent), db: Session = Depends(get_db)):
    return shape_patient(_own_patient(db, user), user)


@router.get("/patients/me/dashboard")
def get_my_dashboard(user: User = Depends(require_hipaa_consent), db: Session = Depends(get_db)):
    return dashboards.patient_dashboard(db, _own_patient(db, user))


@router.get("/patients/{patient_id}")
def get_patient(
    patient_id: UUID,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    """Patient detail, minimized to what the caller's role may see."""
    patient = load_patient(db, request, user, patient_id)
    audit(db, request, user, action="read", resource_type="Patient",
          resource_id=patient.id, patient_id=patient.id)
    db.commit()
    return shape_patient(patient, user)


@router.patch("/patients/{patient_id}")
def update_patient(
    patient_id: UUID,
    body: PatientUpdate,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    if user.role == UserRole.HSP.value:
        raise HTTPException(status_code=403, detail="HSPs cannot edit patient profiles")
    changes = body.model_dump(exclude_unset=True)
    profiles.update_patient(db, patient, **changes)
    audit(db, request, user, action="update", resource_type="Patient",
          resource_id=patient.id, patient_id=patient.id,
          detail={"fields": sorted(changes)})
    db.commit()
    return shape_patient(patient, user)
