"""Doctor and HSP profiles, verification and the doctor dashboard."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user, require_admin, require_roles
from carehub.models.accounts import HSP, Doctor, User
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.schemas.api import DoctorUpdate, HSPUpdate
from carehub.services import dashboards, profiles

router = APIRouter(tags=["providers"])


def current_doctor(user: User = Depends(require_roles(UserRole.DOCTOR)), db: Session = Depends(get_db)) -> Doctor:
    doctor = profiles.doctor_for_user(db, user)
    if doctor is None:
        raise HTTPException(status_code=404, detail="No doctor profile for this account")
    return doctor


def current_hsp(user: User = Depends(require_roles(UserRole.HSP)), db: Session = Depends(get_db)) -> HSP:
    hsp = profiles.hsp_for_user(db, user)
    if hsp is None:
        raise HTTPException(status_code=404, detail="No HSP profile for this account")
    return hsp


# ---------------------------------------------------------------------------
# Doctors
# ---------------------------------------------------------------------------

@router.get("/providers/doctors")
def list_doctors(
    verified_only: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    organization_id = None if user.role == UserRole.SYSTEM_ADMIN.value else user.organization_id
    doctors = profiles.list_doctors(db, organization_id=organization_id, verified_only=verified_only)
    return [profiles.serialize_doctor(d) for d in doctors]


@router.get("/providers/doctors/me")
def get_my_doctor_profile(doctor: Doctor = Depends(current_doctor)):
    return profiles.serialize_doctor(doctor)


@router.patch("/providers/doctors/me")
def update_my_doctor_profile(
    body: DoctorUpdate,
    doctor: Doctor = Depends(current_doctor),
    db: Session = Depends(get_db),
):
    profiles.update_doctor(db, doctor, **body.model_dump(exclude_unset=True))
    db.commit()
    return profiles.serialize_doctor(doctor)


@router.get("/providers/doctors/{doctor_id}")
def get_doctor(doctor_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return profiles.serialize_doctor(profiles.get_doctor(db, doctor_id))


@router.post("/providers/doctors/{doctor_id}/verify")
def verify_doctor(
    doctor_id: UUID,
    request: Request,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    doctor = profiles.verify_doctor(db, doctor_id)
    audit(db, request, user, action="verify", resource_type="Doctor", resource_id=doctor.id)
    db.commit()
    return profiles.serialize_doctor(doctor)


@router.get("/doctors/me/dashboard")
def doctor_dashboard(doctor: Doctor = Depends(current_doctor), db: Session = Depends(get_db)):
    return dashboards.doctor_dashboard(db, doctor)


# ---------------------------------------------------------------------------
# HSPs
# ---------------------------------------------------------------------------

@router.get("/providers/hsps/me")
def get_my_hsp_profile(hsp: HSP = Depends(current_hsp)):
    return profiles.serialize_hsp(hsp)


@router.patch("/providers/hsps/me")
def update_my_hsp_profile(
    body: HSPUpdate,
    hsp: HSP = Depends(current_hsp),
    db: Session = Depends(get_db),
):
    profiles.update_hsp(db, hsp, **body.model_dump(exclude_unset=True))
    db.commit()
    return profiles.serialize_hsp(hsp)


@router.get("/providers/hsps/{hsp_id}")
def get_hsp(hsp_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return profiles.serialize_hsp(profiles.get_hsp(db, hsp_id))


@router.post("/providers/hsps/{hsp_id}/verify")
def verify_hsp(
    hsp_id: UUID,
    request: Request,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    hsp = profiles.verify_hsp(db, hsp_id)
    audit(db, request, user, action="verify", resource_type="HSP", resource_id=hsp.id)
    db.commit()
    return profiles.serialize_hsp(hsp)
