"""Secondary doctor assignments and patient consent codes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user, load_patient, require_hipaa_consent, require_roles
from carehub.api.limiter import limiter
from carehub.config import settings
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.schemas.api import AssignmentCreate, OtpResponse, OtpVerifyRequest
from carehub.services import assignments, profiles

router = APIRouter(tags=["assignments"])

require_assigner = require_roles(UserRole.DOCTOR, UserRole.SYSTEM_ADMIN, UserRole.HOSPITAL_ADMIN)


@router.post("/assignments", status_code=status.HTTP_201_CREATED)
def create_assignment(
    body: AssignmentCreate,
    request: Request,
    user: User = Depends(require_assigner),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    assigner = profiles.doctor_for_user(db, user)
    assignment = assignments.assign_secondary_doctor(
        db,
        assigned_by_doctor_id=assigner.id if assigner else None,
        **body.model_dump(),
    )
    audit(db, request, user, action="create", resource_type="SecondaryAssignment",
          resource_id=assignment.id, patient_id=patient.id,
          detail={"consent_status": assignment.consent_status})
    db.commit()
    return assignments.serialize_assignment(assignment)


@router.get("/patients/{patient_id}/assignments")
def list_assignments(
    patient_id: UUID,
    request: Request,
    active_only: bool = False,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    return [
        assignments.serialize_assignment(a)
        for a in assignments.list_assignments(db, patient.id, active_only=active_only)
    ]


@router.get("/assignments/{assignment_id}")
def get_assignment(
    assignment_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    assignment = assignments.get_assignment(db, assignment_id)
    load_patient(db, request, user, assignment.patient_id)
    return assignments.serialize_assignment(assignment)


@router.post("/assignments/{assignment_id}/deactivate")
def deactivate_assignment(
    assignment_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    assignment = assignments.get_assignment(db, assignment_id)
    load_patient(db, request, user, assignment.patient_id)
    assignments.deactivate_assignment(db, assignment.id)
    audit(db, request, user, action="update", resource_type="SecondaryAssignment",
          resource_id=assignment.id, patient_id=assignment.patient_id, detail={"is_active": False})
    db.commit()
    return assignments.serialize_assignment(assignment)


@router.post("/assignments/{assignment_id}/consent/request", response_model=OtpResponse)
@limiter.limit(settings.RATE_LIMIT_OTP)
def request_consent(
    request: Request,
    assignment_id: UUID,
    method: str = "sms",
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Issue a consent code for the patient. Delivery is out of band."""
    assignment = assignments.get_assignment(db, assignment_id)
    load_patient(db, request, user, assignment.patient_id)
    otp = assignments.request_consent_otp(db, assignment.id, requested_by_user_id=user.id, method=method)
    audit(db, request, user, action="consent_requested", resource_type="SecondaryAssignment",
          resource_id=assignment.id, patient_id=assignment.patient_id)
    db.commit()
    return OtpResponse(
        assignment_id=assignment.id,
        otp_code=otp.otp_code,
        expires_at=otp.expires_at,
        max_attempts=otp.max_attempts,
    )


@router.post("/assignments/{assignment_id}/consent/verify")
@limiter.limit(settings.RATE_LIMIT_OTP)
def verify_consent(
    request: Request,
    assignment_id: UUID,
    body: OtpVerifyRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    assignment = assignments.get_assignment(db, assignment_id)
    load_patient(db, request, user, assignment.patient_id)
    assignments.verify_consent_otp(db, assignment.id, body.otp_code)
    audit(db, request, user, action="consent_granted", resource_type="SecondaryAssignment",
          resource_id=assignment.id, patient_id=assignment.patient_id)
    db.commit()
    return assignments.serialize_assignment(assignment)
