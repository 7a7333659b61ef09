"""
Secondary doctor assignments and the patient consent OTP flow.

A doctor from outside the primary doctor's organization only gains
access after the patient confirms a one-time code.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from carehub.config import settings
from carehub.errors import BusinessRuleError, ConflictError, NotFoundError, PermissionDeniedError
from carehub.models.accounts import Doctor, Patient, User
from carehub.models.assignment import ConsentOtp, SecondaryAssignment
from carehub.models.database import utcnow
from carehub.models.enums import AssignmentType, ConsentStatus, UserRole
from carehub.services.profiles import doctor_for_user, get_doctor, get_patient

logger = logging.getLogger(__name__)

ASSIGNMENT_TYPES = {t.value for t in AssignmentType}


def generate_otp_code() -> str:
    return f"{secrets.randbelow(10**6):06d}"


def assign_secondary_doctor(
    db: Session,
    *,
    patient_id: UUID,
    doctor_id: UUID,
    assignment_type: str,
    assigned_by_doctor_id: UUID | None = None,
    reason: str | None = None,
    specialty_focus: list[str] | None = None,
    care_plan_ids: list[str] | None = None,
    notes: str | None = None,
) -> SecondaryAssignment:
    if assignment_type not in ASSIGNMENT_TYPES:
        raise BusinessRuleError(
            f"Invalid assignment type: {assignment_type}", allowed=sorted(ASSIGNMENT_TYPES)
        )
    patient = get_patient(db, patient_id)
    doctor = get_doctor(db, doctor_id)
    if not doctor.is_verified:
        raise BusinessRuleError("Doctor must be verified before assignment")
    if patient.primary_doctor_id == doctor.id:
        raise BusinessRuleError("Doctor is already the patient's primary doctor")

    duplicate = (
        db.query(SecondaryAssignment)
        .filter(
            SecondaryAssignment.patient_id == patient.id,
            SecondaryAssignment.doctor_id == doctor.id,
            or_(
                SecondaryAssignment.is_active.is_(True),
                SecondaryAssignment.consent_status == ConsentStatus.PENDING.value,
            ),
        )
        .first()
    )
    if duplicate:
        raise ConflictError("Doctor is already assigned to this patient")

    primary = db.query(Doctor).filter(Doctor.id == patient.primary_doctor_id).first() if patient.primary_doctor_id else None
    same_org = (
        primary is not None
        and primary.organization_id is not None
        and primary.organization_id == doctor.organization_id
    )

    assignment = SecondaryAssignment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        assigned_by_doctor_id=assigned_by_doctor_id,
        assignment_type=assignment_type,
        assignment_reason=reason,
        specialty_focus=specialty_focus or [],
        care_plan_ids=care_plan_ids or [],
        notes=notes,
        consent_required=not same_org,
        consent_status=(ConsentStatus.NOT_REQUIRED if same_org else ConsentStatus.PENDING).value,
        is_active=same_org,
    )
    db.add(assignment)
    db.flush()
    logger.info(
        "Secondary %s assignment %s: doctor %s -> patient %s (consent %s)",
        assignment_type, assignment.id, doctor.id, patient.id, assignment.consent_status,
    )
    return assignment


def get_assignment(db: Session, assignment_id: UUID) -> SecondaryAssignment:
    assignment = (
        db.query(SecondaryAssignment).filter(SecondaryAssignment.id == assignment_id).first()
    )
    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def list_assignments(db: Session, patient_id: UUID, active_only: bool = False) -> list[SecondaryAssignment]:
    query = db.query(SecondaryAssignment).filter(SecondaryAssignment.patient_id == patient_id)
    if active_only:
        query = query.filter(SecondaryAssignment.is_active.is_(True))
    return query.order_by(SecondaryAssignment.created_at.desc()).all()


def deactivate_assignment(db: Session, assignment_id: UUID) -> SecondaryAssignment:
    assignment = get_assignment(db, assignment_id)
    assignment.is_active = False
    db.flush()
    return assignment


# ---------------------------------------------------------------------------
# Consent OTP
# ---------------------------------------------------------------------------

def request_consent_otp(
    db: Session,
    assignment_id: UUID,
    requested_by_user_id: UUID | None = None,
    method: str = "sms",
    now: datetime | None = None,
) -> ConsentOtp:
    assignment = get_assignment(db, assignment_id)
    if not assignment.consent_required:
        raise BusinessRuleError("Consent is not required for this assignment")
    if assignment.consent_status == ConsentStatus.GRANTED.value:
        raise BusinessRuleError("Consent has already been granted")

    now = now or utcnow()
    db.query(ConsentOtp).filter(
        ConsentOtp.assignment_id == assignment.id,
        ConsentOtp.is_verified.is_(False),
        ConsentOtp.is_expired.is_(False),
    ).update({ConsentOtp.is_expired: True}, synchronize_session=False)

    otp = ConsentOtp(
        assignment_id=assignment.id,
        patient_id=assignment.patient_id,
        otp_code=generate_otp_code(),
        otp_method=method,
        generated_at=now,
        expires_at=now + timedelta(minutes=settings.CONSENT_OTP_EXPIRY_MINUTES),
        max_attempts=settings.CONSENT_OTP_MAX_ATTEMPTS,
        requested_by_user_id=requested_by_user_id,
    )
    db.add(otp)
    db.flush()
    logger.info("Consent OTP generated for assignment %s", assignment.id)
    return otp


def verify_consent_otp(
    db: Session, assignment_id: UUID, code: str, now: datetime | None = None
) -> SecondaryAssignment:
    """
    Check a patient-supplied code. Failed attempts, expiry and blocking are
    committed before the error is raised so they survive the failed request.
    """
    assignment = get_assignment(db, assignment_id)
    otp = (
        db.query(ConsentOtp)
        .filter(
            ConsentOtp.assignment_id == assignment.id,
            ConsentOtp.is_verified.is_(False),
        )
        .order_by(ConsentOtp.generated_at.desc())
        .first()
    )
    if otp is None:
        raise NotFoundError("No consent code has been requested")

    now = now or utcnow()
    if otp.is_blocked:
        raise PermissionDeniedError("Consent code is blocked after too many failed attempts")
    if otp.has_expired(now):
        otp.is_expired = True
        db.commit()
        raise BusinessRuleError("Consent code has expired")

    if not secrets.compare_digest(otp.otp_code, code.strip()):
        otp.attempts_count += 1
        if otp.attempts_count >= otp.max_attempts:
            otp.is_blocked = True
            otp.blocked_at = now
            db.commit()
            logger.warning("Consent OTP blocked for assignment %s", assignment.id)
            raise PermissionDeniedError("Consent code is blocked after too many failed attempts")
        db.commit()
        raise BusinessRuleError(
            "Invalid consent code", attempts_remaining=otp.max_attempts - otp.attempts_count
        )

    otp.is_verified = True
    otp.verified_at = now
    assignment.consent_status = ConsentStatus.GRANTED.value
    assignment.consent_granted_at = now
    assignment.is_active = True
    db.flush()
    logger.info("Consent granted for assignment %s", assignment.id)
    return assignment


# ---------------------------------------------------------------------------
# Access checks
# ---------------------------------------------------------------------------

def has_patient_access(db: Session, user: User, patient: Patient) -> bool:
    """Whether ``user`` has a care relationship with ``patient``."""
    if user.role == UserRole.SYSTEM_ADMIN.value:
        return True
    if user.role in (UserRole.HOSPITAL_ADMIN.value, UserRole.HSP.value):
        return user.organization_id is not None and user.organization_id == patient.organization_id
    if user.role == UserRole.PATIENT.value:
        return patient.user_id == user.id
    if user.role == UserRole.DOCTOR.value:
        doctor = doctor_for_user(db, user)
        if doctor is None:
            return False
        if patient.primary_doctor_id == doctor.id:
            return True
        assignments = (
            db.query(SecondaryAssignment)
            .filter(
                SecondaryAssignment.patient_id == patient.id,
                SecondaryAssignment.doctor_id == doctor.id,
            )
            .all()
        )
        return any(a.grants_access() for a in assignments)
    return False


def serialize_assignment(assignment: SecondaryAssignment) -> dict[str, Any]:
    return {
        "id": assignment.id,
        "patient_id": assignment.patient_id,
        "doctor_id": assignment.doctor_id,
        "assigned_by_doctor_id": assignment.assigned_by_doctor_id,
        "assignment_type": assignment.assignment_type,
        "assignment_reason": assignment.assignment_reason,
        "specialty_focus": assignment.specialty_focus or [],
        "consent_required": assignment.consent_required,
        "consent_status": assignment.consent_status,
        "consent_granted_at": assignment.consent_granted_at,
        "is_active": assignment.is_active,
        "created_at": assignment.created_at,
    }
