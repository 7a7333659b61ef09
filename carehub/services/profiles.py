"""
Account registration and clinical profiles.

A User is created together with the empty profile row matching its role.
Patient DOB and SSN go through ``phi_cipher`` before they are stored and
are only decrypted in ``serialize_patient``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from carehub.errors import (
    AuthenticationError,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from carehub.models.accounts import (
    HSP,
    INDEPENDENT_HSP_TYPES,
    Doctor,
    Organization,
    Patient,
    User,
    capabilities_for_hsp_type,
)
from carehub.models.assignment import SecondaryAssignment
from carehub.models.database import as_naive_utc, utcnow
from carehub.models.enums import AccountStatus, ConsentStatus, HSPType, OrganizationType, UserRole
from carehub.schemas.clinical import ALLERGIES_SCHEMA, MEDICAL_HISTORY_SCHEMA
from carehub.services.encryption import phi_cipher
from carehub.services.security import check_password_strength, hash_password, verify_password
from carehub.services.validation import ensure_valid

logger = logging.getLogger(__name__)

SELF_REGISTER_FORBIDDEN = (UserRole.SYSTEM_ADMIN.value,)


def generate_mrn() -> str:
    return f"MRN-{uuid.uuid4().hex[:8].upper()}"


def _normalize(values: list[str] | None) -> list[str]:
    return [v.strip().lower() for v in (values or []) if v and v.strip()]


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

def create_organization(
    db: Session,
    *,
    name: str,
    org_type: str = OrganizationType.CLINIC.value,
    hipaa_covered_entity: bool = False,
) -> Organization:
    if org_type not in {t.value for t in OrganizationType}:
        raise BusinessRuleError(f"Invalid organization type: {org_type}")
    organization = Organization(name=name, org_type=org_type, hipaa_covered_entity=hipaa_covered_entity)
    db.add(organization)
    db.flush()
    return organization


def get_organization(db: Session, organization_id: UUID) -> Organization:
    organization = db.query(Organization).filter(Organization.id == organization_id).first()
    if not organization:
        raise NotFoundError("Organization not found")
    return organization


def record_baa(
    db: Session, organization_id: UUID, signed_at: datetime | None = None, expires_at: datetime | None = None
) -> Organization:
    """Record a signed Business Associate Agreement for the organization."""
    organization = get_organization(db, organization_id)
    signed = as_naive_utc(signed_at) if signed_at else utcnow()
    expires = as_naive_utc(expires_at) if expires_at else None
    if expires is not None and expires <= signed:
        raise BusinessRuleError("BAA expiry must be after the signing date")
    organization.baa_signed_at = signed
    organization.baa_expires_at = expires
    db.flush()
    logger.info("BAA recorded for organization %s", organization.id)
    return organization


def serialize_organization(organization: Organization) -> dict[str, Any]:
    return {
        "id": organization.id,
        "name": organization.name,
        "org_type": organization.org_type,
        "hipaa_covered_entity": organization.hipaa_covered_entity,
        "baa_signed_at": organization.baa_signed_at,
        "baa_expires_at": organization.baa_expires_at,
        "is_active": organization.is_active,
    }


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def register_user(
    db: Session,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str,
    phone: str | None = None,
    organization_id: UUID | None = None,
    hsp_type: str | None = None,
) -> User:
    """Create a user and the empty profile row for its role."""
    if role in SELF_REGISTER_FORBIDDEN:
        raise PermissionDeniedError("System administrator accounts cannot be self-registered")

    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email is already registered")
    check_password_strength(password)

    status = AccountStatus.ACTIVE if role == UserRole.PATIENT.value else AccountStatus.PENDING_VERIFICATION
    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone,
        role=role,
        account_status=status.value,
        organization_id=organization_id,
    )
    db.add(user)
    db.flush()

    if role == UserRole.PATIENT.value:
        db.add(Patient(user_id=user.id, organization_id=organization_id, medical_record_number=generate_mrn()))
    elif role == UserRole.DOCTOR.value:
        db.add(Doctor(user_id=user.id, organization_id=organization_id))
    elif role == UserRole.HSP.value:
        hsp = HSP(user_id=user.id, organization_id=organization_id)
        apply_hsp_type(hsp, hsp_type or HSPType.OTHER.value)
        db.add(hsp)
    db.flush()

    logger.info("Registered %s account %s", role, user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    if user.account_status != AccountStatus.ACTIVE.value:
        raise PermissionDeniedError(
            "Account is not active", account_status=user.account_status
        )
    user.last_login_at = utcnow()
    db.flush()
    return user


def record_hipaa_consent(db: Session, user: User) -> User:
    user.hipaa_consent_date = utcnow()
    db.flush()
    logger.info("HIPAA authorization recorded for user %s", user.id)
    return user


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_patient(db: Session, patient_id: UUID) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


def get_doctor(db: Session, doctor_id: UUID) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if not doctor:
        raise NotFoundError("Doctor not found")
    return doctor


def get_hsp(db: Session, hsp_id: UUID) -> HSP:
    hsp = db.query(HSP).filter(HSP.id == hsp_id).first()
    if not hsp:
        raise NotFoundError("HSP not found")
    return hsp


def patient_for_user(db: Session, user: User) -> Patient | None:
    return db.query(Patient).filter(Patient.user_id == user.id).first()


def doctor_for_user(db: Session, user: User) -> Doctor | None:
    return db.query(Doctor).filter(Doctor.user_id == user.id).first()


def hsp_for_user(db: Session, user: User) -> HSP | None:
    return db.query(HSP).filter(HSP.user_id == user.id).first()


def provider_for_user(db: Session, user: User) -> Doctor | HSP | None:
    if user.role == UserRole.DOCTOR.value:
        return doctor_for_user(db, user)
    if user.role == UserRole.HSP.value:
        return hsp_for_user(db, user)
    return None


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------

def update_patient(db: Session, patient: Patient, **fields: Any) -> Patient:
    """
    Apply profile changes. ``date_of_birth`` and ``ssn`` are encrypted;
    ``allergies`` and ``medical_history`` are schema-checked first.
    """
    if "allergies" in fields and fields["allergies"] is not None:
        ensure_valid(fields["allergies"], ALLERGIES_SCHEMA, "allergies")
    if "medical_history" in fields and fields["medical_history"] is not None:
        ensure_valid(fields["medical_history"], MEDICAL_HISTORY_SCHEMA, "medical history")

    dob = fields.pop("date_of_birth", None)
    if dob is not None:
        patient.encrypted_dob = phi_cipher.encrypt(dob.isoformat() if isinstance(dob, date) else str(dob))
    ssn = fields.pop("ssn", None)
    if ssn is not None:
        patient.encrypted_ssn = phi_cipher.encrypt(ssn)

    if fields.get("primary_doctor_id") is not None:
        get_doctor(db, fields["primary_doctor_id"])

    for name, value in fields.items():
        if value is not None and hasattr(patient, name):
            setattr(patient, name, value)
    db.flush()
    return patient


def consented_secondary_patients(doctor: Doctor):
    """Patient ids the doctor reaches through an active, consented assignment."""
    return select(SecondaryAssignment.patient_id).where(
        SecondaryAssignment.doctor_id == doctor.id,
        SecondaryAssignment.is_active.is_(True),
        SecondaryAssignment.consent_status.in_(
            [ConsentStatus.GRANTED.value, ConsentStatus.NOT_REQUIRED.value]
        ),
    )


def list_patients(db: Session, viewer: User, limit: int = 100, offset: int = 0) -> list[Patient]:
    """Tenant-scoped patient listing."""
    query = db.query(Patient)
    if viewer.role == UserRole.SYSTEM_ADMIN.value:
        pass
    elif viewer.role == UserRole.DOCTOR.value:
        doctor = doctor_for_user(db, viewer)
        if doctor is None:
            return []
        secondary = consented_secondary_patients(doctor)
        query = query.filter(
            or_(Patient.primary_doctor_id == doctor.id, Patient.id.in_(secondary))
        )
    elif viewer.role == UserRole.PATIENT.value:
        query = query.filter(Patient.user_id == viewer.id)
    else:
        query = query.filter(Patient.organization_id == viewer.organization_id)
    return query.order_by(Patient.created_at.desc()).offset(offset).limit(limit).all()


def serialize_patient(patient: Patient) -> dict[str, Any]:
    ssn = phi_cipher.try_decrypt(patient.encrypted_ssn)
    user = patient.user
    return {
        "id": patient.id,
        "user_id": patient.user_id,
        "organization_id": patient.organization_id,
        "first_name": user.first_name if user else None,
        "last_name": user.last_name if user else None,
        "email": user.email if user else None,
        "status": user.account_status if user else None,
        "medical_record_number": patient.medical_record_number,
        "date_of_birth": phi_cipher.try_decrypt(patient.encrypted_dob),
        "ssn_last4": ssn[-4:] if ssn else None,
        "gender": patient.gender,
        "blood_type": patient.blood_type,
        "height_cm": patient.height_cm,
        "weight_kg": patient.weight_kg,
        "allergies": patient.allergies or [],
        "medical_history": patient.medical_history or [],
        "emergency_contacts": patient.emergency_contacts or [],
        "primary_doctor_id": patient.primary_doctor_id,
        "created_at": patient.created_at,
    }


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

def update_doctor(db: Session, doctor: Doctor, **fields: Any) -> Doctor:
    for key in ("specialties", "board_certifications"):
        if fields.get(key) is not None:
            fields[key] = _normalize(fields[key])
    for name, value in fields.items():
        if value is not None and hasattr(doctor, name):
            setattr(doctor, name, value)
    db.flush()
    return doctor


def apply_hsp_type(hsp: HSP, hsp_type: str) -> None:
    """Set capabilities and supervision defaults for an HSP type."""
    hsp.hsp_type = hsp_type
    hsp.capabilities = capabilities_for_hsp_type(hsp_type)
    if hsp_type in INDEPENDENT_HSP_TYPES:
        hsp.requires_supervision = False
        hsp.supervision_level = "collaborative"
    else:
        hsp.requires_supervision = True
        hsp.supervision_level = "direct"


def update_hsp(db: Session, hsp: HSP, **fields: Any) -> HSP:
    hsp_type = fields.pop("hsp_type", None)
    if hsp_type is not None:
        apply_hsp_type(hsp, hsp_type)
    for key in ("certifications", "specializations"):
        if fields.get(key) is not None:
            fields[key] = _normalize(fields[key])
    if fields.get("supervising_doctor_id") is not None:
        get_doctor(db, fields["supervising_doctor_id"])
    for name, value in fields.items():
        if value is not None and hasattr(hsp, name):
            setattr(hsp, name, value)
    db.flush()
    return hsp


def verify_doctor(db: Session, doctor_id: UUID) -> Doctor:
    doctor = get_doctor(db, doctor_id)
    doctor.is_verified = True
    doctor.verified_at = utcnow()
    if doctor.user is not None:
        doctor.user.account_status = AccountStatus.ACTIVE.value
    db.flush()
    logger.info("Doctor %s verified", doctor.id)
    return doctor


def verify_hsp(db: Session, hsp_id: UUID) -> HSP:
    hsp = get_hsp(db, hsp_id)
    hsp.is_verified = True
    hsp.verified_at = utcnow()
    if hsp.user is not None:
        hsp.user.account_status = AccountStatus.ACTIVE.value
    db.flush()
    logger.info("HSP %s verified", hsp.id)
    return hsp


def list_doctors(db: Session, organization_id: UUID | None = None, verified_only: bool = False) -> list[Doctor]:
    query = db.query(Doctor)
    if organization_id is not None:
        query = query.filter(Doctor.organization_id == organization_id)
    if verified_only:
        query = query.filter(Doctor.is_verified.is_(True))
    return query.order_by(Doctor.created_at.desc()).all()


def serialize_doctor(doctor: Doctor) -> dict[str, Any]:
    return {
        "id": doctor.id,
        "user_id": doctor.user_id,
        "name": doctor.user.full_name if doctor.user else None,
        "organization_id": doctor.organization_id,
        "specialties": doctor.specialties or [],
        "primary_specialty": doctor.primary_specialty(),
        "board_certifications": doctor.board_certifications or [],
        "years_of_experience": doctor.years_of_experience,
        "capabilities": doctor.capabilities or [],
        "consultation_fee": doctor.consultation_fee,
        "is_verified": doctor.is_verified,
        "verified_at": doctor.verified_at,
        "total_patients": doctor.total_patients,
        "accepts_new_patients": doctor.accepts_new_patients(),
        "workload_percentage": doctor.workload_percentage(),
    }


def serialize_hsp(hsp: HSP) -> dict[str, Any]:
    return {
        "id": hsp.id,
        "user_id": hsp.user_id,
        "name": hsp.user.full_name if hsp.user else None,
        "organization_id": hsp.organization_id,
        "hsp_type": hsp.hsp_type,
        "capabilities": hsp.capabilities or [],
        "requires_supervision": hsp.requires_supervision,
        "supervision_level": hsp.supervision_level,
        "supervising_doctor_id": hsp.supervising_doctor_id,
        "is_verified": hsp.is_verified,
        "can_prescribe": hsp.can_prescribe(),
        "is_independent_practitioner": hsp.is_independent_practitioner(),
        "accepts_new_patients": hsp.accepts_new_patients(),
        "workload_percentage": hsp.workload_percentage(),
    }
