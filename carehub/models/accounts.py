"""
Tenants, user accounts and role profiles.

A User row carries authentication and the HIPAA consent date; the
clinical identity lives in exactly one of Doctor, HSP or Patient.
PHI on the patient profile is stored encrypted (see EncryptionService).
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from carehub.models.database import Base, JSONType, utcnow
from carehub.models.enums import AccountStatus, Capability, HSPType, OrganizationType

DOCTOR_MAX_PATIENTS = 500
HSP_MAX_PATIENTS = 200

ALL_CAPABILITIES = [c.value for c in Capability]

BASE_HSP_CAPABILITIES = [
    Capability.MONITOR_VITALS.value,
    Capability.PATIENT_EDUCATION.value,
    Capability.CARE_COORDINATION.value,
]

HSP_EXTRA_CAPABILITIES: dict[str, list[str]] = {
    HSPType.NURSE_PRACTITIONER.value: [
        Capability.PRESCRIBE_MEDICATIONS.value,
        Capability.ORDER_TESTS.value,
        Capability.DIAGNOSE.value,
        Capability.CREATE_TREATMENT_PLANS.value,
        Capability.CREATE_CARE_PLANS.value,
        Capability.MODIFY_MEDICATIONS.value,
    ],
    HSPType.PHYSICIAN_ASSISTANT.value: [
        Capability.PRESCRIBE_MEDICATIONS.value,
        Capability.ORDER_TESTS.value,
        Capability.CREATE_TREATMENT_PLANS.value,
        Capability.MODIFY_MEDICATIONS.value,
    ],
    HSPType.CLINICAL_PHARMACIST.value: [
        Capability.MODIFY_MEDICATIONS.value,
        Capability.ORDER_TESTS.value,
    ],
    HSPType.REGISTERED_NURSE.value: [
        Capability.EMERGENCY_RESPONSE.value,
    ],
}

INDEPENDENT_HSP_TYPES = (HSPType.NURSE_PRACTITIONER.value, HSPType.PHYSICIAN_ASSISTANT.value)
SUPERVISED_ACTIONS = ("prescribe", "diagnose", "surgery")


def capabilities_for_hsp_type(hsp_type: str) -> list[str]:
    return BASE_HSP_CAPABILITIES + HSP_EXTRA_CAPABILITIES.get(hsp_type, [])


# ---------------------------------------------------------------------------
# Organization – the tenant boundary
# ---------------------------------------------------------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    org_type = Column(String(32), default=OrganizationType.CLINIC.value, nullable=False)
    hipaa_covered_entity = Column(Boolean, default=False, nullable=False)
    baa_signed_at = Column(DateTime, nullable=True, comment="Business Associate Agreement")
    baa_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# ---------------------------------------------------------------------------
# User – authentication identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(32))
    role = Column(String(32), nullable=False)
    account_status = Column(
        String(32), default=AccountStatus.PENDING_VERIFICATION.value, nullable=False
    )
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    hipaa_consent_date = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", lazy="joined")

    __table_args__ = (Index("ix_users_role", "role"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# ---------------------------------------------------------------------------
# Doctor – full medical capabilities once verified
# ---------------------------------------------------------------------------
class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    medical_license_number = Column(String(100), unique=True, nullable=True)
    specialties = Column(JSONType, default=list)
    board_certifications = Column(JSONType, default=list)
    years_of_experience = Column(Integer)
    capabilities = Column(JSONType, default=lambda: list(ALL_CAPABILITIES))
    consultation_fee = Column(Numeric(10, 2, asdecimal=False))
    total_patients = Column(Integer, default=0, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", lazy="joined")

    def has_capability(self, capability: str) -> bool:
        return capability in (self.capabilities or [])

    def can_prescribe(self) -> bool:
        return self.has_capability(Capability.PRESCRIBE_MEDICATIONS.value) and self.is_verified

    def can_create_care_plans(self) -> bool:
        return self.has_capability(Capability.CREATE_CARE_PLANS.value) and self.is_verified

    def can_create_treatment_plans(self) -> bool:
        return self.has_capability(Capability.CREATE_TREATMENT_PLANS.value) and self.is_verified

    def primary_specialty(self) -> str:
        return (self.specialties or ["general practice"])[0]

    def accepts_new_patients(self) -> bool:
        return self.is_verified and self.total_patients < DOCTOR_MAX_PATIENTS

    def workload_percentage(self) -> int:
        return round(self.total_patients / DOCTOR_MAX_PATIENTS * 100)


# ---------------------------------------------------------------------------
# HSP – healthcare support personnel (nurses, PAs, pharmacists, ...)
# ---------------------------------------------------------------------------
class HSP(Base):
    __tablename__ = "hsps"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    hsp_type = Column(String(50), nullable=False, default=HSPType.OTHER.value)
    license_number = Column(String(100), unique=True, nullable=True)
    certifications = Column(JSONType, default=list)
    specializations = Column(JSONType, default=list)
    years_of_experience = Column(Integer)
    capabilities = Column(JSONType, default=lambda: list(BASE_HSP_CAPABILITIES))
    requires_supervision = Column(Boolean, default=True, nullable=False)
    supervision_level = Column(String(20), default="direct", nullable=False)
    supervising_doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=True)
    total_patients_assisted = Column(Integer, default=0, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", lazy="joined")

    def has_capability(self, capability: str) -> bool:
        return capability in (self.capabilities or [])

    def requires_supervision_for(self, action: str) -> bool:
        if not self.requires_supervision:
            return False
        return action.lower() in SUPERVISED_ACTIONS

    def can_prescribe(self) -> bool:
        return (
            self.has_capability(Capability.PRESCRIBE_MEDICATIONS.value)
            and self.is_verified
            and not self.requires_supervision_for("prescribe")
        )

    def can_create_care_plans(self) -> bool:
        return self.has_capability(Capability.CREATE_CARE_PLANS.value) and self.is_verified

    def can_create_treatment_plans(self) -> bool:
        return self.has_capability(Capability.CREATE_TREATMENT_PLANS.value) and self.is_verified

    def is_independent_practitioner(self) -> bool:
        return self.hsp_type in INDEPENDENT_HSP_TYPES

    def accepts_new_patients(self) -> bool:
        return self.is_verified and self.total_patients_assisted < HSP_MAX_PATIENTS

    def workload_percentage(self) -> int:
        return round(self.total_patients_assisted / HSP_MAX_PATIENTS * 100)


# ---------------------------------------------------------------------------
# Patient – clinical identity (contains PHI)
# ---------------------------------------------------------------------------
class Patient(Base):
    __tablename__ = "patients"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    medical_record_number = Column(String(64), unique=True, nullable=False)
    # PHI fields – app-layer encrypted
    encrypted_dob = Column(Text, nullable=True, comment="Fernet-encrypted date of birth")
    encrypted_ssn = Column(Text, nullable=True, comment="Fernet-encrypted SSN")

    gender = Column(String(24))
    blood_type = Column(String(4))
    height_cm = Column(Float)
    weight_kg = Column(Float)
    allergies = Column(JSONType, default=list)
    medical_history = Column(JSONType, default=list)
    emergency_contacts = Column(JSONType, default=list)
    primary_doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", lazy="joined")
    primary_doctor = relationship("Doctor", lazy="select")

    __table_args__ = (
        Index("ix_patients_org", "organization_id"),
        Index("ix_patients_primary_doctor", "primary_doctor_id"),
    )
