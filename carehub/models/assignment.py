"""Secondary provider assignments and the patient-consent OTPs gating them."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid

from carehub.models.database import Base, JSONType, utcnow
from carehub.models.enums import ConsentStatus


class SecondaryAssignment(Base):
    __tablename__ = "secondary_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=False)
    assigned_by_doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=True)
    assignment_type = Column(String(20), nullable=False)
    specialty_focus = Column(JSONType, default=list)
    care_plan_ids = Column(JSONType, default=list)
    assignment_reason = Column(Text)
    notes = Column(Text)
    consent_required = Column(Boolean, default=True, nullable=False)
    consent_status = Column(String(16), default=ConsentStatus.PENDING.value, nullable=False)
    consent_granted_at = Column(DateTime)
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_secondary_patient", "patient_id"),
        Index("ix_secondary_doctor", "doctor_id"),
    )

    def grants_access(self) -> bool:
        return self.is_active and self.consent_status in (
            ConsentStatus.GRANTED.value,
            ConsentStatus.NOT_REQUIRED.value,
        )


class ConsentOtp(Base):
    __tablename__ = "consent_otps"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(
        Uuid, ForeignKey("secondary_assignments.id", ondelete="CASCADE"), nullable=False
    )
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    otp_code = Column(String(6), nullable=False)
    otp_method = Column(String(16), default="sms", nullable=False)
    generated_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    attempts_count = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime)
    is_expired = Column(Boolean, default=False, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    blocked_at = Column(DateTime)
    requested_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    __table_args__ = (Index("ix_consent_otp_assignment", "assignment_id"),)

    def has_expired(self, now: datetime | None = None) -> bool:
        return self.is_expired or (now or utcnow()) > self.expires_at
