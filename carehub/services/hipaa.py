"""
HIPAA policy checks.

Each check is plain branching against static tables: consent age, BAA
validity, role-based field allowlists, off-hours access and retention
windows. The FastAPI dependencies in ``carehub.api.deps`` call these and
record denials through the audit service.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from carehub.config import settings
from carehub.errors import BusinessRuleError, NotFoundError, PermissionDeniedError
from carehub.models.accounts import Organization, User
from carehub.models.assignment import ConsentOtp
from carehub.models.audit import AuditLog
from carehub.models.database import utcnow
from carehub.models.enums import UserRole

logger = logging.getLogger(__name__)

PHI_FIELDS = (
    "name", "first_name", "last_name", "email", "phone", "address",
    "date_of_birth", "ssn", "medical_record_number", "diagnosis",
    "medication", "vital", "treatment", "allergy",
)

ALWAYS_ALLOWED_FIELDS = ("id", "created_at", "updated_at", "status")

FULL_ACCESS = "*"

ROLE_FIELD_ALLOWLIST: dict[str, tuple[str, ...]] = {
    UserRole.SYSTEM_ADMIN.value: (FULL_ACCESS,),
    UserRole.HOSPITAL_ADMIN.value: (FULL_ACCESS,),
    UserRole.DOCTOR.value: (
        "medical_record_number", "diagnosis", "medications", "allergies",
        "medical_history", "vitals", "treatment_plans", "care_plans",
    ),
    UserRole.HSP.value: ("vitals", "medications", "allergies", "care_plans"),
    UserRole.PATIENT.value: (),
}

RETENTION_POLICIES: dict[str, relativedelta] = {
    "audit_logs": relativedelta(years=6),
    "patient_records": relativedelta(years=7),
    "appointment_records": relativedelta(years=7),
    "prescription_records": relativedelta(years=2),
    "session_logs": relativedelta(days=90),
}


# ---------------------------------------------------------------------------
# PHI detection and data minimization
# ---------------------------------------------------------------------------

def contains_phi(*payloads: Any) -> bool:
    """True when any PHI field name appears in the serialized request data."""
    blob = json.dumps([p for p in payloads if p], default=str).lower()
    return any(field_name in blob for field_name in PHI_FIELDS)


def minimize_data(data: Any, allowed_fields: list[str] | tuple[str, ...] = (), role: str | None = None) -> Any:
    """Strip every key the caller's role is not entitled to see, recursively."""
    if isinstance(data, list):
        return [minimize_data(item, allowed_fields, role) for item in data]
    if not isinstance(data, dict):
        return data

    role_fields = ROLE_FIELD_ALLOWLIST.get(role or "", ())
    if FULL_ACCESS in role_fields or FULL_ACCESS in allowed_fields:
        permitted = set(data)
    else:
        permitted = set(ALWAYS_ALLOWED_FIELDS) | set(allowed_fields) | set(role_fields)

    minimized = {}
    for key, value in data.items():
        if key in permitted:
            minimized[key] = minimize_data(value, allowed_fields, role) if isinstance(value, (dict, list)) else value
    return minimized


# ---------------------------------------------------------------------------
# Consent and Business Associate Agreement checks
# ---------------------------------------------------------------------------

def check_hipaa_consent(user: User, now: datetime | None = None) -> None:
    """Patients need a HIPAA authorization on file, renewed yearly."""
    if user.role != UserRole.PATIENT.value:
        return
    if user.hipaa_consent_date is None:
        raise PermissionDeniedError("HIPAA authorization required", requires_consent=True)
    now = now or utcnow()
    if now - user.hipaa_consent_date > timedelta(days=settings.HIPAA_CONSENT_VALIDITY_DAYS):
        raise PermissionDeniedError(
            "HIPAA authorization has expired and must be renewed", consent_expired=True
        )


def check_business_associate_agreement(
    db: Session, organization_id, now: datetime | None = None
) -> Organization:
    if organization_id is None:
        raise BusinessRuleError("Organization context required")
    organization = db.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    if not organization.hipaa_covered_entity and organization.baa_signed_at is None:
        raise PermissionDeniedError(
            "Valid Business Associate Agreement required", requires_baa=True
        )
    now = now or utcnow()
    if organization.baa_expires_at is not None and now > organization.baa_expires_at:
        raise PermissionDeniedError(
            "Business Associate Agreement has expired", baa_expired=True
        )
    return organization


# ---------------------------------------------------------------------------
# Breach detection
# ---------------------------------------------------------------------------

@dataclass
class SecurityAlert:
    type: str
    risk_level: str
    details: str


@dataclass
class AccessAssessment:
    alerts: list[SecurityAlert] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(alert.risk_level == "high" for alert in self.alerts)


def check_off_hours_access(now: datetime) -> SecurityAlert | None:
    if now.hour < settings.BUSINESS_HOURS_START or now.hour > settings.BUSINESS_HOURS_END:
        return SecurityAlert(
            type="off_hours_access",
            risk_level="medium",
            details=f"Access at {now.hour:02d}:{now.minute:02d}",
        )
    return None


def detect_unusual_access(
    user: User, patient_id, now: datetime | None = None, has_relationship: bool = True
) -> AccessAssessment:
    """
    Flag access patterns worth a security review. Access to a patient the
    caller has no care relationship with is high risk and is blocked.
    """
    assessment = AccessAssessment()
    if patient_id is None:
        return assessment
    now = now or datetime.now()

    alert = check_off_hours_access(now)
    if alert:
        assessment.alerts.append(alert)
    if not has_relationship:
        assessment.alerts.append(
            SecurityAlert(
                type="unauthorized_patient",
                risk_level="high",
                details="No care relationship with patient",
            )
        )

    for alert in assessment.alerts:
        logger.warning(
            "HIPAA SECURITY ALERT: user=%s patient=%s type=%s risk=%s (%s)",
            user.id, patient_id, alert.type, alert.risk_level, alert.details,
        )
    return assessment


# ---------------------------------------------------------------------------
# Data retention
# ---------------------------------------------------------------------------

def enforce_retention(db: Session, now: datetime | None = None) -> dict[str, int]:
    """
    Purge rows that have outlived their retention window. Clinical records
    are kept (their windows exceed the life of this deployment); audit
    entries and consent OTPs are purged.
    """
    now = now or utcnow()
    audit_cutoff = now - RETENTION_POLICIES["audit_logs"]
    session_cutoff = now - RETENTION_POLICIES["session_logs"]

    audit_purged = (
        db.query(AuditLog)
        .filter(AuditLog.timestamp < audit_cutoff)
        .delete(synchronize_session=False)
    )
    otp_purged = (
        db.query(ConsentOtp)
        .filter(ConsentOtp.generated_at < session_cutoff)
        .delete(synchronize_session=False)
    )
    logger.info("Retention: purged %d audit entries, %d consent OTPs", audit_purged, otp_purged)
    return {"audit_logs_purged": audit_purged, "consent_otps_purged": otp_purged}
