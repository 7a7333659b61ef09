"""Tests for HIPAA policy checks, audit logging and retention."""

import uuid
from datetime import datetime, timedelta

import pytest

from carehub.errors import BusinessRuleError, NotFoundError, PermissionDeniedError
from carehub.models.accounts import User
from carehub.models.assignment import ConsentOtp
from carehub.models.audit import AuditLog
from carehub.models.database import utcnow
from carehub.services import audit, hipaa
from carehub.services.encryption import phi_cipher
from factories import make_org


def _patient_user(consent_date=None):
    return User(id=uuid.uuid4(), role="PATIENT", hipaa_consent_date=consent_date)


# ---------------------------------------------------------------------------
# PHI detection and minimization
# ---------------------------------------------------------------------------

def test_contains_phi_matches_field_names_case_insensitively():
    assert hipaa.contains_phi({"Date_Of_Birth": "1990-01-01"})
    assert hipaa.contains_phi(None, {"q": "ssn"})
    assert not hipaa.contains_phi({"page": 2}, None)


def test_minimize_data_for_patient_role_keeps_only_safe_fields():
    data = {"id": 1, "status": "ACTIVE", "ssn_last4": "6789", "medical_record_number": "MRN-1"}
    assert hipaa.minimize_data(data, role="PATIENT") == {"id": 1, "status": "ACTIVE"}


def test_minimize_data_doctor_sees_clinical_fields_recursively():
    data = [{"id": 1, "allergies": [{"id": 2, "allergen": "nuts"}], "email": "a@b.c"}]
    result = hipaa.minimize_data(data, role="DOCTOR")
    assert result == [{"id": 1, "allergies": [{"id": 2}]}]


def test_minimize_data_admin_has_full_access():
    data = {"id": 1, "email": "a@b.c"}
    assert hipaa.minimize_data(data, role="HOSPITAL_ADMIN") == data
    assert hipaa.minimize_data(data, (hipaa.FULL_ACCESS,), role="PATIENT") == data


# ---------------------------------------------------------------------------
# Consent and BAA
# ---------------------------------------------------------------------------

def test_patient_without_consent_is_denied():
    with pytest.raises(PermissionDeniedError, match="HIPAA authorization required") as exc_info:
        hipaa.check_hipaa_consent(_patient_user())
    assert exc_info.value.extra == {"requires_consent": True}


def test_expired_consent_is_denied():
    stale = utcnow() - timedelta(days=400)
    with pytest.raises(PermissionDeniedError, match="expired"):
        hipaa.check_hipaa_consent(_patient_user(stale))


def test_recent_consent_and_non_patients_pass():
    hipaa.check_hipaa_consent(_patient_user(utcnow() - timedelta(days=10)))
    hipaa.check_hipaa_consent(User(id=uuid.uuid4(), role="DOCTOR"))


def test_baa_checks(db):
    with pytest.raises(BusinessRuleError):
        hipaa.check_business_associate_agreement(db, None)
    with pytest.raises(NotFoundError):
        hipaa.check_business_associate_agreement(db, uuid.uuid4())

    unsigned = make_org(db, baa=False)
    with pytest.raises(PermissionDeniedError) as exc_info:
        hipaa.check_business_associate_agreement(db, unsigned.id)
    assert exc_info.value.extra == {"requires_baa": True}

    expired = make_org(db, baa_expires_in_days=-1)
    with pytest.raises(PermissionDeniedError, match="expired"):
        hipaa.check_business_associate_agreement(db, expired.id)

    covered = make_org(db, covered=True, baa=False)
    assert hipaa.check_business_associate_agreement(db, covered.id) is covered


# ---------------------------------------------------------------------------
# Unusual access
# ---------------------------------------------------------------------------

def test_off_hours_access_is_medium_risk():
    assert hipaa.check_off_hours_access(datetime(2026, 1, 5, 3, 0)).risk_level == "medium"
    assert hipaa.check_off_hours_access(datetime(2026, 1, 5, 11, 0)) is None


def test_missing_relationship_blocks_access():
    user = User(id=uuid.uuid4(), role="DOCTOR")
    allowed = hipaa.detect_unusual_access(user, uuid.uuid4(), now=datetime(2026, 1, 5, 3, 0))
    assert not allowed.blocked
    blocked = hipaa.detect_unusual_access(
        user, uuid.uuid4(), now=datetime(2026, 1, 5, 11, 0), has_relationship=False
    )
    assert blocked.blocked
    assert blocked.alerts[0].type == "unauthorized_patient"


# ---------------------------------------------------------------------------
# Audit log and retention
# ---------------------------------------------------------------------------

def test_log_action_encrypts_detail(db):
    context = audit.AccessContext(actor="user-1", user_role="DOCTOR", ip_address="10.0.0.1")
    entry = audit.log_action(
        db, actor="user-1", action="read", resource_type="Patient",
        detail={"fields": ["ssn"]}, context=context, phi_accessed=True,
    )
    assert "ssn" not in entry.encrypted_detail
    assert phi_cipher.decrypt_json(entry.encrypted_detail) == {"fields": ["ssn"]}
    assert entry.user_role == "DOCTOR"
    assert entry.ip_address == "10.0.0.1"


def test_access_denied_entry_survives_rollback(db):
    context = audit.AccessContext(actor="user-2")
    audit.log_access_denied(db, reason="nope", action="GET", resource_type="/x", context=context)
    db.rollback()
    entries = audit.list_audit_entries(db, access_granted=False)
    assert [e.denial_reason for e in entries] == ["nope"]


def test_enforce_retention_purges_old_rows(db):
    now = utcnow()
    db.add(AuditLog(actor="a", action="read", resource_type="X", timestamp=now - timedelta(days=365 * 7)))
    db.add(AuditLog(actor="a", action="read", resource_type="X", timestamp=now))
    db.add(
        ConsentOtp(
            assignment_id=uuid.uuid4(),
            patient_id=uuid.uuid4(),
            otp_code="123456",
            generated_at=now - timedelta(days=120),
            expires_at=now - timedelta(days=120),
        )
    )
    db.flush()

    result = hipaa.enforce_retention(db, now)
    assert result == {"audit_logs_purged": 1, "consent_otps_purged": 1}
    assert db.query(AuditLog).count() == 1
