"""Tests for secondary doctor assignments and consent codes."""

from datetime import timedelta

import pytest

from carehub.errors import BusinessRuleError, ConflictError, PermissionDeniedError
from carehub.models.assignment import ConsentOtp
from carehub.models.database import utcnow
from carehub.services import assignments
from factories import make_admin, make_doctor, make_org, make_patient, make_user


@pytest.fixture
def org(db):
    return make_org(db)


@pytest.fixture
def primary(db, org):
    return make_doctor(db, org=org)


@pytest.fixture
def patient(db, org, primary):
    return make_patient(db, org=org, primary_doctor=primary)


def _assign(db, patient, doctor, assignment_type="specialist"):
    return assignments.assign_secondary_doctor(
        db, patient_id=patient.id, doctor_id=doctor.id, assignment_type=assignment_type
    )


def test_same_org_assignment_is_active_immediately(db, org, patient):
    colleague = make_doctor(db, org=org)
    assignment = _assign(db, patient, colleague)
    assert assignment.consent_required is False
    assert assignment.consent_status == "not_required"
    assert assignments.has_patient_access(db, colleague.user, patient)


def test_outside_doctor_needs_consent(db, patient):
    outsider = make_doctor(db, org=make_org(db))
    assignment = _assign(db, patient, outsider)
    assert assignment.consent_required is True
    assert assignment.consent_status == "pending"
    assert not assignments.has_patient_access(db, outsider.user, patient)


def test_assignment_rules(db, org, primary, patient):
    with pytest.raises(BusinessRuleError):
        _assign(db, patient, make_doctor(db, org=org), assignment_type="temporary")
    with pytest.raises(BusinessRuleError):
        _assign(db, patient, make_doctor(db, org=org, verified=False))
    with pytest.raises(BusinessRuleError):
        _assign(db, patient, primary)

    colleague = make_doctor(db, org=org)
    _assign(db, patient, colleague)
    with pytest.raises(ConflictError):
        _assign(db, patient, colleague, assignment_type="substitute")


def test_consent_flow_grants_access(db, patient):
    outsider = make_doctor(db, org=make_org(db))
    assignment = _assign(db, patient, outsider)
    otp = assignments.request_consent_otp(db, assignment.id)
    assert len(otp.otp_code) == 6 and otp.otp_code.isdigit()

    assignments.verify_consent_otp(db, assignment.id, f" {otp.otp_code} ")
    assert assignment.consent_status == "granted"
    assert assignment.is_active
    assert assignments.has_patient_access(db, outsider.user, patient)

    with pytest.raises(BusinessRuleError):
        assignments.request_consent_otp(db, assignment.id)


def test_new_code_expires_the_previous_one(db, patient):
    assignment = _assign(db, patient, make_doctor(db, org=make_org(db)))
    first = assignments.request_consent_otp(db, assignment.id)
    assignments.request_consent_otp(db, assignment.id)
    db.expire_all()
    assert first.is_expired is True
    assert db.query(ConsentOtp).filter(ConsentOtp.is_expired.is_(False)).count() == 1


def test_wrong_codes_block_after_max_attempts(db, patient):
    assignment = _assign(db, patient, make_doctor(db, org=make_org(db)))
    otp = assignments.request_consent_otp(db, assignment.id)
    wrong = "000000" if otp.otp_code != "000000" else "111111"

    with pytest.raises(BusinessRuleError) as exc_info:
        assignments.verify_consent_otp(db, assignment.id, wrong)
    assert exc_info.value.extra["attempts_remaining"] == 2
    with pytest.raises(BusinessRuleError):
        assignments.verify_consent_otp(db, assignment.id, wrong)
    with pytest.raises(PermissionDeniedError):
        assignments.verify_consent_otp(db, assignment.id, wrong)

    # even the right code is refused once blocked
    with pytest.raises(PermissionDeniedError):
        assignments.verify_consent_otp(db, assignment.id, otp.otp_code)
    db.rollback()
    assert db.get(ConsentOtp, otp.id).is_blocked is True


def test_expired_code_rejected(db, patient):
    assignment = _assign(db, patient, make_doctor(db, org=make_org(db)))
    otp = assignments.request_consent_otp(db, assignment.id)
    later = utcnow() + timedelta(hours=1)
    with pytest.raises(BusinessRuleError, match="expired"):
        assignments.verify_consent_otp(db, assignment.id, otp.otp_code, now=later)
    assert otp.is_expired is True


def test_consent_not_required_for_same_org(db, org, patient):
    assignment = _assign(db, patient, make_doctor(db, org=org))
    with pytest.raises(BusinessRuleError):
        assignments.request_consent_otp(db, assignment.id)


def test_deactivated_assignment_revokes_access(db, org, patient):
    colleague = make_doctor(db, org=org)
    assignment = _assign(db, patient, colleague)
    assignments.deactivate_assignment(db, assignment.id)
    assert not assignments.has_patient_access(db, colleague.user, patient)
    assert assignments.list_assignments(db, patient.id, active_only=True) == []


def test_access_by_role(db, org, primary, patient):
    assert assignments.has_patient_access(db, primary.user, patient)
    assert assignments.has_patient_access(db, make_admin(db), patient)
    assert assignments.has_patient_access(db, make_user(db, "HSP", org=org), patient)
    assert not assignments.has_patient_access(db, make_user(db, "HSP", org=make_org(db)), patient)
    assert not assignments.has_patient_access(db, make_user(db, "PATIENT"), patient)
    assert assignments.has_patient_access(db, patient.user, patient)
