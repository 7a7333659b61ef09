"""Small builders for test data. Everything is flushed, not committed."""

import uuid
from datetime import timedelta

from carehub.models.accounts import Organization, User
from carehub.models.database import utcnow
from carehub.models.enums import AccountStatus, HSPType, UserRole
from carehub.models.medication import Medicine
from carehub.models.vitals import VitalType
from carehub.services import profiles
from carehub.services.security import create_access_token, hash_password

PASSWORD = "Str0ngPassw0rd"


def make_org(db, *, covered=False, baa=True, baa_expires_in_days=365):
    now = utcnow()
    org = Organization(
        name=f"Clinic {uuid.uuid4().hex[:6]}",
        hipaa_covered_entity=covered,
        baa_signed_at=now if baa else None,
        baa_expires_at=now + timedelta(days=baa_expires_in_days) if baa else None,
    )
    db.add(org)
    db.flush()
    return org


def make_user(db, role=UserRole.PATIENT.value, *, org=None, consent=True, hsp_type=None):
    user = profiles.register_user(
        db,
        email=f"{role.lower()}-{uuid.uuid4().hex[:8]}@example.com",
        password=PASSWORD,
        first_name="Test",
        last_name=role.title(),
        role=role,
        organization_id=org.id if org else None,
        hsp_type=hsp_type,
    )
    user.account_status = AccountStatus.ACTIVE.value
    if consent:
        user.hipaa_consent_date = utcnow()
    db.flush()
    return user


def make_admin(db, *, org=None, role=UserRole.SYSTEM_ADMIN.value):
    user = User(
        email=f"admin-{uuid.uuid4().hex[:8]}@example.com",
        password_hash=hash_password(PASSWORD),
        first_name="Ada",
        last_name="Admin",
        role=role,
        account_status=AccountStatus.ACTIVE.value,
        organization_id=org.id if org else None,
    )
    db.add(user)
    db.flush()
    return user


def make_doctor(db, *, org=None, verified=True):
    user = make_user(db, UserRole.DOCTOR.value, org=org)
    doctor = profiles.doctor_for_user(db, user)
    if verified:
        profiles.verify_doctor(db, doctor.id)
    return doctor


def make_hsp(db, *, org=None, hsp_type=HSPType.REGISTERED_NURSE.value, verified=True):
    user = make_user(db, UserRole.HSP.value, org=org, hsp_type=hsp_type)
    hsp = profiles.hsp_for_user(db, user)
    if verified:
        profiles.verify_hsp(db, hsp.id)
    return hsp


def make_patient(db, *, org=None, primary_doctor=None, consent=True):
    user = make_user(db, UserRole.PATIENT.value, org=org, consent=consent)
    patient = profiles.patient_for_user(db, user)
    if primary_doctor is not None:
        patient.primary_doctor_id = primary_doctor.id
        db.flush()
    return patient


def make_medicine(db, name="Metformin"):
    medicine = Medicine(name=name, type="tablet")
    db.add(medicine)
    db.flush()
    return medicine


def make_vital_type(db, name="heart_rate"):
    vital_type = VitalType(
        name=name,
        unit="bpm",
        normal_min=60,
        normal_max=100,
        critical_min=40,
        critical_max=140,
    )
    db.add(vital_type)
    db.flush()
    return vital_type


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}
