"""End-to-end tests through the HTTP API."""

from carehub.models.audit import AuditLog
from carehub.services import subscriptions
from factories import (
    PASSWORD,
    auth_headers,
    make_admin,
    make_doctor,
    make_org,
    make_patient,
)

API = "/api/v1"


def test_health(client):
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"
    assert "X-Request-ID" in response.headers


def test_register_login_and_me(client):
    response = client.post(
        f"{API}/auth/register",
        json={"email": "pat@example.com", "password": PASSWORD, "first_name": "Pat", "last_name": "Lee"},
    )
    assert response.status_code == 201
    assert response.json()["role"] == "PATIENT"

    response = client.post(f"{API}/auth/login", json={"email": "pat@example.com", "password": PASSWORD})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "pat@example.com"


def test_bad_login_is_401(client):
    response = client.post(f"{API}/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_missing_token_is_401(client):
    assert client.get(f"{API}/auth/me").status_code == 401


def test_patient_without_consent_is_gated(client, db):
    patient = make_patient(db, consent=False)
    headers = auth_headers(patient.user)
    db.commit()

    response = client.get(f"{API}/patients/me", headers=headers)
    assert response.status_code == 403
    assert response.json()["requires_consent"] is True

    listing = client.get(f"{API}/patients", headers=headers)
    assert listing.status_code == 403
    assert listing.json()["requires_consent"] is True

    assert client.post(f"{API}/auth/hipaa-consent", headers=headers).status_code == 200
    assert client.get(f"{API}/patients/me", headers=headers).status_code == 200

    db.expire_all()
    denials = db.query(AuditLog).filter(AuditLog.access_granted.is_(False)).all()
    assert len(denials) == 2


def test_unrelated_doctor_is_denied_and_audited(client, db):
    patient = make_patient(db, primary_doctor=make_doctor(db))
    stranger = make_doctor(db)
    headers = auth_headers(stranger.user)
    patient_id = patient.id
    db.commit()

    response = client.get(f"{API}/patients/{patient_id}", headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Additional verification required"
    denial = db.query(AuditLog).filter(AuditLog.access_granted.is_(False)).one()
    assert denial.patient_id == patient_id


def test_care_plan_flow(client, db):
    doctor = make_doctor(db)
    patient = make_patient(db, primary_doctor=doctor)
    doctor_headers = auth_headers(doctor.user)
    patient_headers = auth_headers(patient.user)
    patient_id = str(patient.id)
    db.commit()

    response = client.post(
        f"{API}/care-plans",
        json={"patient_id": patient_id, "chronic_conditions": ["asthma"], "review_frequency_months": 6},
        headers=doctor_headers,
    )
    assert response.status_code == 201, response.text
    plan = response.json()
    assert plan["title"] == "Care Plan for asthma"

    bad = client.post(
        f"{API}/care-plans",
        json={"patient_id": patient_id, "monitoring_parameters": [{"parameter": "peak_flow"}]},
        headers=doctor_headers,
    )
    assert bad.status_code == 422
    assert bad.json()["error"] == "validation_failed"

    listed = client.get(f"{API}/patients/{patient_id}/care-plans", headers=patient_headers)
    assert [p["id"] for p in listed.json()] == [plan["id"]]

    # patients cannot author plans
    forbidden = client.post(f"{API}/care-plans", json={"patient_id": patient_id}, headers=patient_headers)
    assert forbidden.status_code == 403


def test_patient_dashboard(client, db):
    patient = make_patient(db)
    headers = auth_headers(patient.user)
    db.commit()
    body = client.get(f"{API}/patients/me/dashboard", headers=headers).json()
    assert body["active_medications"] == 0
    assert body["adherence"]["total"] == 0


def test_billing_event_webhook(client, db):
    doctor = make_doctor(db)
    patient = make_patient(db, primary_doctor=doctor)
    plan = subscriptions.create_service_plan(db, provider_id=doctor.id, name="Basic", price=20.0)
    subscription = subscriptions.create_subscription(
        db, patient_id=patient.id, plan_id=plan.id, gateway_subscription_id="sub_api"
    )
    subscription_id = subscription.id
    db.commit()

    response = client.post(
        f"{API}/billing/events",
        json={"type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_api", "amount_due": 2000}}},
    )
    assert response.status_code == 200
    assert response.json()["handled"] is True
    db.expire_all()
    assert subscriptions.get_subscription(db, subscription_id).status == "PAST_DUE"

    malformed = client.post(f"{API}/billing/events", json={"type": "invoice.payment_failed"})
    assert malformed.status_code == 422


def test_admin_audit_logs_scoped_to_organization(client, db):
    org = make_org(db)
    other = make_org(db)
    hospital_admin = make_admin(db, org=org, role="HOSPITAL_ADMIN")
    db.add(AuditLog(actor="x", action="read", resource_type="Patient", organization_id=org.id))
    db.add(AuditLog(actor="y", action="read", resource_type="Patient", organization_id=other.id))
    headers = auth_headers(hospital_admin)
    db.commit()

    response = client.get(f"{API}/admin/audit-logs", headers=headers)
    assert response.status_code == 200
    assert [entry["actor"] for entry in response.json()] == ["x"]


def test_admin_without_baa_is_refused(client, db):
    org = make_org(db, baa=False)
    headers = auth_headers(make_admin(db, org=org, role="HOSPITAL_ADMIN"))
    db.commit()
    response = client.get(f"{API}/admin/audit-logs", headers=headers)
    assert response.status_code == 403
    assert response.json()["requires_baa"] is True


def test_maintenance_requires_system_admin(client, db):
    doctor_headers = auth_headers(make_doctor(db).user)
    admin_headers = auth_headers(make_admin(db))
    db.commit()

    assert client.post(f"{API}/admin/maintenance/run", headers=doctor_headers).status_code == 403
    response = client.post(f"{API}/admin/maintenance/run", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    runs = client.get(f"{API}/admin/maintenance/runs", headers=admin_headers).json()
    assert len(runs) == 1
