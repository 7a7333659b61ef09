"""Tests for the nightly maintenance pipeline."""

from datetime import date, datetime, time, timedelta

from carehub.jobs import maintenance
from carehub.models.audit import MaintenanceRun
from carehub.models.database import utcnow
from carehub.services import care_plans, medications, scheduling
from factories import make_doctor, make_medicine, make_patient


def _seed(db):
    doctor = make_doctor(db)
    patient = make_patient(db, primary_doctor=doctor)
    today = date.today()
    medications.create_medication(
        db, patient=patient, organizer=doctor, medicine_id=make_medicine(db).id,
        start_date=today - timedelta(days=3), end_date=today - timedelta(days=2),
    )
    care_plans.create_treatment_plan(
        db, patient=patient, doctor=doctor, primary_diagnosis="Sprain",
        start_date=utcnow() - timedelta(days=10), expected_duration_days=3,
    )
    care_plans.create_care_plan(
        db, patient=patient, creator=doctor, next_review_date=today - timedelta(days=1)
    )


def test_pipeline_shape():
    graph = maintenance.build_maintenance_pipeline()
    order = graph.execution_order()
    assert order.index("expire_events") < order.index("mark_missed_adherence")
    assert set(order) == {
        "expire_events",
        "mark_missed_adherence",
        "complete_treatment_plans",
        "flag_care_plan_reviews",
        "enforce_retention",
    }


def test_run_maintenance_records_counts(db):
    _seed(db)
    run = maintenance.run_maintenance(db, now=datetime.combine(date.today(), time(12)))

    assert run.status == "completed"
    assert run.record_counts == {
        "expired_events": 2,
        "missed_adherence_records": 2,
        "completed_treatment_plans": 1,
        "care_plans_due_for_review": 1,
        "audit_logs_purged": 0,
        "consent_otps_purged": 0,
    }
    # reviews are reported, not changed
    assert run.affected_rows == 5
    assert run.dag_definition["steps"]["mark_missed_adherence"]["depends_on"] == ["expire_events"]
    assert db.query(MaintenanceRun).count() == 1


def test_failed_step_skips_dependents_only(db, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(scheduling, "expire_stale_events", boom)
    _seed(db)
    run = maintenance.run_maintenance(db)

    assert run.status == "failed"
    assert run.tasks["expire_events"]["status"] == "failed"
    assert run.tasks["expire_events"]["error"] == "database unavailable"
    assert run.tasks["mark_missed_adherence"]["status"] == "skipped"
    assert run.tasks["complete_treatment_plans"]["status"] == "success"
    assert "expired_events" not in run.record_counts
