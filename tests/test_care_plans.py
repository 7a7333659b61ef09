"""Tests for care plans and treatment plans."""

from datetime import date, timedelta

import pytest
from dateutil.relativedelta import relativedelta

from carehub.errors import BusinessRuleError, PermissionDeniedError, SchemaValidationError
from carehub.models.database import utcnow
from carehub.services import care_plans
from factories import make_doctor, make_hsp, make_patient


def test_create_care_plan_defaults(db):
    doctor = make_doctor(db)
    patient = make_patient(db, primary_doctor=doctor)
    plan = care_plans.create_care_plan(
        db, patient=patient, creator=doctor, chronic_conditions=["diabetes", "hypertension"],
        start_date=date(2026, 1, 31),
    )
    assert plan.title == "Care Plan for diabetes, hypertension"
    assert plan.created_by_doctor_id == doctor.id
    assert plan.status == "ACTIVE"
    assert plan.next_review_date == date(2026, 4, 30)


def test_unverified_provider_cannot_create(db):
    doctor = make_doctor(db, verified=False)
    patient = make_patient(db)
    with pytest.raises(PermissionDeniedError):
        care_plans.create_care_plan(db, patient=patient, creator=doctor)


def test_nurse_without_capability_cannot_create(db):
    nurse = make_hsp(db)
    with pytest.raises(PermissionDeniedError):
        care_plans.create_care_plan(db, patient=make_patient(db), creator=nurse)


def test_nurse_practitioner_can_create(db):
    np_ = make_hsp(db, hsp_type="nurse_practitioner")
    plan = care_plans.create_care_plan(db, patient=make_patient(db), creator=np_)
    assert plan.created_by_hsp_id == np_.id


def test_missing_creator_rejected(db):
    with pytest.raises(BusinessRuleError):
        care_plans.create_care_plan(db, patient=make_patient(db), creator=None)


@pytest.mark.parametrize("frequency", [0, 13])
def test_review_frequency_bounds(db, frequency):
    with pytest.raises(BusinessRuleError):
        care_plans.create_care_plan(
            db, patient=make_patient(db), creator=make_doctor(db), review_frequency_months=frequency
        )


def test_structured_fields_report_every_error(db):
    with pytest.raises(SchemaValidationError) as exc_info:
        care_plans.create_care_plan(
            db,
            patient=make_patient(db),
            creator=make_doctor(db),
            long_term_goals=[{"status": "in_progress"}],
            monitoring_parameters=[{"parameter": "bp", "frequency": "hourly"}],
        )
    errors = exc_info.value.errors
    assert any(e.startswith("long_term_goals.") for e in errors)
    assert any(e.startswith("monitoring_parameters.") for e in errors)


def test_frequency_change_reschedules_review(db):
    plan = care_plans.create_care_plan(db, patient=make_patient(db), creator=make_doctor(db))
    care_plans.update_care_plan(db, plan, review_frequency_months=6, priority="HIGH")
    assert plan.next_review_date == date.today() + relativedelta(months=6)
    assert plan.priority == "HIGH"
    with pytest.raises(BusinessRuleError):
        care_plans.update_care_plan(db, plan, status="ARCHIVED")


def test_progress_notes_and_outcomes(db):
    doctor = make_doctor(db)
    plan = care_plans.create_care_plan(db, patient=make_patient(db), creator=doctor)
    note = care_plans.add_progress_note(db, plan, "Stable", doctor.user_id, "doctor")
    care_plans.record_outcome_measure(db, plan, "hba1c", 7.1)
    care_plans.record_outcome_measure(db, plan, "hba1c", 6.8)
    assert plan.progress_notes[-1]["id"] == note["id"]
    assert [m["value"] for m in plan.outcome_measures["hba1c"]] == [7.1, 6.8]


def test_soft_delete_hides_plan(db):
    patient = make_patient(db)
    plan = care_plans.create_care_plan(db, patient=patient, creator=make_doctor(db))
    care_plans.soft_delete_care_plan(db, plan)
    assert care_plans.list_care_plans(db, patient.id) == []


def test_plans_due_for_review(db):
    plan = care_plans.create_care_plan(
        db, patient=make_patient(db), creator=make_doctor(db),
        next_review_date=date.today() - timedelta(days=1),
    )
    assert care_plans.care_plans_due_for_review(db) == [plan]


# ---------------------------------------------------------------------------
# Treatment plans
# ---------------------------------------------------------------------------

def test_treatment_plan_dates_derived_from_duration(db):
    start = utcnow()
    plan = care_plans.create_treatment_plan(
        db, patient=make_patient(db), doctor=make_doctor(db),
        primary_diagnosis="Bronchitis", start_date=start, expected_duration_days=10,
    )
    assert plan.title == "Treatment for Bronchitis"
    assert plan.end_date == start + timedelta(days=10)
    assert plan.follow_up_date == start + timedelta(days=7)
    assert plan.days_remaining(start) == 10


def test_treatment_plan_duration_bounds(db):
    with pytest.raises(BusinessRuleError):
        care_plans.create_treatment_plan(
            db, patient=make_patient(db), doctor=make_doctor(db),
            primary_diagnosis="Flu", expected_duration_days=400,
        )


def test_progress_is_clamped_and_completes(db):
    plan = care_plans.create_treatment_plan(
        db, patient=make_patient(db), doctor=make_doctor(db), primary_diagnosis="Flu"
    )
    care_plans.update_progress(db, plan, -5)
    assert plan.completion_percentage == 0
    care_plans.update_progress(db, plan, 150)
    assert plan.completion_percentage == 100
    assert plan.status == "COMPLETED"


def test_overdue_plans_are_completed(db):
    start = utcnow() - timedelta(days=20)
    plan = care_plans.create_treatment_plan(
        db, patient=make_patient(db), doctor=make_doctor(db),
        primary_diagnosis="Sprain", start_date=start, expected_duration_days=5,
    )
    assert plan.is_overdue()
    assert care_plans.complete_overdue_treatment_plans(db) == 1
    assert plan.status == "COMPLETED"
    assert plan.completion_percentage == 100
