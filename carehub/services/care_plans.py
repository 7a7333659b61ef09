"""
Care plans (long-term) and treatment plans (short-term).

Creators must hold the matching capability and be verified. Structured
list fields are checked against JSON Schemas; every violation is reported
in one SchemaValidationError.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carehub.errors import (
    BusinessRuleError,
    NotFoundError,
    PermissionDeniedError,
    SchemaValidationError,
)
from carehub.models.accounts import HSP, Doctor, Patient
from carehub.models.care import CarePlan, TreatmentPlan
from carehub.models.database import as_naive_utc, utcnow
from carehub.models.enums import PlanStatus, Priority
from carehub.schemas.clinical import (
    CARE_TEAM_SCHEMA,
    LONG_TERM_GOALS_SCHEMA,
    MONITORING_PARAMETERS_SCHEMA,
)
from carehub.services.validation import validate_against_schema

logger = logging.getLogger(__name__)

FOLLOW_UP_AFTER_DAYS = 7

STRUCTURED_FIELDS = {
    "long_term_goals": LONG_TERM_GOALS_SCHEMA,
    "monitoring_parameters": MONITORING_PARAMETERS_SCHEMA,
    "care_team_members": CARE_TEAM_SCHEMA,
}

PLAN_STATUSES = {s.value for s in PlanStatus}
PRIORITIES = {p.value for p in Priority}


def _check_structured_fields(fields: dict[str, Any]) -> None:
    errors = []
    for name, schema in STRUCTURED_FIELDS.items():
        if fields.get(name) is not None:
            errors.extend(f"{name}.{e}" for e in validate_against_schema(fields[name], schema))
    if errors:
        raise SchemaValidationError("Invalid care plan content", errors)


def _check_enum(value: str | None, allowed: set[str], label: str) -> None:
    if value is not None and value not in allowed:
        raise BusinessRuleError(f"Invalid {label}: {value}", allowed=sorted(allowed))


# ---------------------------------------------------------------------------
# Care plans
# ---------------------------------------------------------------------------

def create_care_plan(
    db: Session,
    *,
    patient: Patient,
    creator: Doctor | HSP,
    chronic_conditions: list[str] | None = None,
    title: str | None = None,
    start_date: date | None = None,
    review_frequency_months: int = 3,
    next_review_date: date | None = None,
    **fields: Any,
) -> CarePlan:
    if creator is None:
        raise BusinessRuleError("Care plan must have a doctor or HSP creator")
    if not creator.can_create_care_plans():
        raise PermissionDeniedError("Provider is not permitted to create care plans")
    if not 1 <= review_frequency_months <= 12:
        raise BusinessRuleError("review_frequency_months must be between 1 and 12")
    _check_structured_fields(fields)
    _check_enum(fields.get("status"), PLAN_STATUSES, "status")
    _check_enum(fields.get("priority"), PRIORITIES, "priority")

    conditions = chronic_conditions or []
    plan = CarePlan(
        patient_id=patient.id,
        organization_id=creator.organization_id or patient.organization_id,
        title=title or f"Care Plan for {', '.join(conditions)}",
        chronic_conditions=conditions,
        start_date=start_date or date.today(),
        review_frequency_months=review_frequency_months,
    )
    if isinstance(creator, Doctor):
        plan.created_by_doctor_id = creator.id
    else:
        plan.created_by_hsp_id = creator.id
    for name, value in fields.items():
        if value is not None and hasattr(plan, name):
            setattr(plan, name, value)

    if next_review_date is not None:
        plan.next_review_date = next_review_date
    else:
        plan.schedule_next_review(plan.start_date)

    db.add(plan)
    db.flush()
    logger.info("Care plan %s created for patient %s", plan.id, patient.id)
    return plan


def get_care_plan(db: Session, plan_id: UUID) -> CarePlan:
    plan = (
        db.query(CarePlan)
        .filter(CarePlan.id == plan_id, CarePlan.deleted_at.is_(None))
        .first()
    )
    if not plan:
        raise NotFoundError("Care plan not found")
    return plan


def list_care_plans(db: Session, patient_id: UUID, status: str | None = None) -> list[CarePlan]:
    query = db.query(CarePlan).filter(
        CarePlan.patient_id == patient_id, CarePlan.deleted_at.is_(None)
    )
    if status:
        query = query.filter(CarePlan.status == status)
    return query.order_by(CarePlan.created_at.desc()).all()


def update_care_plan(db: Session, plan: CarePlan, **fields: Any) -> CarePlan:
    _check_structured_fields(fields)
    _check_enum(fields.get("status"), PLAN_STATUSES, "status")
    _check_enum(fields.get("priority"), PRIORITIES, "priority")

    frequency = fields.pop("review_frequency_months", None)
    for name, value in fields.items():
        if value is not None and hasattr(plan, name):
            setattr(plan, name, value)
    if frequency is not None and frequency != plan.review_frequency_months:
        if not 1 <= frequency <= 12:
            raise BusinessRuleError("review_frequency_months must be between 1 and 12")
        plan.review_frequency_months = frequency
        plan.schedule_next_review(date.today())
    db.flush()
    return plan


def add_progress_note(
    db: Session, plan: CarePlan | TreatmentPlan, note: str, author_id: UUID, author_type: str
) -> dict[str, Any]:
    entry = {
        "id": str(uuid.uuid4()),
        "note": note,
        "author_id": str(author_id),
        "author_type": author_type,
        "timestamp": utcnow().isoformat(),
        "type": "progress",
    }
    # Reassign so the JSON column is flagged dirty.
    plan.progress_notes = [*(plan.progress_notes or []), entry]
    db.flush()
    return entry


def record_outcome_measure(db: Session, plan: CarePlan, measure: str, value: Any) -> dict[str, Any]:
    entry = {"id": str(uuid.uuid4()), "value": value, "date": utcnow().isoformat()}
    measures = dict(plan.outcome_measures or {})
    measures[measure] = [*measures.get(measure, []), entry]
    plan.outcome_measures = measures
    db.flush()
    return entry


def soft_delete_care_plan(db: Session, plan: CarePlan) -> None:
    plan.deleted_at = utcnow()
    plan.status = PlanStatus.CANCELLED.value
    db.flush()


def care_plans_due_for_review(db: Session, today: date | None = None) -> list[CarePlan]:
    today = today or date.today()
    return (
        db.query(CarePlan)
        .filter(
            CarePlan.status == PlanStatus.ACTIVE.value,
            CarePlan.deleted_at.is_(None),
            CarePlan.next_review_date.isnot(None),
            CarePlan.next_review_date <= today,
        )
        .all()
    )


def serialize_care_plan(plan: CarePlan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "patient_id": plan.patient_id,
        "title": plan.title,
        "description": plan.description,
        "chronic_conditions": plan.chronic_conditions or [],
        "long_term_goals": plan.long_term_goals or [],
        "interventions": plan.interventions or [],
        "monitoring_parameters": plan.monitoring_parameters or [],
        "target_values": plan.target_values or {},
        "medications": plan.medications or [],
        "care_team_members": plan.care_team_members or [],
        "progress_notes": plan.progress_notes or [],
        "outcome_measures": plan.outcome_measures or {},
        "start_date": plan.start_date,
        "end_date": plan.end_date,
        "review_frequency_months": plan.review_frequency_months,
        "next_review_date": plan.next_review_date,
        "is_due_for_review": plan.is_due_for_review(),
        "status": plan.status,
        "priority": plan.priority,
        "created_by_doctor_id": plan.created_by_doctor_id,
        "created_by_hsp_id": plan.created_by_hsp_id,
        "created_at": plan.created_at,
    }


# ---------------------------------------------------------------------------
# Treatment plans
# ---------------------------------------------------------------------------

def create_treatment_plan(
    db: Session,
    *,
    patient: Patient,
    doctor: Doctor,
    primary_diagnosis: str,
    title: str | None = None,
    start_date: datetime | None = None,
    expected_duration_days: int | None = None,
    end_date: datetime | None = None,
    follow_up_required: bool = True,
    follow_up_date: datetime | None = None,
    **fields: Any,
) -> TreatmentPlan:
    if not doctor.can_create_treatment_plans():
        raise PermissionDeniedError("Doctor is not permitted to create treatment plans")
    if expected_duration_days is not None and not 1 <= expected_duration_days <= 365:
        raise BusinessRuleError("expected_duration_days must be between 1 and 365")
    _check_enum(fields.get("status"), PLAN_STATUSES, "status")
    _check_enum(fields.get("priority"), PRIORITIES, "priority")

    start = as_naive_utc(start_date) or utcnow()
    end = as_naive_utc(end_date)
    if end is None and expected_duration_days:
        end = start + timedelta(days=expected_duration_days)
    follow_up = as_naive_utc(follow_up_date)
    if follow_up_required and follow_up is None:
        follow_up = start + timedelta(days=FOLLOW_UP_AFTER_DAYS)

    plan = TreatmentPlan(
        patient_id=patient.id,
        doctor_id=doctor.id,
        organization_id=doctor.organization_id or patient.organization_id,
        title=title or f"Treatment for {primary_diagnosis}",
        primary_diagnosis=primary_diagnosis,
        start_date=start,
        expected_duration_days=expected_duration_days,
        end_date=end,
        follow_up_required=follow_up_required,
        follow_up_date=follow_up,
    )
    for name, value in fields.items():
        if value is not None and hasattr(plan, name):
            setattr(plan, name, value)
    db.add(plan)
    db.flush()
    logger.info("Treatment plan %s created for patient %s", plan.id, patient.id)
    return plan


def get_treatment_plan(db: Session, plan_id: UUID) -> TreatmentPlan:
    plan = db.query(TreatmentPlan).filter(TreatmentPlan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Treatment plan not found")
    return plan


def list_treatment_plans(db: Session, patient_id: UUID, status: str | None = None) -> list[TreatmentPlan]:
    query = db.query(TreatmentPlan).filter(TreatmentPlan.patient_id == patient_id)
    if status:
        query = query.filter(TreatmentPlan.status == status)
    return query.order_by(TreatmentPlan.start_date.desc()).all()


def update_treatment_plan(db: Session, plan: TreatmentPlan, **fields: Any) -> TreatmentPlan:
    _check_enum(fields.get("status"), PLAN_STATUSES, "status")
    _check_enum(fields.get("priority"), PRIORITIES, "priority")
    for key in ("end_date", "follow_up_date"):
        if fields.get(key) is not None:
            fields[key] = as_naive_utc(fields[key])
    for name, value in fields.items():
        if value is not None and hasattr(plan, name):
            setattr(plan, name, value)
    db.flush()
    return plan


def update_progress(db: Session, plan: TreatmentPlan, percentage: int) -> TreatmentPlan:
    plan.completion_percentage = max(0, min(100, percentage))
    if plan.completion_percentage == 100:
        plan.status = PlanStatus.COMPLETED.value
    db.flush()
    return plan


def complete_overdue_treatment_plans(db: Session, now: datetime | None = None) -> int:
    now = now or utcnow()
    overdue = (
        db.query(TreatmentPlan)
        .filter(
            TreatmentPlan.status == PlanStatus.ACTIVE.value,
            TreatmentPlan.end_date.isnot(None),
            TreatmentPlan.end_date < now,
        )
        .all()
    )
    for plan in overdue:
        plan.status = PlanStatus.COMPLETED.value
        plan.completion_percentage = 100
    db.flush()
    return len(overdue)


def serialize_treatment_plan(plan: TreatmentPlan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "patient_id": plan.patient_id,
        "doctor_id": plan.doctor_id,
        "title": plan.title,
        "description": plan.description,
        "primary_diagnosis": plan.primary_diagnosis,
        "secondary_diagnoses": plan.secondary_diagnoses or [],
        "chief_complaint": plan.chief_complaint,
        "symptoms": plan.symptoms or [],
        "treatment_goals": plan.treatment_goals or [],
        "medications": plan.medications or [],
        "instructions": plan.instructions,
        "start_date": plan.start_date,
        "expected_duration_days": plan.expected_duration_days,
        "end_date": plan.end_date,
        "follow_up_required": plan.follow_up_required,
        "follow_up_date": plan.follow_up_date,
        "status": plan.status,
        "priority": plan.priority,
        "progress_notes": plan.progress_notes or [],
        "completion_percentage": plan.completion_percentage,
        "is_overdue": plan.is_overdue(),
        "days_remaining": plan.days_remaining(),
        "created_at": plan.created_at,
    }
