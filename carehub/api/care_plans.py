"""Care plan and treatment plan endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, load_patient, require_hipaa_consent, require_provider, require_roles
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.schemas.api import (
    CarePlanCreate,
    CarePlanUpdate,
    OutcomeMeasureRequest,
    ProgressNoteRequest,
    ProgressUpdate,
    TreatmentPlanCreate,
    TreatmentPlanUpdate,
)
from carehub.services import care_plans, profiles

router = APIRouter(tags=["care plans"])


# ---------------------------------------------------------------------------
# Care plans
# ---------------------------------------------------------------------------

@router.post("/care-plans", status_code=status.HTTP_201_CREATED)
def create_care_plan(
    body: CarePlanCreate,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    fields = body.model_dump(exclude={"patient_id"})
    plan = care_plans.create_care_plan(
        db, patient=patient, creator=profiles.provider_for_user(db, user), **fields
    )
    audit(db, request, user, action="create", resource_type="CarePlan",
          resource_id=plan.id, patient_id=patient.id)
    db.commit()
    return care_plans.serialize_care_plan(plan)


@router.get("/patients/{patient_id}/care-plans")
def list_care_plans(
    patient_id: UUID,
    request: Request,
    status_filter: str | None = None,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    plans = care_plans.list_care_plans(db, patient.id, status=status_filter)
    audit(db, request, user, action="list", resource_type="CarePlan", patient_id=patient.id)
    db.commit()
    return [care_plans.serialize_care_plan(p) for p in plans]


@router.get("/care-plans/{plan_id}")
def get_care_plan(
    plan_id: UUID,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_care_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    audit(db, request, user, action="read", resource_type="CarePlan",
          resource_id=plan.id, patient_id=plan.patient_id)
    db.commit()
    return care_plans.serialize_care_plan(plan)


@router.patch("/care-plans/{plan_id}")
def update_care_plan(
    plan_id: UUID,
    body: CarePlanUpdate,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_care_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    changes = body.model_dump(exclude_unset=True)
    care_plans.update_care_plan(db, plan, **changes)
    audit(db, request, user, action="update", resource_type="CarePlan",
          resource_id=plan.id, patient_id=plan.patient_id, detail={"fields": sorted(changes)})
    db.commit()
    return care_plans.serialize_care_plan(plan)


@router.delete("/care-plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_care_plan(
    plan_id: UUID,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_care_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    care_plans.soft_delete_care_plan(db, plan)
    audit(db, request, user, action="delete", resource_type="CarePlan",
          resource_id=plan.id, patient_id=plan.patient_id)
    db.commit()


@router.post("/care-plans/{plan_id}/progress-notes", status_code=status.HTTP_201_CREATED)
def add_care_plan_note(
    plan_id: UUID,
    body: ProgressNoteRequest,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_care_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    entry = care_plans.add_progress_note(db, plan, body.note, user.id, user.role.lower())
    audit(db, request, user, action="update", resource_type="CarePlan",
          resource_id=plan.id, patient_id=plan.patient_id)
    db.commit()
    return entry


@router.post("/care-plans/{plan_id}/outcomes", status_code=status.HTTP_201_CREATED)
def record_outcome(
    plan_id: UUID,
    body: OutcomeMeasureRequest,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_care_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    entry = care_plans.record_outcome_measure(db, plan, body.measure, body.value)
    audit(db, request, user, action="update", resource_type="CarePlan",
          resource_id=plan.id, patient_id=plan.patient_id)
    db.commit()
    return entry


# ---------------------------------------------------------------------------
# Treatment plans
# ---------------------------------------------------------------------------

@router.post("/treatment-plans", status_code=status.HTTP_201_CREATED)
def create_treatment_plan(
    body: TreatmentPlanCreate,
    request: Request,
    user: User = Depends(require_roles(UserRole.DOCTOR)),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    doctor = profiles.doctor_for_user(db, user)
    if doctor is None:
        raise HTTPException(status_code=404, detail="No doctor profile for this account")
    plan = care_plans.create_treatment_plan(
        db, patient=patient, doctor=doctor, **body.model_dump(exclude={"patient_id"})
    )
    audit(db, request, user, action="create", resource_type="TreatmentPlan",
          resource_id=plan.id, patient_id=patient.id)
    db.commit()
    return care_plans.serialize_treatment_plan(plan)


@router.get("/patients/{patient_id}/treatment-plans")
def list_treatment_plans(
    patient_id: UUID,
    request: Request,
    status_filter: str | None = None,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    plans = care_plans.list_treatment_plans(db, patient.id, status=status_filter)
    audit(db, request, user, action="list", resource_type="TreatmentPlan", patient_id=patient.id)
    db.commit()
    return [care_plans.serialize_treatment_plan(p) for p in plans]


@router.get("/treatment-plans/{plan_id}")
def get_treatment_plan(
    plan_id: UUID,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_treatment_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    audit(db, request, user, action="read", resource_type="TreatmentPlan",
          resource_id=plan.id, patient_id=plan.patient_id)
    db.commit()
    return care_plans.serialize_treatment_plan(plan)


@router.patch("/treatment-plans/{plan_id}")
def update_treatment_plan(
    plan_id: UUID,
    body: TreatmentPlanUpdate,
    request: Request,
    user: User = Depends(require_roles(UserRole.DOCTOR)),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_treatment_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    changes = body.model_dump(exclude_unset=True)
    care_plans.update_treatment_plan(db, plan, **changes)
    audit(db, request, user, action="update", resource_type="TreatmentPlan",
          resource_id=plan.id, patient_id=plan.patient_id, detail={"fields": sorted(changes)})
    db.commit()
    return care_plans.serialize_treatment_plan(plan)


@router.post("/treatment-plans/{plan_id}/progress")
def update_treatment_progress(
    plan_id: UUID,
    body: ProgressUpdate,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_treatment_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    care_plans.update_progress(db, plan, body.completion_percentage)
    audit(db, request, user, action="update", resource_type="TreatmentPlan",
          resource_id=plan.id, patient_id=plan.patient_id,
          detail={"completion_percentage": plan.completion_percentage})
    db.commit()
    return care_plans.serialize_treatment_plan(plan)


@router.post("/treatment-plans/{plan_id}/progress-notes", status_code=status.HTTP_201_CREATED)
def add_treatment_note(
    plan_id: UUID,
    body: ProgressNoteRequest,
    request: Request,
    user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    plan = care_plans.get_treatment_plan(db, plan_id)
    load_patient(db, request, user, plan.patient_id)
    entry = care_plans.add_progress_note(db, plan, body.note, user.id, user.role.lower())
    db.commit()
    return entry
