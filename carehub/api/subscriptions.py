"""Service plans, patient subscriptions, payment methods and gateway notifications."""

from __future__ import annotations

import logging
import secrets
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user, load_patient, require_roles
from carehub.config import settings
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.schemas.api import (
    PaymentMethodCreate,
    PaymentMethodResponse,
    PaymentRequest,
    PaymentResponse,
    ServicePlanCreate,
    ServicePlanResponse,
    ServicePlanUpdate,
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionResponse,
)
from carehub.services import profiles, subscriptions

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])


def _own_plan_doctor(db: Session, user: User):
    doctor = profiles.doctor_for_user(db, user)
    if doctor is None:
        raise HTTPException(status_code=404, detail="No doctor profile for this account")
    return doctor


# ---------------------------------------------------------------------------
# Service plans
# ---------------------------------------------------------------------------

@router.post("/service-plans", response_model=ServicePlanResponse, status_code=status.HTTP_201_CREATED)
def create_service_plan(
    body: ServicePlanCreate,
    user: User = Depends(require_roles(UserRole.DOCTOR)),
    db: Session = Depends(get_db),
):
    doctor = _own_plan_doctor(db, user)
    plan = subscriptions.create_service_plan(db, provider_id=doctor.id, **body.model_dump())
    db.commit()
    return plan


@router.get("/service-plans", response_model=list[ServicePlanResponse])
def list_service_plans(
    provider_id: UUID | None = None,
    active_only: bool = True,
    limit: int = 50,
    offset: int = 0,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return subscriptions.list_service_plans(
        db, provider_id=provider_id, active_only=active_only, limit=min(limit, 200), offset=offset
    )


@router.get("/service-plans/{plan_id}", response_model=ServicePlanResponse)
def get_service_plan(plan_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return subscriptions.get_service_plan(db, plan_id)


@router.patch("/service-plans/{plan_id}", response_model=ServicePlanResponse)
def update_service_plan(
    plan_id: UUID,
    body: ServicePlanUpdate,
    user: User = Depends(require_roles(UserRole.DOCTOR)),
    db: Session = Depends(get_db),
):
    plan = subscriptions.get_service_plan(db, plan_id)
    if plan.provider_id != _own_plan_doctor(db, user).id:
        raise HTTPException(status_code=403, detail="Cannot modify another provider's plan")
    subscriptions.update_service_plan(db, plan, **body.model_dump(exclude_unset=True))
    db.commit()
    return plan


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def create_subscription(
    body: SubscriptionCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    subscription = subscriptions.create_subscription(db, **body.model_dump())
    audit(db, request, user, action="create", resource_type="Subscription",
          resource_id=subscription.id, patient_id=patient.id)
    db.commit()
    return subscription


@router.get("/patients/{patient_id}/subscriptions", response_model=list[SubscriptionResponse])
def list_subscriptions(
    patient_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    return subscriptions.list_subscriptions(db, patient.id)


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    subscription = subscriptions.get_subscription(db, subscription_id)
    load_patient(db, request, user, subscription.patient_id)
    return subscription


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
def cancel_subscription(
    subscription_id: UUID,
    body: SubscriptionCancel,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    subscription = subscriptions.get_subscription(db, subscription_id)
    load_patient(db, request, user, subscription.patient_id)
    subscriptions.cancel_subscription(db, subscription.id, body.reason, body.at_period_end)
    audit(db, request, user, action="cancel", resource_type="Subscription",
          resource_id=subscription.id, patient_id=subscription.patient_id)
    db.commit()
    return subscription


@router.post("/subscriptions/{subscription_id}/reactivate", response_model=SubscriptionResponse)
def reactivate_subscription(
    subscription_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    subscription = subscriptions.get_subscription(db, subscription_id)
    load_patient(db, request, user, subscription.patient_id)
    subscriptions.reactivate_subscription(db, subscription.id)
    audit(db, request, user, action="update", resource_type="Subscription",
          resource_id=subscription.id, patient_id=subscription.patient_id)
    db.commit()
    return subscription


@router.post(
    "/subscriptions/{subscription_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    subscription_id: UUID,
    body: PaymentRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    subscription = subscriptions.get_subscription(db, subscription_id)
    load_patient(db, request, user, subscription.patient_id)
    payment = subscriptions.record_payment(db, subscription.id, body.amount, body.payment_method_id)
    audit(db, request, user, action="create", resource_type="Payment",
          resource_id=payment.id, patient_id=subscription.patient_id)
    db.commit()
    return payment


# ---------------------------------------------------------------------------
# Payment methods
# ---------------------------------------------------------------------------

@router.post("/payment-methods", response_model=PaymentMethodResponse, status_code=status.HTTP_201_CREATED)
def add_payment_method(
    body: PaymentMethodCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    method = subscriptions.add_payment_method(db, **body.model_dump())
    audit(db, request, user, action="create", resource_type="PaymentMethod",
          resource_id=method.id, patient_id=patient.id)
    db.commit()
    return method


@router.get("/patients/{patient_id}/payment-methods", response_model=list[PaymentMethodResponse])
def list_payment_methods(
    patient_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    return subscriptions.list_payment_methods(db, patient.id)


@router.delete("/payment-methods/{method_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_payment_method(
    method_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    method = subscriptions.get_payment_method(db, method_id)
    patient_id = method.patient_id
    load_patient(db, request, user, patient_id)
    subscriptions.remove_payment_method(db, method.id)
    audit(db, request, user, action="delete", resource_type="PaymentMethod",
          resource_id=method_id, patient_id=patient_id)
    db.commit()


# ---------------------------------------------------------------------------
# Gateway notifications
# ---------------------------------------------------------------------------

@router.post("/billing/events")
def billing_event(
    event: dict[str, Any] = Body(...),
    x_billing_token: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    """Receive an invoice or subscription lifecycle notification from the payment gateway."""
    expected = settings.BILLING_WEBHOOK_TOKEN
    if expected and not secrets.compare_digest(x_billing_token or "", expected):
        logger.warning("Rejected billing event with a bad token")
        raise HTTPException(status_code=401, detail="Invalid billing token")
    result = subscriptions.handle_billing_event(db, event)
    db.commit()
    return result
