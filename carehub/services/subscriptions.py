"""
Provider service plans, patient subscriptions and payments.

There is no gateway SDK in the loop: payment methods carry the token a
gateway issued, and invoice or subscription lifecycle notifications come
in through ``handle_billing_event``.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from carehub.errors import BusinessRuleError, NotFoundError
from carehub.models.accounts import Doctor, Patient
from carehub.models.billing import Payment, PaymentMethod, PatientSubscription, ServicePlan
from carehub.models.database import utcnow
from carehub.models.enums import BillingCycle, SubscriptionStatus
from carehub.schemas.clinical import BILLING_EVENT_SCHEMA
from carehub.services.validation import ensure_valid

logger = logging.getLogger(__name__)

BILLING_PERIODS = {
    BillingCycle.WEEKLY.value: relativedelta(days=7),
    BillingCycle.MONTHLY.value: relativedelta(months=1),
    BillingCycle.YEARLY.value: relativedelta(years=1),
}


def period_end_for(cycle: str, start: date) -> date:
    return start + BILLING_PERIODS.get(cycle, relativedelta(months=1))


# ---------------------------------------------------------------------------
# Service plans
# ---------------------------------------------------------------------------

def create_service_plan(db: Session, *, provider_id: UUID, name: str, price: float, **fields: Any) -> ServicePlan:
    if db.query(Doctor).filter(Doctor.id == provider_id).first() is None:
        raise NotFoundError("Provider not found")
    if price < 0:
        raise BusinessRuleError("price must not be negative")
    cycle = fields.get("billing_cycle")
    if cycle is not None and cycle not in {c.value for c in BillingCycle}:
        raise BusinessRuleError(f"Invalid billing cycle: {cycle}")
    plan = ServicePlan(provider_id=provider_id, name=name, price=price)
    for key, value in fields.items():
        if value is not None and hasattr(plan, key):
            setattr(plan, key, value)
    db.add(plan)
    db.flush()
    return plan


def get_service_plan(db: Session, plan_id: UUID) -> ServicePlan:
    plan = db.query(ServicePlan).filter(ServicePlan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Service plan not found")
    return plan


def update_service_plan(db: Session, plan: ServicePlan, **fields: Any) -> ServicePlan:
    for key, value in fields.items():
        if value is not None and hasattr(plan, key):
            setattr(plan, key, value)
    db.flush()
    return plan


def list_service_plans(
    db: Session,
    provider_id: UUID | None = None,
    active_only: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> list[ServicePlan]:
    query = db.query(ServicePlan)
    if provider_id is not None:
        query = query.filter(ServicePlan.provider_id == provider_id)
    if active_only:
        query = query.filter(ServicePlan.is_active.is_(True))
    return query.order_by(ServicePlan.created_at.desc()).offset(offset).limit(limit).all()


# ---------------------------------------------------------------------------
# Payment methods
# ---------------------------------------------------------------------------

def add_payment_method(db: Session, patient_id: UUID, *, is_default: bool = False, **fields: Any) -> PaymentMethod:
    if db.query(Patient).filter(Patient.id == patient_id).first() is None:
        raise NotFoundError("Patient not found")
    has_methods = (
        db.query(PaymentMethod).filter(PaymentMethod.patient_id == patient_id).first() is not None
    )
    if is_default:
        db.query(PaymentMethod).filter(
            PaymentMethod.patient_id == patient_id, PaymentMethod.is_default.is_(True)
        ).update({PaymentMethod.is_default: False}, synchronize_session=False)

    method = PaymentMethod(patient_id=patient_id, is_default=is_default or not has_methods)
    for key, value in fields.items():
        if value is not None and hasattr(method, key):
            setattr(method, key, value)
    db.add(method)
    db.flush()
    return method


def list_payment_methods(db: Session, patient_id: UUID) -> list[PaymentMethod]:
    return (
        db.query(PaymentMethod)
        .filter(PaymentMethod.patient_id == patient_id)
        .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
        .all()
    )


def get_payment_method(db: Session, method_id: UUID) -> PaymentMethod:
    method = db.query(PaymentMethod).filter(PaymentMethod.id == method_id).first()
    if not method:
        raise NotFoundError("Payment method not found")
    return method


def remove_payment_method(db: Session, method_id: UUID) -> None:
    method = get_payment_method(db, method_id)
    db.query(PatientSubscription).filter(
        PatientSubscription.payment_method_id == method.id
    ).update({PatientSubscription.payment_method_id: None}, synchronize_session=False)
    db.delete(method)
    db.flush()


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

def create_subscription(
    db: Session,
    *,
    patient_id: UUID,
    plan_id: UUID,
    provider_id: UUID | None = None,
    payment_method_id: UUID | None = None,
    gateway_subscription_id: str | None = None,
    start: date | None = None,
) -> PatientSubscription:
    plan = (
        db.query(ServicePlan)
        .filter(ServicePlan.id == plan_id, ServicePlan.is_active.is_(True))
        .first()
    )
    if not plan:
        raise NotFoundError("Service plan not found or inactive")
    if db.query(Patient).filter(Patient.id == patient_id).first() is None:
        raise NotFoundError("Patient not found")

    start = start or date.today()
    period_end = period_end_for(plan.billing_cycle, start)
    subscription = PatientSubscription(
        patient_id=patient_id,
        provider_id=provider_id or plan.provider_id,
        service_plan_id=plan.id,
        payment_method_id=payment_method_id,
        gateway_subscription_id=gateway_subscription_id,
        current_period_start=start,
        current_period_end=period_end,
        extra={},
    )
    if plan.trial_period_days:
        subscription.status = SubscriptionStatus.TRIALING.value
        subscription.trial_start = start
        subscription.trial_end = start + timedelta(days=plan.trial_period_days)
        subscription.next_billing_date = subscription.trial_end
    else:
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.next_billing_date = period_end
    db.add(subscription)
    db.flush()
    logger.info("Subscription %s created (%s) for patient %s", subscription.id, subscription.status, patient_id)
    return subscription


def get_subscription(db: Session, subscription_id: UUID) -> PatientSubscription:
    subscription = (
        db.query(PatientSubscription).filter(PatientSubscription.id == subscription_id).first()
    )
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription


def list_subscriptions(db: Session, patient_id: UUID) -> list[PatientSubscription]:
    return (
        db.query(PatientSubscription)
        .filter(PatientSubscription.patient_id == patient_id)
        .order_by(PatientSubscription.created_at.desc())
        .all()
    )


def cancel_subscription(
    db: Session, subscription_id: UUID, reason: str | None = None, at_period_end: bool = True
) -> PatientSubscription:
    subscription = get_subscription(db, subscription_id)
    subscription.status = SubscriptionStatus.CANCELLED.value
    subscription.cancelled_at = utcnow()
    subscription.extra = {
        **(subscription.extra or {}),
        "cancellation_reason": reason,
        "cancel_at_period_end": at_period_end,
    }
    if not at_period_end:
        subscription.current_period_end = date.today()
    db.flush()
    logger.info("Subscription %s cancelled", subscription.id)
    return subscription


def reactivate_subscription(db: Session, subscription_id: UUID) -> PatientSubscription:
    subscription = get_subscription(db, subscription_id)
    if subscription.status != SubscriptionStatus.CANCELLED.value:
        raise BusinessRuleError("Only cancelled subscriptions can be reactivated")
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.cancelled_at = None
    subscription.extra = {**(subscription.extra or {}), "reactivated_at": utcnow().isoformat()}
    db.flush()
    return subscription


def record_payment(
    db: Session, subscription_id: UUID, amount: float, payment_method_id: UUID | None = None
) -> Payment:
    subscription = get_subscription(db, subscription_id)
    method_id = payment_method_id or subscription.payment_method_id
    query = db.query(PaymentMethod).filter(PaymentMethod.patient_id == subscription.patient_id)
    if method_id is not None:
        method = query.filter(PaymentMethod.id == method_id).first()
    else:
        method = query.filter(PaymentMethod.is_default.is_(True)).first()
    if method is None:
        raise NotFoundError("No payment method available")

    now = utcnow()
    payment = Payment(
        subscription_id=subscription.id,
        patient_id=subscription.patient_id,
        provider_id=subscription.provider_id,
        amount=amount,
        payment_method=method.type,
        status="succeeded",
        processed_at=now,
    )
    db.add(payment)
    subscription.last_payment_date = now
    subscription.last_payment_amount = amount
    subscription.failure_count = 0
    db.flush()
    return payment


# ---------------------------------------------------------------------------
# Gateway notifications
# ---------------------------------------------------------------------------

def handle_billing_event(db: Session, event: dict[str, Any]) -> dict[str, Any]:
    """Apply an invoice or subscription lifecycle notification."""
    ensure_valid(event, BILLING_EVENT_SCHEMA, "billing event")
    event_type = event["type"]
    payload = event["data"]["object"]

    handlers = {
        "invoice.payment_succeeded": _invoice_paid,
        "invoice.payment_failed": _invoice_failed,
        "customer.subscription.deleted": _gateway_subscription_deleted,
    }
    handler = handlers.get(event_type)
    if handler is None:
        logger.info("Ignoring unhandled billing event type %s", event_type)
        return {"handled": False, "type": event_type}

    reference = payload.get("subscription") if event_type.startswith("invoice.") else payload.get("id")
    subscription = (
        db.query(PatientSubscription)
        .filter(PatientSubscription.gateway_subscription_id == reference)
        .first()
    ) if reference else None
    if subscription is None:
        logger.warning("Billing event %s references unknown subscription %s", event_type, reference)
        return {"handled": False, "type": event_type}

    handler(subscription, payload, db)
    db.flush()
    return {"handled": True, "type": event_type, "subscription_id": str(subscription.id)}


def _invoice_paid(subscription: PatientSubscription, payload: dict, db: Session) -> None:
    amount = payload.get("amount_paid", 0) / 100
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.last_payment_date = utcnow()
    subscription.last_payment_amount = amount
    subscription.failure_count = 0


def _invoice_failed(subscription: PatientSubscription, payload: dict, db: Session) -> None:
    subscription.status = SubscriptionStatus.PAST_DUE.value
    subscription.failure_count = (subscription.failure_count or 0) + 1
    db.add(
        Payment(
            subscription_id=subscription.id,
            patient_id=subscription.patient_id,
            provider_id=subscription.provider_id,
            amount=payload.get("amount_due", 0) / 100,
            status="failed",
            failure_code=payload.get("failure_code"),
            failure_message=payload.get("failure_message"),
            processed_at=utcnow(),
        )
    )
    logger.warning("Payment failed for subscription %s (%d failures)", subscription.id, subscription.failure_count)


def _gateway_subscription_deleted(subscription: PatientSubscription, payload: dict, db: Session) -> None:
    subscription.status = SubscriptionStatus.CANCELLED.value
    subscription.cancelled_at = utcnow()
