"""Tests for service plans, subscriptions and billing notifications."""

from datetime import date

import pytest

from carehub.errors import BusinessRuleError, NotFoundError, SchemaValidationError
from carehub.models.billing import Payment
from carehub.services import subscriptions
from factories import make_doctor, make_patient


@pytest.fixture
def doctor(db):
    return make_doctor(db)


@pytest.fixture
def patient(db, doctor):
    return make_patient(db, primary_doctor=doctor)


def _plan(db, doctor, **fields):
    return subscriptions.create_service_plan(db, provider_id=doctor.id, name="Chronic care", price=49.0, **fields)


def _subscribe(db, patient, plan, **kwargs):
    return subscriptions.create_subscription(
        db, patient_id=patient.id, plan_id=plan.id, start=date(2026, 1, 31), **kwargs
    )


@pytest.mark.parametrize(
    "cycle, expected",
    [("weekly", date(2026, 2, 7)), ("monthly", date(2026, 2, 28)), ("yearly", date(2027, 1, 31))],
)
def test_period_end_by_cycle(cycle, expected):
    assert subscriptions.period_end_for(cycle, date(2026, 1, 31)) == expected


def test_plan_validation(db, doctor):
    with pytest.raises(BusinessRuleError):
        _plan(db, doctor, billing_cycle="daily")
    with pytest.raises(BusinessRuleError):
        subscriptions.create_service_plan(db, provider_id=doctor.id, name="Free?", price=-1)


def test_list_plans_hides_inactive(db, doctor):
    active = _plan(db, doctor)
    retired = _plan(db, doctor)
    subscriptions.update_service_plan(db, retired, is_active=False)
    assert subscriptions.list_service_plans(db, provider_id=doctor.id) == [active]
    assert len(subscriptions.list_service_plans(db, active_only=False)) == 2


def test_subscription_without_trial_is_active(db, doctor, patient):
    subscription = _subscribe(db, patient, _plan(db, doctor))
    assert subscription.status == "ACTIVE"
    assert subscription.provider_id == doctor.id
    assert subscription.current_period_end == date(2026, 2, 28)
    assert subscription.next_billing_date == date(2026, 2, 28)


def test_trial_subscription(db, doctor, patient):
    subscription = _subscribe(db, patient, _plan(db, doctor, trial_period_days=14))
    assert subscription.status == "TRIALING"
    assert subscription.trial_end == date(2026, 2, 14)
    assert subscription.next_billing_date == date(2026, 2, 14)


def test_inactive_plan_cannot_be_subscribed(db, doctor, patient):
    plan = _plan(db, doctor, is_active=False)
    with pytest.raises(NotFoundError):
        _subscribe(db, patient, plan)


def test_cancel_and_reactivate(db, doctor, patient):
    subscription = _subscribe(db, patient, _plan(db, doctor))
    with pytest.raises(BusinessRuleError):
        subscriptions.reactivate_subscription(db, subscription.id)

    subscriptions.cancel_subscription(db, subscription.id, reason="moving", at_period_end=False)
    assert subscription.status == "CANCELLED"
    assert subscription.current_period_end == date.today()
    assert subscription.extra["cancellation_reason"] == "moving"

    subscriptions.reactivate_subscription(db, subscription.id)
    assert subscription.status == "ACTIVE"
    assert subscription.cancelled_at is None


def test_first_payment_method_becomes_default(db, patient):
    first = subscriptions.add_payment_method(db, patient.id, card_last4="4242")
    second = subscriptions.add_payment_method(db, patient.id, card_last4="1111", is_default=True)
    db.expire_all()
    assert first.is_default is False
    assert second.is_default is True
    assert subscriptions.list_payment_methods(db, patient.id)[0].id == second.id


def test_record_payment_uses_default_method(db, doctor, patient):
    subscription = _subscribe(db, patient, _plan(db, doctor))
    with pytest.raises(NotFoundError):
        subscriptions.record_payment(db, subscription.id, 49.0)

    subscriptions.add_payment_method(db, patient.id, type="card")
    payment = subscriptions.record_payment(db, subscription.id, 49.0)
    assert payment.status == "succeeded"
    assert payment.payment_method == "card"
    assert subscription.last_payment_amount == 49.0


def test_removing_method_detaches_subscription(db, doctor, patient):
    method = subscriptions.add_payment_method(db, patient.id)
    subscription = _subscribe(db, patient, _plan(db, doctor), payment_method_id=method.id)
    subscriptions.remove_payment_method(db, method.id)
    db.expire_all()
    assert subscription.payment_method_id is None


# ---------------------------------------------------------------------------
# Billing notifications
# ---------------------------------------------------------------------------

def _event(event_type, **payload):
    return {"id": "evt_1", "type": event_type, "data": {"object": payload}}


def test_invoice_failed_then_paid(db, doctor, patient):
    subscription = _subscribe(db, patient, _plan(db, doctor), gateway_subscription_id="sub_123")

    result = subscriptions.handle_billing_event(
        db, _event("invoice.payment_failed", subscription="sub_123", amount_due=4900, failure_code="card_declined")
    )
    assert result["handled"] is True
    assert subscription.status == "PAST_DUE"
    assert subscription.failure_count == 1
    failed = db.query(Payment).filter(Payment.subscription_id == subscription.id).one()
    assert failed.status == "failed"
    assert failed.amount == 49.0

    subscriptions.handle_billing_event(db, _event("invoice.payment_succeeded", subscription="sub_123", amount_paid=4900))
    assert subscription.status == "ACTIVE"
    assert subscription.failure_count == 0
    assert subscription.last_payment_amount == 49.0


def test_gateway_deletion_cancels(db, doctor, patient):
    subscription = _subscribe(db, patient, _plan(db, doctor), gateway_subscription_id="sub_9")
    subscriptions.handle_billing_event(db, _event("customer.subscription.deleted", id="sub_9"))
    assert subscription.status == "CANCELLED"


def test_unhandled_and_unknown_events_are_ignored(db):
    assert subscriptions.handle_billing_event(db, _event("charge.refunded"))["handled"] is False
    assert subscriptions.handle_billing_event(
        db, _event("invoice.payment_succeeded", subscription="sub_missing")
    )["handled"] is False


def test_malformed_event_rejected(db):
    with pytest.raises(SchemaValidationError):
        subscriptions.handle_billing_event(db, {"type": "invoice.payment_failed", "data": {}})
