"""Provider service plans, patient subscriptions, payment methods and payments."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid

from carehub.models.database import Base, JSONType, utcnow
from carehub.models.enums import BillingCycle, SubscriptionStatus

Money = Numeric(10, 2, asdecimal=False)


class ServicePlan(Base):
    __tablename__ = "service_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("doctors.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Money, nullable=False)
    billing_cycle = Column(String(16), default=BillingCycle.MONTHLY.value, nullable=False)
    features = Column(JSONType, default=list)
    patient_limit = Column(Integer, nullable=True)
    trial_period_days = Column(Integer, default=0, nullable=False)
    setup_fee = Column(Money, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_service_plans_provider", "provider_id"),)


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False, default="card")
    gateway_reference = Column(String(255), nullable=True, comment="Token issued by the payment gateway")
    card_brand = Column(String(32))
    card_last4 = Column(String(4))
    card_exp_month = Column(Integer)
    card_exp_year = Column(Integer)
    bank_name = Column(String(128))
    bank_last4 = Column(String(4))
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class PatientSubscription(Base):
    __tablename__ = "patient_subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    provider_id = Column(Uuid, ForeignKey("doctors.id"), nullable=False)
    service_plan_id = Column(Uuid, ForeignKey("service_plans.id"), nullable=False)
    payment_method_id = Column(Uuid, ForeignKey("payment_methods.id"), nullable=True)
    status = Column(String(16), default=SubscriptionStatus.ACTIVE.value, nullable=False)
    current_period_start = Column(Date, nullable=False)
    current_period_end = Column(Date, nullable=False)
    next_billing_date = Column(Date, nullable=True)
    trial_start = Column(Date, nullable=True)
    trial_end = Column(Date, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    last_payment_date = Column(DateTime, nullable=True)
    last_payment_amount = Column(Money, nullable=True)
    failure_count = Column(Integer, default=0, nullable=False)
    gateway_subscription_id = Column(String(255), nullable=True, unique=True)
    extra = Column("metadata", JSONType, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_subscriptions_patient", "patient_id"),
        Index("ix_subscriptions_status", "status"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id = Column(Uuid, ForeignKey("patient_subscriptions.id"), nullable=True)
    patient_id = Column(Uuid, ForeignKey("patients.id"), nullable=False)
    provider_id = Column(Uuid, ForeignKey("doctors.id"), nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), default="usd", nullable=False)
    payment_method = Column(String(32))
    status = Column(String(16), default="processing", nullable=False)
    failure_code = Column(String(64))
    failure_message = Column(Text)
    processed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_payments_subscription", "subscription_id"),)
