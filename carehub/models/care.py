"""
Care plans (long-term, chronic conditions) and treatment plans
(short-term, acute episodes).

Structured clinical content is kept in JSON columns; the service layer
validates it against JSON Schemas before it is written.
"""

import math
import uuid
from datetime import date, datetime

from dateutil.relativedelta import relativedelta
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, Uuid

from carehub.models.database import Base, JSONType, utcnow
from carehub.models.enums import PlanStatus, Priority


class CarePlan(Base):
    __tablename__ = "care_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    created_by_doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=True)
    created_by_hsp_id = Column(Uuid, ForeignKey("hsps.id"), nullable=True)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    chronic_conditions = Column(JSONType, default=list)
    long_term_goals = Column(JSONType, default=list)
    interventions = Column(JSONType, default=list)
    monitoring_parameters = Column(JSONType, default=list)
    target_values = Column(JSONType, default=dict)
    medications = Column(JSONType, default=list)
    care_team_members = Column(JSONType, default=list)
    progress_notes = Column(JSONType, default=list)
    outcome_measures = Column(JSONType, default=dict)

    start_date = Column(Date, nullable=False, default=date.today)
    end_date = Column(Date, nullable=True, comment="Open-ended for chronic conditions")
    review_frequency_months = Column(Integer, default=3, nullable=False)
    next_review_date = Column(Date, nullable=True)

    status = Column(String(20), default=PlanStatus.ACTIVE.value, nullable=False)
    priority = Column(String(20), default=Priority.MEDIUM.value, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_care_plans_patient", "patient_id"),
        Index("ix_care_plans_status", "status"),
        Index("ix_care_plans_next_review", "next_review_date"),
    )

    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE.value

    def is_due_for_review(self, today: date | None = None) -> bool:
        today = today or date.today()
        return self.next_review_date is not None and today >= self.next_review_date

    def schedule_next_review(self, from_date: date | None = None) -> None:
        base = from_date or date.today()
        self.next_review_date = base + relativedelta(months=self.review_frequency_months)


class TreatmentPlan(Base):
    __tablename__ = "treatment_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    primary_diagnosis = Column(String(255), nullable=False)
    secondary_diagnoses = Column(JSONType, default=list)
    chief_complaint = Column(Text)
    symptoms = Column(JSONType, default=list)
    treatment_goals = Column(JSONType, default=list)
    medications = Column(JSONType, default=list)
    instructions = Column(Text)

    start_date = Column(DateTime, nullable=False, default=utcnow)
    expected_duration_days = Column(Integer, nullable=True)
    end_date = Column(DateTime, nullable=True)

    follow_up_required = Column(Boolean, default=True, nullable=False)
    follow_up_date = Column(DateTime, nullable=True)

    status = Column(String(20), default=PlanStatus.ACTIVE.value, nullable=False)
    priority = Column(String(20), default=Priority.MEDIUM.value, nullable=False)
    progress_notes = Column(JSONType, default=list)
    completion_percentage = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_treatment_plans_patient", "patient_id"),
        Index("ix_treatment_plans_status", "status"),
    )

    def is_overdue(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return (
            self.end_date is not None
            and now > self.end_date
            and self.status == PlanStatus.ACTIVE.value
        )

    def days_remaining(self, now: datetime | None = None) -> int | None:
        if self.end_date is None:
            return None
        now = now or utcnow()
        return math.ceil((self.end_date - now).total_seconds() / 86400)

    def requires_follow_up(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return bool(
            self.follow_up_required and self.follow_up_date and now >= self.follow_up_date
        )
