"""
Medicine catalog, prescribed medications, scheduled events and
adherence records.

A Medication expands into one ScheduledEvent per day of its course and
one AdherenceRecord per event; adherence is the ratio of completed rows.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, String, Text, Uuid

from carehub.models.database import Base, JSONType, utcnow
from carehub.models.enums import EventStatus

ON_TIME_WINDOW_SECONDS = 30 * 60


class Medicine(Base):
    __tablename__ = "medicines"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    type = Column(String(64), default="tablet")
    description = Column(Text)
    details = Column(JSONType, default=dict)
    creator_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    public_medicine = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_medicines_name", "name"),)


class Medication(Base):
    __tablename__ = "medications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    medicine_id = Column(Uuid, ForeignKey("medicines.id"), nullable=False)
    care_plan_id = Column(Uuid, ForeignKey("care_plans.id"), nullable=True)
    organizer_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    organizer_type = Column(String(32), nullable=False)

    description = Column(String(255))
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    details = Column(JSONType, default=dict)
    rr_rule = Column(String(64), nullable=False, comment="Informational; never parsed")

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_medications_patient", "patient_id"),)


class ScheduledEvent(Base):
    __tablename__ = "scheduled_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(32), nullable=False)
    # Polymorphic reference: medication id, appointment id or vital type id.
    source_id = Column(Uuid, nullable=True)
    status = Column(String(20), default=EventStatus.PENDING.value, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    details = Column(JSONType, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_events_patient_start", "patient_id", "start_time"),
        Index("ix_events_source", "event_type", "source_id"),
        Index("ix_events_status", "status"),
    )


class AdherenceRecord(Base):
    __tablename__ = "adherence_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    scheduled_event_id = Column(Uuid, ForeignKey("scheduled_events.id"), nullable=True)
    adherence_type = Column(String(32), nullable=False)
    due_at = Column(DateTime, nullable=False)
    recorded_at = Column(DateTime, nullable=True)
    is_completed = Column(Boolean, default=False, nullable=False)
    is_partial = Column(Boolean, default=False, nullable=False)
    is_missed = Column(Boolean, default=False, nullable=False)
    response_data = Column(JSONType, default=dict)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_adherence_patient_due", "patient_id", "due_at"),
        Index("ix_adherence_event", "scheduled_event_id"),
    )

    @property
    def status(self) -> str:
        if self.is_completed:
            return "completed"
        if self.is_partial:
            return "partial"
        if self.is_missed:
            return "missed"
        return "pending"

    def is_on_time(self) -> bool:
        if self.recorded_at is None:
            return False
        delta = abs((self.recorded_at - self.due_at).total_seconds())
        return delta <= ON_TIME_WINDOW_SECONDS

    def mark_completed(self, response_data: dict | None = None, notes: str | None = None,
                       at: datetime | None = None) -> None:
        self.is_completed, self.is_partial, self.is_missed = True, False, False
        self.recorded_at = at or utcnow()
        self.response_data = response_data or {}
        if notes:
            self.notes = notes

    def mark_partial(self, response_data: dict | None = None, notes: str | None = None,
                     at: datetime | None = None) -> None:
        self.is_completed, self.is_partial, self.is_missed = False, True, False
        self.recorded_at = at or utcnow()
        self.response_data = response_data or {}
        if notes:
            self.notes = notes

    def mark_missed(self, notes: str | None = None) -> None:
        self.is_completed, self.is_partial, self.is_missed = False, False, True
        if notes:
            self.notes = notes
