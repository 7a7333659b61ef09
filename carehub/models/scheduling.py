"""Doctor availability templates, bookable slots and appointments."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)

from carehub.models.database import Base, JSONType, utcnow
from carehub.models.enums import AppointmentStatus


class DoctorAvailability(Base):
    """Weekly template: one row per doctor and weekday (0=Sunday)."""

    __tablename__ = "doctor_availability"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id = Column(Uuid, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, default=30, nullable=False, comment="Minutes")
    max_appointments_per_slot = Column(Integer, default=1, nullable=False)
    break_start_time = Column(Time, nullable=True)
    break_end_time = Column(Time, nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_weekday"),
    )


class AppointmentSlot(Base):
    __tablename__ = "appointment_slots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id = Column(Uuid, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_appointments = Column(Integer, default=1, nullable=False)
    booked_appointments = Column(Integer, default=0, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    slot_type = Column(String(32), default="regular", nullable=False)

    __table_args__ = (
        UniqueConstraint("doctor_id", "date", "start_time", name="uq_slot_doctor_date_start"),
        Index("ix_slots_doctor_date", "doctor_id", "date"),
    )

    @property
    def available_spots(self) -> int:
        return self.max_appointments - self.booked_appointments


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id = Column(Uuid, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    organizer_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    slot_id = Column(Uuid, ForeignKey("appointment_slots.id"), nullable=True)
    care_plan_id = Column(Uuid, ForeignKey("care_plans.id"), nullable=True)

    appointment_type = Column(String(32), default="consultation", nullable=False)
    description = Column(Text)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), default=AppointmentStatus.SCHEDULED.value, nullable=False)
    details = Column(JSONType, default=dict)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_appointments_doctor_time", "doctor_id", "start_time", "end_time"),
        Index("ix_appointments_patient_date", "patient_id", "start_date"),
    )
